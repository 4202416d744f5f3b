"""
Batch metadata reconciliation for scanned folders.

Each folder moves through: unprocessed -> provisional (provider answered)
-> verified / verification_failed (AnimeDB check, with one cleaned-name
retry). Folders already named after the template, or already renamed by
us, short-circuit to already_organized without touching the provider.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from .models import AnimeFolderInfo, FolderState, VerificationStatus
from .providers.base import MetadataProvider, ProviderResult
from .history import HistoryStore, normalize_history_path
from .naming import build_organized_pattern, get_preferred_title
from .analysis import clean_folder_name
from .converter import ScriptConverter, converter as default_converter
from .search import TitleSearchService
from .config import NamingLanguage
from .logging import OperationCancelled, check_cancelled
from .constants import SCAN_BATCH_SIZE, DEFAULT_NAMING_FORMAT, MIN_CLEANED_NAME_LENGTH

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class Verifier(Protocol):
    def verify(self, title: Optional[str]) -> VerificationStatus:
        ...


@dataclass
class ScanReport:
    total: int = 0
    processed: int = 0
    identified: int = 0
    verified: int = 0
    verification_failed: int = 0
    already_organized: int = 0
    retries: int = 0
    failed_batches: int = 0
    provider_errors: int = 0
    cancelled: bool = False


class MetadataReconciler:
    """
    Drives provider batches, verification and the cleaned-name retry over
    a list of AnimeFolderInfo objects, mutating them in place.
    """

    def __init__(
        self,
        provider: MetadataProvider,
        verifier: Verifier,
        history: Optional[HistoryStore] = None,
        title_search: Optional[TitleSearchService] = None,
        naming_format: str = DEFAULT_NAMING_FORMAT,
        preferred_language: NamingLanguage = NamingLanguage.TRADITIONAL_CHINESE,
        text_converter: Optional[ScriptConverter] = None,
        batch_size: int = SCAN_BATCH_SIZE,
    ):
        self.provider = provider
        self.verifier = verifier
        self.history = history
        self.title_search = title_search
        self.naming_format = naming_format
        self.preferred_language = preferred_language
        self.converter = text_converter or default_converter
        self.batch_size = max(1, batch_size)

    def is_already_organized(self, folder: AnimeFolderInfo, renamed_paths: set, pattern) -> bool:
        if pattern is not None and pattern.match(folder.original_folder_name.strip()):
            return True
        return normalize_history_path(folder.original_path) in renamed_paths

    def reconcile(
        self,
        folders: List[AnimeFolderInfo],
        cancel: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanReport:
        """
        Reconciles `folders` in batches. Returns a summary; the folders
        themselves carry the per-folder outcome.

        The cleaned-name retry budget is per call: a new scan starts from zero.
        On cancellation the scan stops, already processed folders keep their
        state and the rest stay unprocessed.
        """
        report = ScanReport(total=len(folders))
        retry_attempts: Dict[str, int] = {}
        renamed_paths = self.history.renamed_paths() if self.history else set()
        pattern = build_organized_pattern(self.naming_format)

        pending: List[AnimeFolderInfo] = []
        for folder in folders:
            if self.is_already_organized(folder, renamed_paths, pattern):
                folder.state = FolderState.ALREADY_ORGANIZED
                report.already_organized += 1
                report.processed += 1
            else:
                pending.append(folder)

        if report.already_organized:
            logger.info(f"{report.already_organized} folders already organized, skipping provider calls")

        try:
            for start in range(0, len(pending), self.batch_size):
                check_cancelled(cancel, "scan")
                batch = pending[start:start + self.batch_size]
                results, batch_failed = self._query([f.original_folder_name for f in batch], cancel)
                if batch_failed:
                    report.failed_batches += 1

                for folder, result in zip(batch, results):
                    check_cancelled(cancel, "scan")
                    self._reconcile_folder(folder, result, batch_failed, retry_attempts, report, cancel)
                    report.processed += 1

                if progress_callback:
                    progress_callback(report.processed, report.total)
        except OperationCancelled:
            logger.warning(f"Scan cancelled after {report.processed}/{report.total} folders")
            report.cancelled = True

        logger.info(
            f"Reconciled {report.processed}/{report.total} folders: {report.identified} identified, "
            f"{report.verification_failed} unverified, {report.retries} retries, "
            f"{report.failed_batches} failed batches"
        )
        return report

    def _query(self, names: List[str], cancel: Optional[threading.Event]):
        """Provider call for one batch. Returns (results, failed) and never raises except on cancel."""
        try:
            results = list(self.provider.analyze_batch(names, cancel=cancel))
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(f"Metadata provider failed for batch of {len(names)}: {e}")
            return [ProviderResult.empty() for _ in names], True

        if len(results) != len(names):
            logger.warning(f"Provider returned {len(results)} results for {len(names)} names")
            results = (results + [ProviderResult.empty()] * len(names))[:len(names)]
        return results, False

    def _apply(self, folder: AnimeFolderInfo, result: ProviderResult) -> None:
        if result.error is not None:
            folder.provider_error = result.error
            return
        folder.provider_error = None
        if result.metadata is not None:
            folder.apply_metadata(result.metadata)
            folder.selected_title = get_preferred_title(folder, self.preferred_language, self.converter)

    def _reconcile_folder(self, folder: AnimeFolderInfo, result: ProviderResult, batch_failed: bool,
                          retry_attempts: Dict[str, int], report: ScanReport,
                          cancel: Optional[threading.Event]) -> None:
        folder.state = FolderState.PROVISIONAL
        folder.is_identified = False
        if batch_failed:
            return

        self._apply(folder, result)
        if folder.provider_error is not None:
            report.provider_errors += 1
            return

        status = self.verifier.verify(folder.native_title)

        if status != VerificationStatus.VERIFIED:
            key = str(folder.original_path)
            cleaned = clean_folder_name(folder.original_folder_name)
            if (retry_attempts.get(key, 0) == 0
                    and cleaned != folder.original_folder_name
                    and len(cleaned) > MIN_CLEANED_NAME_LENGTH):
                retry_attempts[key] = 1
                report.retries += 1
                check_cancelled(cancel, "scan")
                logger.info(f"Retrying '{folder.original_folder_name}' as '{cleaned}'")
                retry_results, _ = self._query([cleaned], cancel)
                retry = retry_results[0]
                if retry.error is not None or retry.metadata is not None:
                    self._apply(folder, retry)
                if folder.provider_error is None:
                    status = self.verifier.verify(folder.native_title)

        folder.verification_status = status
        if status == VerificationStatus.VERIFIED:
            folder.state = FolderState.VERIFIED
            report.verified += 1
        else:
            folder.state = FolderState.VERIFICATION_FAILED
            report.verification_failed += 1

        folder.is_identified = status == VerificationStatus.VERIFIED and folder.provider_error is None
        if folder.provider_error is not None:
            report.provider_errors += 1
        if folder.is_identified:
            report.identified += 1
            self._attach_subshare(folder, cancel)

    def _attach_subshare(self, folder: AnimeFolderInfo, cancel: Optional[threading.Event]) -> None:
        if self.title_search is None:
            return
        for title in (folder.title_jp, folder.title_tw, folder.title_cn):
            if not title:
                continue
            match = self.title_search.find_best_match(title, cancel)
            if match is not None:
                folder.subshare_key = match.key
                return
