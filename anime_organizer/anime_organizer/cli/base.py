"""
Shared CLI utilities: service construction from settings, target
resolution and progress display.
"""
import sys
import logging
import threading
import concurrent.futures
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn, TimeElapsedColumn

from ..config import get_config, AnimeOrganizerConfig
from ..models import AnimeFolderInfo
from ..history import HistoryStore
from ..search import TitleSearchService
from ..subshare_db import SubShareDbService
from ..verification import AnimeDbVerificationService, NullVerificationService
from ..reconciler import MetadataReconciler, ScanReport
from ..providers import MetadataProvider
from ..constants import BYTES_PER_KB, BYTES_PER_MB, PROGRESS_REFRESH_RATE
from ..logging import console

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_target_root(target: Optional[str] = None) -> Path:
    """
    Resolves the directory to organize: the argument, else the configured
    target path.

    Raises:
        SystemExit: If neither is set.
    """
    root = Path(target) if target else get_config().target_path
    if not root:
        logger.error("No target directory given and TARGET_PATH is not set")
        console.print("[red]Error: pass a TARGET directory or set TARGET_PATH in .env.[/red]")
        sys.exit(1)
    return Path(root)


def format_size(size_bytes: int) -> str:
    if size_bytes >= BYTES_PER_MB:
        return f"{size_bytes / BYTES_PER_MB:.2f} MB"
    if size_bytes >= BYTES_PER_KB:
        return f"{size_bytes / BYTES_PER_KB:.1f} KB"
    return f"{size_bytes} B"


def build_history(config: Optional[AnimeOrganizerConfig] = None) -> HistoryStore:
    config = config or get_config()
    return HistoryStore(config.history.db_path)


def build_title_search(config: Optional[AnimeOrganizerConfig] = None) -> TitleSearchService:
    config = config or get_config()
    return TitleSearchService(config.subshare.db_path)


def build_db_service(config: Optional[AnimeOrganizerConfig] = None) -> SubShareDbService:
    config = config or get_config()
    return SubShareDbService(
        db_path=config.subshare.db_path,
        primary_url=config.subshare.primary_url,
        backup_url=config.subshare.backup_url,
        timeout=config.subshare.timeout,
    )


def build_reconciler(provider: MetadataProvider,
                     config: Optional[AnimeOrganizerConfig] = None,
                     use_subshare: bool = True) -> MetadataReconciler:
    config = config or get_config()
    if config.verification.enabled:
        verifier = AnimeDbVerificationService(
            search_url=config.verification.search_url,
            timeout=config.verification.timeout,
        )
    else:
        verifier = NullVerificationService()

    title_search = None
    if use_subshare and Path(config.subshare.db_path).exists():
        title_search = build_title_search(config)

    return MetadataReconciler(
        provider=provider,
        verifier=verifier,
        history=build_history(config),
        title_search=title_search,
        naming_format=config.naming.format,
        preferred_language=config.naming.preferred_language,
        batch_size=config.scan.batch_size,
    )


def run_cancellable(fn: Callable[[threading.Event], T]) -> T:
    """
    Runs fn(cancel) on a worker thread. Ctrl+C sets the cancel event and
    waits for the worker to wind down instead of killing it mid-write.
    """
    cancel = threading.Event()
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(fn, cancel)
        while True:
            try:
                return future.result(timeout=0.2)
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling...[/yellow]")
                cancel.set()


def run_reconcile_with_progress(reconciler: MetadataReconciler, folders: List[AnimeFolderInfo],
                                description: str = "[bold green]Identifying folders...") -> ScanReport:
    """Runs reconciliation with a rich progress bar."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
        refresh_per_second=PROGRESS_REFRESH_RATE,
    )
    with progress:
        task_id = progress.add_task(description, total=len(folders))

        def update_progress(processed: int, total: int) -> None:
            progress.update(task_id, completed=processed, total=total)

        report = run_cancellable(
            lambda cancel: reconciler.reconcile(folders, cancel=cancel, progress_callback=update_progress)
        )
        progress.update(task_id, completed=report.processed)
    return report
