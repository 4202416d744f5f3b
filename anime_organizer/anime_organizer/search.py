"""
Title search over the SubShare corpus.

Serves substring ("LIKE %keyword%") and exact lookups from the bigram index,
reloading the corpus lazily whenever the file's fingerprint changes.
"""
import logging
import threading
from collections import Counter
from pathlib import Path
from typing import List, Optional, Union

from .models import TitleRecord, SearchDiagnostics
from .indexer import CorpusSnapshot, EMPTY_SNAPSHOT, iter_bigrams
from .corpus import LoadError, compute_fingerprint, count_raw_tags, load_corpus
from .analysis import normalize_title, contains_cjk
from .converter import ScriptConverter, converter as default_converter
from .logging import check_cancelled
from .constants import MIN_BIGRAM_QUERY_LENGTH

logger = logging.getLogger(__name__)


class TitleSearchService:
    """
    Owns the current CorpusSnapshot for one db.xml file.

    Readers grab `self._snapshot` once and work on that object; a reload
    builds a complete new snapshot and publishes it with a single
    assignment, so a search never sees a half-built index. Only one load
    runs at a time (`_load_gate`).
    """

    def __init__(self, db_path: Union[str, Path], text_converter: Optional[ScriptConverter] = None):
        self.db_path = Path(db_path)
        self.converter = text_converter or default_converter
        self._snapshot: CorpusSnapshot = EMPTY_SNAPSHOT
        self._load_gate = threading.Lock()
        self._loaded_fingerprint: Optional[str] = None
        self._load_count = 0
        self._last_file_size = 0
        self._last_raw_tag_count = 0
        self._last_subs_element_count = 0
        self._last_parsed_count = 0
        self._last_error: Optional[str] = None

    @property
    def snapshot(self) -> CorpusSnapshot:
        return self._snapshot

    @property
    def load_count(self) -> int:
        """Number of completed parse attempts (for diagnostics and tests)."""
        return self._load_count

    def _publish(self, snapshot: CorpusSnapshot, fingerprint: Optional[str]) -> None:
        self._snapshot = snapshot
        self._loaded_fingerprint = fingerprint

    def _needs_reload(self, fingerprint: str) -> bool:
        if self._loaded_fingerprint != fingerprint:
            return True
        # Same file, but a previous load kept at most one record out of many tags
        return self._last_raw_tag_count > 1 and self._snapshot.record_count <= 1

    def ensure_loaded(self, cancel: Optional[threading.Event] = None) -> None:
        """
        Loads or reloads the corpus if the file changed since the last load.

        Never raises for missing, unreadable or malformed files; those outcomes are
        visible through get_diagnostics(). Cancellation propagates and
        leaves the previous snapshot in place.
        """
        check_cancelled(cancel, "corpus load")
        try:
            fingerprint = compute_fingerprint(self.db_path)
        except OSError as e:
            # Unreadable file: keep serving the previous snapshot
            logger.warning(f"Could not stat {self.db_path}: {e}")
            self._last_error = str(e)
            return
        if fingerprint.is_missing:
            self._last_file_size = 0
            self._last_raw_tag_count = 0
            self._publish(CorpusSnapshot(fingerprint=fingerprint), str(fingerprint))
            return

        self._last_file_size = fingerprint.size
        try:
            self._last_raw_tag_count = count_raw_tags(self.db_path, cancel)
        except OSError as e:
            logger.warning(f"Could not scan {self.db_path}: {e}")
            self._last_error = str(e)
            return

        if not self._needs_reload(str(fingerprint)):
            # Readable again and unchanged since the last good load
            self._last_error = None
            return

        with self._load_gate:
            # Another caller may have finished the same load while we waited
            if not self._needs_reload(str(fingerprint)):
                return
            if self._loaded_fingerprint == str(fingerprint) and self._load_count > 0:
                logger.info(f"Forcing reload of {self.db_path}: {self._last_raw_tag_count} raw tags but "
                            f"{self._snapshot.record_count} records loaded")

            outcome = load_corpus(self.db_path, cancel, raw_tag_count=self._last_raw_tag_count)
            self._load_count += 1

            if isinstance(outcome, LoadError):
                # Keep the stale snapshot and leave the fingerprint unset so the next call retries
                logger.error(f"Failed to load title database {self.db_path}: {outcome.message}")
                self._last_subs_element_count = outcome.subs_element_count
                self._last_parsed_count = outcome.parsed_count
                self._last_error = outcome.message
                self._loaded_fingerprint = None
                return

            self._last_subs_element_count = outcome.subs_element_count
            self._last_parsed_count = outcome.record_count
            self._last_error = None
            self._publish(outcome, str(fingerprint))

    def get_diagnostics(self, cancel: Optional[threading.Event] = None) -> SearchDiagnostics:
        self.ensure_loaded(cancel)
        return SearchDiagnostics(
            db_path=self.db_path,
            record_count=self._snapshot.record_count,
            subs_element_count=self._last_subs_element_count,
            parsed_count=self._last_parsed_count,
            file_size=self._last_file_size,
            raw_subs_tag_count=self._last_raw_tag_count,
            fingerprint=self._loaded_fingerprint,
            last_error=self._last_error,
        )

    def expand_variants(self, keyword: str) -> List[str]:
        """The keyword itself, then its Traditional and Simplified forms when it has CJK."""
        variants = [keyword]
        if contains_cjk(keyword):
            for converted in (self.converter.to_traditional(keyword), self.converter.to_simplified(keyword)):
                if converted and converted.strip():
                    variants.append(converted)
        ordered: List[str] = []
        for variant in variants:
            if variant not in ordered:
                ordered.append(variant)
        return ordered

    def search(self, keyword: Optional[str], limit: int = 20,
               cancel: Optional[threading.Event] = None) -> List[TitleRecord]:
        """
        Substring search across the five title fields.

        Returns at most `limit` records, de-duplicated by key, in discovery
        order. Variants are searched one after another and the search stops
        as soon as the limit is reached.
        """
        if limit <= 0 or not keyword or not keyword.strip():
            return []

        self.ensure_loaded(cancel)
        snapshot = self._snapshot

        results: List[TitleRecord] = []
        seen_keys = set()

        for variant in self.expand_variants(keyword):
            check_cancelled(cancel, "search")
            needle = normalize_title(variant)
            if not needle:
                continue

            if len(needle) >= MIN_BIGRAM_QUERY_LENGTH and snapshot.is_indexed:
                indices = self._indexed_candidates(snapshot, needle)
            else:
                indices = self._linear_scan(snapshot, needle)

            for index in indices:
                record = snapshot.records[index]
                if not record.key or record.key in seen_keys:
                    continue
                seen_keys.add(record.key)
                results.append(record)
                if len(results) >= limit:
                    return results

        return results

    def _indexed_candidates(self, snapshot: CorpusSnapshot, needle: str) -> List[int]:
        grams = set(iter_bigrams(needle))
        if not grams:
            return self._linear_scan(snapshot, needle)

        hits: Counter = Counter()
        for gram in grams:
            postings = snapshot.postings.get(gram)
            if not postings:
                # A gram nobody has means no record can contain the needle
                return []
            hits.update(postings)

        # Sharing every gram is necessary but not sufficient, so confirm containment.
        # Candidates are visited in corpus order.
        required = len(grams)
        return [index for index in sorted(hits) if hits[index] == required and snapshot.contains(index, needle)]

    def _linear_scan(self, snapshot: CorpusSnapshot, needle: str) -> List[int]:
        return [index for index in range(snapshot.record_count) if snapshot.contains(index, needle)]

    def find_best_match(self, title: Optional[str],
                        cancel: Optional[threading.Event] = None) -> Optional[TitleRecord]:
        """Exact normalized-title lookup first, then the first substring hit."""
        normalized = normalize_title(title)
        if not normalized:
            return None

        self.ensure_loaded(cancel)
        record = self._snapshot.exact_lookup(normalized)
        if record is not None:
            return record

        results = self.search(title, limit=1, cancel=cancel)
        return results[0] if results else None
