import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple, Iterator

from .models import TitleRecord, CorpusFingerprint
from .analysis import normalize_title

logger = logging.getLogger(__name__)

# Wide enough for any code point (max 0x10FFFF), so two distinct pairs never share a key
BIGRAM_SHIFT = 21
TITLE_FIELD_COUNT = 5
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def pack_bigram(first: str, second: str) -> int:
    """Packs two characters into a single integer key."""
    return (ord(first) << BIGRAM_SHIFT) | ord(second)


def iter_bigrams(text: str) -> Iterator[int]:
    """Yields the packed key of each overlapping two-character window."""
    for i in range(len(text) - 1):
        yield pack_bigram(text[i], text[i + 1])


def add_distinct_bigrams(text: str, dest: Set[int]) -> None:
    """
    Adds every bigram of an already-normalized string to `dest`.

    Strings shorter than two characters add nothing; callers that need to
    match them must fall back to a linear scan.
    """
    if not text or len(text) < 2:
        return
    dest.update(iter_bigrams(text))


def _sort_time(value: Optional[datetime]) -> datetime:
    if value is None:
        return _OLDEST
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class CorpusSnapshot:
    """
    One fully built, read-only version of the title corpus.

    `normalized_fields[f][i]` is the normalized form of title field `f`
    (chs, cht, jp, en, rome) of `records[i]`. Nothing mutates a snapshot
    after SnapshotBuilder.build(); reloads publish a new one.
    """
    records: Tuple[TitleRecord, ...] = ()
    normalized_fields: Tuple[Tuple[str, ...], ...] = tuple(() for _ in range(TITLE_FIELD_COUNT))
    postings: Dict[int, List[int]] = field(default_factory=dict)
    exact: Dict[str, int] = field(default_factory=dict)
    fingerprint: Optional[CorpusFingerprint] = None
    subs_element_count: int = 0
    raw_tag_count: int = 0

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def is_indexed(self) -> bool:
        return bool(self.postings)

    def normalized_titles(self, index: int) -> List[str]:
        return [column[index] for column in self.normalized_fields]

    def contains(self, index: int, needle: str) -> bool:
        """True if any normalized title of record `index` contains `needle`."""
        for column in self.normalized_fields:
            value = column[index]
            if value and needle in value:
                return True
        return False

    def exact_lookup(self, normalized: str) -> Optional[TitleRecord]:
        index = self.exact.get(normalized)
        if index is None:
            return None
        return self.records[index]


EMPTY_SNAPSHOT = CorpusSnapshot()


class SnapshotBuilder:
    """
    Accumulates records into the structures of a CorpusSnapshot in one pass:
    record list, normalized title columns, bigram postings and exact table.
    """

    def __init__(self):
        self.records: List[TitleRecord] = []
        self.columns: List[List[str]] = [[] for _ in range(TITLE_FIELD_COUNT)]
        self.postings: Dict[int, List[int]] = defaultdict(list)
        self.exact: Dict[str, int] = {}
        self.subs_element_count = 0

    def __len__(self) -> int:
        return len(self.records)

    def add(self, record: TitleRecord) -> int:
        index = len(self.records)
        self.records.append(record)

        grams: Set[int] = set()
        for column, title in zip(self.columns, record.titles):
            normalized = normalize_title(title)
            column.append(normalized)
            add_distinct_bigrams(normalized, grams)
            if normalized:
                self._offer_exact(normalized, index)

        # One posting per record per gram, however many fields share it
        for gram in grams:
            self.postings[gram].append(index)
        return index

    def _offer_exact(self, normalized: str, index: int) -> None:
        current = self.exact.get(normalized)
        if current is None:
            self.exact[normalized] = index
            return
        # Strictly newer wins; on a tie the earlier record stays
        if _sort_time(self.records[index].updated_at) > _sort_time(self.records[current].updated_at):
            self.exact[normalized] = index

    def build(self, fingerprint: Optional[CorpusFingerprint] = None, raw_tag_count: int = 0) -> CorpusSnapshot:
        snapshot = CorpusSnapshot(
            records=tuple(self.records),
            normalized_fields=tuple(tuple(column) for column in self.columns),
            postings=dict(self.postings),
            exact=dict(self.exact),
            fingerprint=fingerprint,
            subs_element_count=self.subs_element_count,
            raw_tag_count=raw_tag_count,
        )
        logger.info(
            f"Title index built. {snapshot.record_count} records, "
            f"{len(snapshot.postings)} bigrams, {len(snapshot.exact)} exact keys."
        )
        return snapshot
