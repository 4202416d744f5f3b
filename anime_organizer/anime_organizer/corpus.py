"""
Loads the SubShare title database (db.xml) into an indexed CorpusSnapshot.

The primary path streams the file with lxml's iterparse so the document is
never fully materialized. A cheap raw count of `<subs` start tags guards
against silent streaming failures, in which case a recovering whole-document
parse is tried instead.
"""
import re
import time
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union, Iterable

from lxml import etree

from .models import TitleRecord, CorpusFingerprint
from .indexer import SnapshotBuilder, CorpusSnapshot, EMPTY_SNAPSHOT
from .analysis import normalize_title
from .logging import check_cancelled
from .constants import SUBSHARE_RECORD_TAG, SUBSHARE_REPO_ROOT, RAW_SCAN_CHUNK_CHARS

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "time", "name_chs", "name_cht", "name_jp", "name_en", "name_rome",
    "type", "source", "sub_name", "extension", "providers", "desc", "path",
)
UNIX_SECONDS_RE = re.compile(r"^[+-]?\d+$")
FALLBACK_TIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%d/%m/%Y %H:%M:%S",
)
CANCEL_CHECK_EVERY = 256


@dataclass
class LoadError:
    """Both parse paths failed; the caller keeps whatever it had before."""
    message: str
    subs_element_count: int = 0
    parsed_count: int = 0


LoadOutcome = Union[CorpusSnapshot, LoadError]


def compute_fingerprint(path: Path) -> CorpusFingerprint:
    """Size + modification time of the corpus file, or the 'missing' marker."""
    try:
        stat = Path(path).stat()
    except (FileNotFoundError, NotADirectoryError):
        return CorpusFingerprint.missing()
    return CorpusFingerprint(size=stat.st_size, mtime_ns=stat.st_mtime_ns)


def count_raw_tags(path: Path, cancel: Optional[threading.Event] = None,
                   tag: str = SUBSHARE_RECORD_TAG, chunk_chars: int = RAW_SCAN_CHUNK_CHARS) -> int:
    """
    Counts case-insensitive '<tag' start tags in the file text.

    Only '<tag' followed by whitespace, '/' or '>' counts, so '<subs_db>' or
    '<subscription>' are ignored. Reads in chunks and carries the tail of each
    chunk into the next so a start tag split across a chunk boundary is still
    counted exactly once.
    """
    needle = f"<{tag}".lower()
    pattern = re.compile(re.escape(needle) + r"(?=[\s/>])")
    # A match needs one char past the needle, so it never lies wholly inside the carry
    keep = len(needle)
    count = 0
    carry = ""
    with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
        while True:
            check_cancelled(cancel, "raw tag count")
            chunk = f.read(chunk_chars)
            if not chunk:
                break
            text = (carry + chunk).lower()
            count += len(pattern.findall(text))
            carry = text[-keep:]
    return count


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """
    Parses a record timestamp: Unix epoch seconds or an ISO-8601-ish string.
    Anything unparseable yields None instead of failing the record.
    """
    if not value or not value.strip():
        return None
    text = value.strip()

    if UNIX_SECONDS_RE.match(text):
        try:
            return datetime.fromtimestamp(int(text), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in FALLBACK_TIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_repo_path(path: Optional[str]) -> str:
    """Forward-slash path rooted under subs_list/, or "" when absent."""
    if not path or not path.strip():
        return ""
    s = path.strip().replace("\\", "/").lstrip("/")
    if not s:
        return ""
    if not s.startswith(SUBSHARE_REPO_ROOT):
        s = SUBSHARE_REPO_ROOT + s
    return s


def _local_name(tag) -> str:
    # Comments and processing instructions have non-string tags
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname.lower() if tag.startswith("{") else tag.lower()


def read_record_fields(element) -> Dict[str, str]:
    """
    Reads the known fields of a <subs> element from attributes or child
    elements. A non-empty attribute wins over a child of the same name;
    missing fields are "".
    """
    values = {name: "" for name in RECORD_FIELDS}
    for child in element:
        name = _local_name(child.tag)
        if name in values and not values[name]:
            values[name] = "".join(child.itertext())
    for raw_name, value in element.attrib.items():
        name = _local_name(raw_name)
        if name in values and value:
            values[name] = value
    return values


def build_record(values: Dict[str, str]) -> TitleRecord:
    record_type = values.get("type", "").strip() or None
    name_jp = values.get("name_jp", "")
    return TitleRecord(
        key=f"{normalize_title(name_jp)}_{record_type or ''}",
        name_chs=values.get("name_chs", ""),
        name_cht=values.get("name_cht", ""),
        name_jp=name_jp,
        name_en=values.get("name_en", ""),
        name_rome=values.get("name_rome", ""),
        type=record_type,
        updated_at=parse_time(values.get("time")),
        repo_relative_path=normalize_repo_path(values.get("path")),
        source=values.get("source", ""),
        uploader=values.get("providers", ""),
        description=values.get("desc", ""),
    )


def _add_elements(builder: SnapshotBuilder, elements: Iterable, cancel: Optional[threading.Event]) -> None:
    for element in elements:
        if builder.subs_element_count % CANCEL_CHECK_EVERY == 0:
            check_cancelled(cancel, "corpus load")
        builder.subs_element_count += 1
        builder.add(build_record(read_record_fields(element)))


def stream_parse(path: Path, cancel: Optional[threading.Event] = None) -> SnapshotBuilder:
    """
    Primary path: iterparse record by record, freeing each element once read.

    Raises:
        etree.XMLSyntaxError: On malformed input (records read so far are discarded)
        OperationCancelled: If `cancel` is set
    """
    builder = SnapshotBuilder()

    def records():
        for _, element in etree.iterparse(str(path), events=("end",), huge_tree=True,
                                          remove_comments=True, remove_pis=True):
            if _local_name(element.tag) != SUBSHARE_RECORD_TAG:
                continue
            yield element
            element.clear(keep_tail=True)
            parent = element.getparent()
            if parent is not None:
                while element.getprevious() is not None:
                    del parent[0]

    _add_elements(builder, records(), cancel)
    return builder


def document_parse(path: Path, cancel: Optional[threading.Event] = None) -> Optional[SnapshotBuilder]:
    """
    Fallback path: parse the whole document with a recovering parser and read
    the <subs> children of the root. Returns None when no root survives.
    """
    parser = etree.XMLParser(recover=True, huge_tree=True, remove_comments=True, remove_pis=True)
    try:
        tree = etree.parse(str(path), parser)
    except (etree.XMLSyntaxError, OSError) as e:
        logger.warning(f"Fallback parse of {path} failed: {e}")
        return None
    root = tree.getroot()
    if root is None:
        return None

    builder = SnapshotBuilder()
    children = [child for child in root if _local_name(child.tag) == SUBSHARE_RECORD_TAG]
    _add_elements(builder, children, cancel)
    return builder


def load_corpus(path: Union[str, Path], cancel: Optional[threading.Event] = None,
                raw_tag_count: Optional[int] = None) -> LoadOutcome:
    """
    Loads the corpus at `path` into a new snapshot.

    A missing file is not an error: an empty snapshot with the 'missing'
    fingerprint is returned. Parse failures return a LoadError and leave
    the decision to keep the previous snapshot to the caller.
    Cancellation propagates as OperationCancelled.
    """
    path = Path(path)
    try:
        fingerprint = compute_fingerprint(path)
        if fingerprint.is_missing:
            logger.info(f"Title database not found at {path}")
            return CorpusSnapshot(fingerprint=fingerprint)
        if raw_tag_count is None:
            raw_tag_count = count_raw_tags(path, cancel)
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return LoadError(message=str(e))

    started = time.perf_counter()

    builder: Optional[SnapshotBuilder] = None
    primary_error = None
    try:
        builder = stream_parse(path, cancel)
    except (etree.XMLSyntaxError, OSError, UnicodeDecodeError) as e:
        primary_error = str(e)
        logger.warning(f"Streaming parse of {path} failed: {e}")

    primary_count = len(builder) if builder is not None else 0
    if primary_error is not None or (raw_tag_count > 1 and primary_count <= 1):
        logger.info(
            f"Raw <{SUBSHARE_RECORD_TAG}> tags: {raw_tag_count}, streamed records: {primary_count}. "
            "Trying whole-document parse."
        )
        fallback = document_parse(path, cancel)
        if fallback is not None and len(fallback) > primary_count:
            builder = fallback
            primary_error = None

    if builder is None or primary_error is not None:
        return LoadError(
            message=primary_error or "no records parsed",
            subs_element_count=builder.subs_element_count if builder else 0,
            parsed_count=len(builder) if builder else 0,
        )

    snapshot = builder.build(fingerprint=fingerprint, raw_tag_count=raw_tag_count)
    logger.info(
        f"Loaded {snapshot.record_count} titles from {path} "
        f"(raw tags {raw_tag_count}) in {time.perf_counter() - started:.2f}s"
    )
    return snapshot


__all__ = [
    "LoadError",
    "EMPTY_SNAPSHOT",
    "compute_fingerprint",
    "count_raw_tags",
    "parse_time",
    "normalize_repo_path",
    "read_record_fields",
    "build_record",
    "stream_parse",
    "document_parse",
    "load_corpus",
]
