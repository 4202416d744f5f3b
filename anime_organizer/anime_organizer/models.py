from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any


class VerificationStatus(str, Enum):
    UNVERIFIED = "Unverified"
    VERIFIED = "Verified"
    FAILED = "Failed"


class FolderState(str, Enum):
    """Where a folder is in the reconciliation state machine."""
    UNPROCESSED = "unprocessed"
    PROVISIONAL = "provisional"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    ALREADY_ORGANIZED = "already_organized"


class ProviderError(str, Enum):
    """Provider-level failures reported in place of metadata."""
    NO_KEY = "no-key"
    RATE_LIMITED = "rate-limit"
    QUOTA_EXCEEDED = "quota-exceeded"
    MODEL_NOT_FOUND = "model-not-found"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class TitleRecord:
    """One work from the SubShare title database."""
    key: str
    name_chs: Optional[str] = None
    name_cht: Optional[str] = None
    name_jp: Optional[str] = None
    name_en: Optional[str] = None
    name_rome: Optional[str] = None
    type: Optional[str] = None
    updated_at: Optional[datetime] = None
    repo_relative_path: str = ""
    source: Optional[str] = None
    uploader: Optional[str] = None
    description: Optional[str] = None

    @property
    def titles(self) -> List[Optional[str]]:
        """The five title fields in index order (chs, cht, jp, en, rome)."""
        return [self.name_chs, self.name_cht, self.name_jp, self.name_en, self.name_rome]

    @property
    def display_title(self) -> str:
        for title in (self.name_cht, self.name_chs, self.name_jp, self.name_en, self.name_rome):
            if title:
                return title
        return self.key


@dataclass(frozen=True)
class CorpusFingerprint:
    """Identifies one version of the corpus file (size + mtime)."""
    size: int
    mtime_ns: int

    @classmethod
    def missing(cls) -> "CorpusFingerprint":
        return cls(size=-1, mtime_ns=-1)

    @property
    def is_missing(self) -> bool:
        return self.size < 0

    def __str__(self) -> str:
        return "missing" if self.is_missing else f"{self.size}:{self.mtime_ns}"


@dataclass
class SearchDiagnostics:
    """Snapshot of the loader state, returned by the diagnostics query."""
    db_path: Path
    record_count: int = 0
    subs_element_count: int = 0
    parsed_count: int = 0
    file_size: int = 0
    raw_subs_tag_count: int = 0
    fingerprint: Optional[str] = None
    last_error: Optional[str] = None


@dataclass
class AnimeMetadata:
    """Identification result for a single folder name."""
    id: str = ""
    title_jp: Optional[str] = None
    title_cn: Optional[str] = None
    title_tw: Optional[str] = None
    title_en: Optional[str] = None
    type: Optional[str] = None
    year: Optional[int] = None
    confidence: float = 0.0


@dataclass
class AnimeFolderInfo:
    """One scanned folder and everything reconciliation learned about it."""
    original_path: Path
    original_folder_name: str
    title_jp: Optional[str] = None
    title_cn: Optional[str] = None
    title_tw: Optional[str] = None
    title_en: Optional[str] = None
    year: Optional[int] = None
    type: Optional[str] = None
    metadata_id: Optional[str] = None
    confidence: float = 0.0
    state: FolderState = FolderState.UNPROCESSED
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    provider_error: Optional[ProviderError] = None
    is_identified: bool = False
    analyzed_title: Optional[str] = None
    selected_title: Optional[str] = None
    subshare_key: Optional[str] = None

    @property
    def available_titles(self) -> List[str]:
        """Distinct non-blank titles, case-insensitive, in display order."""
        ordered: List[str] = []
        seen = set()
        for title in (self.selected_title, self.title_tw, self.title_cn, self.title_jp, self.title_en):
            if not title or not title.strip():
                continue
            folded = title.casefold()
            if folded in seen:
                continue
            seen.add(folded)
            ordered.append(title)
        return ordered

    @property
    def native_title(self) -> Optional[str]:
        """Best title for checking against a Japanese title database."""
        for title in (self.title_jp, self.title_tw, self.title_cn, self.title_en):
            if title and title.strip():
                return title
        return None

    def apply_metadata(self, metadata: AnimeMetadata) -> None:
        self.title_jp = metadata.title_jp
        self.title_cn = metadata.title_cn
        self.title_tw = metadata.title_tw
        self.title_en = metadata.title_en
        self.year = metadata.year
        self.type = metadata.type
        self.metadata_id = metadata.id
        self.confidence = metadata.confidence
        self.analyzed_title = metadata.title_tw or metadata.title_cn or metadata.title_jp

    def update_original_path(self, new_path: Path) -> None:
        self.original_path = Path(new_path)
        self.original_folder_name = self.original_path.name

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["original_path"] = str(self.original_path)
        data["state"] = self.state.value
        data["verification_status"] = self.verification_status.value
        data["provider_error"] = self.provider_error.value if self.provider_error else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnimeFolderInfo":
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        filtered["original_path"] = Path(filtered["original_path"])
        if filtered.get("state"):
            filtered["state"] = FolderState(filtered["state"])
        if filtered.get("verification_status"):
            filtered["verification_status"] = VerificationStatus(filtered["verification_status"])
        if filtered.get("provider_error"):
            filtered["provider_error"] = ProviderError(filtered["provider_error"])
        return cls(**filtered)


@dataclass
class RenameHistoryEntry:
    timestamp_utc: datetime
    original_path: str
    new_path: str
    status: str
    message: str
    id: Optional[int] = None


@dataclass
class DbStatus:
    """State of the local corpus file."""
    path: Path
    exists: bool
    size_bytes: int = 0
    last_modified: Optional[datetime] = None


@dataclass
class DbUpdateResult:
    success: bool
    message: str
    source: Optional[str] = None
    bytes_written: int = 0
    errors: List[str] = field(default_factory=list)
