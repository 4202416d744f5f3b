"""Rename history log backed by SQLite."""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Set, Union

from .models import RenameHistoryEntry
from .constants import HISTORY_RECENT_LIMIT

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "Success"
STATUS_FAILED = "Failed"
STATUS_SKIPPED = "Skipped"
STATUS_RESTORE_SUCCESS = "RestoreSuccess"
STATUS_RESTORE_FAILED = "RestoreFailed"
STATUS_RESTORE_SKIPPED = "RestoreSkipped"


class HistoryStore:
    """Append-only log of rename and restore attempts."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self.init_db()

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the table if it does not exist yet."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._session() as conn:
            conn.execute('''CREATE TABLE IF NOT EXISTS RenameHistory (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                TimestampUtc TEXT NOT NULL,
                OriginalPath TEXT NOT NULL,
                NewPath TEXT NOT NULL,
                Status TEXT NOT NULL,
                Message TEXT
            )''')
            conn.execute('CREATE INDEX IF NOT EXISTS IX_RenameHistory_Timestamp ON RenameHistory (TimestampUtc)')

    def add(self, original_path: Union[str, Path], new_path: Union[str, Path],
            status: str, message: str = "") -> RenameHistoryEntry:
        entry = RenameHistoryEntry(
            timestamp_utc=datetime.now(timezone.utc),
            original_path=str(original_path),
            new_path=str(new_path),
            status=status,
            message=message,
        )
        with self._lock, self._session() as conn:
            cursor = conn.execute(
                'INSERT INTO RenameHistory (TimestampUtc, OriginalPath, NewPath, Status, Message) '
                'VALUES (?, ?, ?, ?, ?)',
                (entry.timestamp_utc.isoformat(), entry.original_path, entry.new_path, entry.status, entry.message)
            )
            entry.id = cursor.lastrowid
        logger.info(f"History: {status} {original_path} -> {new_path} ({message})")
        return entry

    def get_recent(self, count: int = HISTORY_RECENT_LIMIT) -> List[RenameHistoryEntry]:
        """Newest entries first."""
        if count <= 0:
            return []
        with self._lock, self._session() as conn:
            rows = conn.execute(
                'SELECT Id, TimestampUtc, OriginalPath, NewPath, Status, Message FROM RenameHistory '
                'ORDER BY TimestampUtc DESC, Id DESC LIMIT ?',
                (count,)
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get(self, entry_id: int) -> Optional[RenameHistoryEntry]:
        with self._lock, self._session() as conn:
            row = conn.execute(
                'SELECT Id, TimestampUtc, OriginalPath, NewPath, Status, Message FROM RenameHistory WHERE Id = ?',
                (entry_id,)
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def renamed_paths(self) -> Set[str]:
        """Paths produced by successful renames, normalized for comparison."""
        with self._lock, self._session() as conn:
            rows = conn.execute(
                'SELECT NewPath FROM RenameHistory WHERE Status = ?', (STATUS_SUCCESS,)
            ).fetchall()
        return {normalize_history_path(row[0]) for row in rows}

    @staticmethod
    def _row_to_entry(row) -> RenameHistoryEntry:
        entry_id, timestamp, original_path, new_path, status, message = row
        return RenameHistoryEntry(
            id=entry_id,
            timestamp_utc=datetime.fromisoformat(timestamp),
            original_path=original_path,
            new_path=new_path,
            status=status,
            message=message or "",
        )


def normalize_history_path(path: Union[str, Path]) -> str:
    """Case-insensitive, slash-agnostic form used to compare folder paths."""
    return str(path).replace("\\", "/").rstrip("/").casefold()
