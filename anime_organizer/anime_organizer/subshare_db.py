"""
Local SubShare title database maintenance: status, import and remote update.

Both import and update write to a temporary file next to the database and
swap it in with os.replace, so readers never see a half-written file.
"""
import os
import logging
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple, Union

import requests

from .models import DbStatus, DbUpdateResult
from .logging import OperationCancelled, check_cancelled
from . import constants as c

logger = logging.getLogger(__name__)


class SubShareDbService:
    """Keeps the local db.xml file up to date."""

    def __init__(
        self,
        db_path: Union[str, Path] = c.SUBSHARE_DB_FILENAME,
        primary_url: str = c.SUBSHARE_PRIMARY_URL,
        backup_url: str = c.SUBSHARE_BACKUP_URL,
        timeout: int = c.SUBSHARE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.db_path = Path(db_path)
        self.primary_url = primary_url
        self.backup_url = backup_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_status(self) -> DbStatus:
        try:
            stat = self.db_path.stat()
        except OSError:
            return DbStatus(path=self.db_path, exists=False)
        return DbStatus(
            path=self.db_path,
            exists=True,
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def _temp_file(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return tempfile.NamedTemporaryFile(
            "wb", dir=str(self.db_path.parent), prefix="db_", suffix=".tmp", delete=False
        )

    @staticmethod
    def _discard(tmp_path: Optional[str]) -> None:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {tmp_path}: {e}")

    def _install(self, tmp_path: str) -> int:
        size = os.path.getsize(tmp_path)
        if size == 0:
            raise ValueError("file is empty")
        os.replace(tmp_path, self.db_path)
        return size

    def import_from_file(self, source: Union[str, Path],
                         cancel: Optional[threading.Event] = None) -> DbUpdateResult:
        """Copies a local db.xml over the current database."""
        source = Path(source)
        if not source.is_file():
            return DbUpdateResult(success=False, message=f"Source file does not exist: {source}")

        tmp_path = None
        try:
            with open(source, "rb") as src, self._temp_file() as tmp:
                tmp_path = tmp.name
                while True:
                    check_cancelled(cancel, "import")
                    chunk = src.read(c.DOWNLOAD_CHUNK_BYTES)
                    if not chunk:
                        break
                    tmp.write(chunk)
            size = self._install(tmp_path)
        except OperationCancelled:
            self._discard(tmp_path)
            return DbUpdateResult(success=False, message="Import cancelled")
        except (OSError, ValueError) as e:
            self._discard(tmp_path)
            logger.error(f"Importing {source} failed: {e}")
            return DbUpdateResult(success=False, message=f"Import failed: {e}")

        logger.info(f"Imported {size} bytes from {source} into {self.db_path}")
        return DbUpdateResult(success=True, message="Imported", source=str(source), bytes_written=size)

    def _download(self, url: str, auth: Optional[Tuple[str, str]],
                  cancel: Optional[threading.Event]) -> int:
        tmp_path = None
        try:
            with self.session.get(url, auth=auth, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with self._temp_file() as tmp:
                    tmp_path = tmp.name
                    for chunk in response.iter_content(chunk_size=c.DOWNLOAD_CHUNK_BYTES):
                        check_cancelled(cancel, "download")
                        if chunk:
                            tmp.write(chunk)
            return self._install(tmp_path)
        except BaseException:
            self._discard(tmp_path)
            raise

    def update(self, cancel: Optional[threading.Event] = None) -> DbUpdateResult:
        """Downloads the database from the primary mirror, falling back to the backup."""
        errors = []
        sources = (
            ("primary", self.primary_url, c.SUBSHARE_AUTH),
            ("backup", self.backup_url, None),
        )
        for name, url, auth in sources:
            logger.info(f"Attempting to download db.xml from {name} source...")
            try:
                size = self._download(url, auth, cancel)
            except OperationCancelled:
                return DbUpdateResult(success=False, message="Download cancelled", errors=errors)
            except requests.RequestException as e:
                logger.warning(f"Failed to download from {name} source: {e}")
                errors.append(f"{name}: {e}")
                continue
            except (OSError, ValueError) as e:
                logger.warning(f"Download from {name} source unusable: {e}")
                errors.append(f"{name}: {e}")
                continue

            logger.info(f"Downloaded {size} bytes from {name} source")
            return DbUpdateResult(success=True, message="Updated", source=url, bytes_written=size, errors=errors)

        return DbUpdateResult(success=False, message="All sources failed: " + " / ".join(errors), errors=errors)

    def close(self) -> None:
        self.session.close()

