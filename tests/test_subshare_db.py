"""
Tests for SubShareDbService: status, local import and mirror download.
"""

import threading
import pytest
import requests
from unittest.mock import MagicMock

from anime_organizer.anime_organizer.subshare_db import SubShareDbService
from anime_organizer.anime_organizer.constants import SUBSHARE_AUTH


PRIMARY = "https://primary.test/db.xml"
BACKUP = "https://backup.test/db.xml"


def make_response(chunks=(b"<db>", b"<subs name_jp='A'/>", b"</db>"), error=None):
    response = MagicMock()
    if error is not None:
        response.raise_for_status.side_effect = error
    response.iter_content.return_value = iter(chunks)
    return response


def make_session(*responses):
    """Session whose successive get() calls enter the given responses (or raise them)."""
    session = MagicMock()
    contexts = []
    for response in responses:
        if isinstance(response, Exception):
            contexts.append(response)
            continue
        context = MagicMock()
        context.__enter__.return_value = response
        context.__exit__.return_value = False
        contexts.append(context)
    session.get.side_effect = contexts
    return session


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "db.xml"


def make_service(db_path, session):
    return SubShareDbService(db_path=db_path, primary_url=PRIMARY, backup_url=BACKUP, timeout=7, session=session)


def leftover_temp_files(db_path):
    return list(db_path.parent.glob("db_*.tmp")) if db_path.parent.exists() else []


class TestStatus:

    def test_missing(self, db_path):
        status = make_service(db_path, MagicMock()).get_status()
        assert not status.exists
        assert status.size_bytes == 0
        assert status.last_modified is None

    def test_existing(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"x" * 2048)
        status = make_service(db_path, MagicMock()).get_status()
        assert status.exists
        assert status.size_bytes == 2048
        assert status.last_modified.tzinfo is not None


class TestImport:

    def test_import_replaces_database(self, tmp_path, db_path):
        source = tmp_path / "download.xml"
        source.write_bytes(b"<db><subs/></db>")

        result = make_service(db_path, MagicMock()).import_from_file(source)

        assert result.success
        assert result.bytes_written == len(b"<db><subs/></db>")
        assert db_path.read_bytes() == b"<db><subs/></db>"
        assert leftover_temp_files(db_path) == []

    def test_missing_source(self, tmp_path, db_path):
        result = make_service(db_path, MagicMock()).import_from_file(tmp_path / "nope.xml")
        assert not result.success
        assert "does not exist" in result.message

    def test_empty_source_keeps_old_database(self, tmp_path, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"old")
        source = tmp_path / "empty.xml"
        source.write_bytes(b"")

        result = make_service(db_path, MagicMock()).import_from_file(source)

        assert not result.success
        assert "empty" in result.message
        assert db_path.read_bytes() == b"old"
        assert leftover_temp_files(db_path) == []

    def test_cancelled_import(self, tmp_path, db_path):
        source = tmp_path / "download.xml"
        source.write_bytes(b"<db/>")
        cancel = threading.Event()
        cancel.set()

        result = make_service(db_path, MagicMock()).import_from_file(source, cancel)

        assert not result.success
        assert result.message == "Import cancelled"
        assert not db_path.exists()


class TestUpdate:

    def test_primary_success(self, db_path):
        session = make_session(make_response())
        result = make_service(db_path, session).update()

        assert result.success
        assert result.source == PRIMARY
        assert result.errors == []
        assert db_path.read_bytes() == b"<db><subs name_jp='A'/></db>"
        session.get.assert_called_once_with(PRIMARY, auth=SUBSHARE_AUTH, stream=True, timeout=7)

    def test_falls_back_to_backup(self, db_path):
        session = make_session(requests.ConnectionError("primary down"), make_response())
        result = make_service(db_path, session).update()

        assert result.success
        assert result.source == BACKUP
        assert len(result.errors) == 1
        assert result.errors[0].startswith("primary:")
        _, kwargs = session.get.call_args
        assert kwargs["auth"] is None

    def test_http_error_falls_back(self, db_path):
        session = make_session(make_response(error=requests.HTTPError("404")), make_response())
        assert make_service(db_path, session).update().source == BACKUP

    def test_empty_download_is_rejected(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_bytes(b"old")
        session = make_session(make_response(chunks=()), make_response(chunks=(b"",)))

        result = make_service(db_path, session).update()

        assert not result.success
        assert result.message.startswith("All sources failed")
        assert len(result.errors) == 2
        assert db_path.read_bytes() == b"old"
        assert leftover_temp_files(db_path) == []

    def test_all_sources_fail(self, db_path):
        session = make_session(requests.Timeout("slow"), requests.ConnectionError("down"))
        result = make_service(db_path, session).update()
        assert not result.success
        assert "primary: slow" in result.message
        assert "backup: down" in result.message

    def test_cancelled_download(self, db_path):
        cancel = threading.Event()
        cancel.set()
        session = make_session(make_response())

        result = make_service(db_path, session).update(cancel)

        assert not result.success
        assert result.message == "Download cancelled"
        assert not db_path.exists()
        assert leftover_temp_files(db_path) == []
