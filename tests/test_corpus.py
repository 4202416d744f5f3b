"""
Tests for the SubShare corpus loader.
"""

import threading
import pytest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from anime_organizer.anime_organizer.corpus import (
    LoadError, load_corpus, count_raw_tags, parse_time, normalize_repo_path,
    compute_fingerprint, SnapshotBuilder
)
from anime_organizer.anime_organizer.models import TitleRecord
from anime_organizer.anime_organizer.logging import OperationCancelled


ATTRIBUTE_XML = """<?xml version="1.0" encoding="utf-8"?>
<db>
  <subs time="1700000000" name_jp="葬送のフリーレン" name_cht="葬送的芙莉蓮" name_chs="葬送的芙莉莲"
        name_en="Frieren" name_rome="Sousou no Frieren" type="TV" path="Frieren/TV.zip"
        source="BD" providers="someone" desc="S1"/>
  <subs time="2021-04-01T00:00:00Z" name_jp="ぼっち・ざ・ろっく！" name_en="Bocchi the Rock!" type="TV"/>
</db>
"""

CHILD_XML = """<?xml version="1.0" encoding="utf-8"?>
<db>
  <subs name_jp="from attribute">
    <name_jp>from child</name_jp>
    <name_en>Suzume</name_en>
    <type>Movie</type>
    <time>not a time</time>
  </subs>
</db>
"""

WRAPPED_XML = '<subs_db><subs name_jp="すずめの戸締まり" name_en="Suzume" type="Movie"/></subs_db>'

REAL_STAT = Path.stat


def denying_stat(filename):
    """Path.stat replacement that raises PermissionError for one file name."""
    def stat(self, *args, **kwargs):
        if self.name == filename:
            raise PermissionError(13, "denied")
        return REAL_STAT(self, *args, **kwargs)
    return stat


def write(tmp_path, text, name="db.xml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestParsingHelpers:

    def test_parse_time(self):
        assert parse_time("1700000000") == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert parse_time("2021-04-01T00:00:00Z") == datetime(2021, 4, 1, tzinfo=timezone.utc)
        assert parse_time("2021/04/01") == datetime(2021, 4, 1, tzinfo=timezone.utc)
        assert parse_time("not a time") is None
        assert parse_time("") is None
        assert parse_time(None) is None

    def test_normalize_repo_path(self):
        assert normalize_repo_path("\\Frieren\\TV.zip") == "subs_list/Frieren/TV.zip"
        assert normalize_repo_path("subs_list/a.zip") == "subs_list/a.zip"
        assert normalize_repo_path("  ") == ""
        assert normalize_repo_path(None) == ""

    def test_fingerprint(self, tmp_path):
        assert compute_fingerprint(tmp_path / "missing.xml").is_missing
        path = write(tmp_path, ATTRIBUTE_XML)
        fingerprint = compute_fingerprint(path)
        assert fingerprint.size == path.stat().st_size
        assert str(fingerprint) != "missing"


class TestRawTagCount:

    def test_counts_case_insensitively(self, tmp_path):
        path = write(tmp_path, "<db><subs/><SUBS/><Subs a='1'/></db>")
        assert count_raw_tags(path) == 3

    @pytest.mark.parametrize("chunk_chars", [1, 2, 3, 4, 5, 7, 64])
    def test_tags_split_across_chunks(self, tmp_path, chunk_chars):
        text = "<db>" + "<subs x='1'/>" * 17 + "</db>"
        path = write(tmp_path, text)
        assert count_raw_tags(path, chunk_chars=chunk_chars) == 17

    def test_ignores_longer_tag_names(self, tmp_path):
        path = write(tmp_path, "<subs_db><subs a='1'/><subscription/><SUBS\n b='2'>x</SUBS><subs></subs></subs_db>")
        assert count_raw_tags(path) == 3

    @pytest.mark.parametrize("chunk_chars", [1, 2, 5, 6, 7, 64])
    def test_longer_tag_names_split_across_chunks(self, tmp_path, chunk_chars):
        text = "<subs_db>" + "<subs x='1'/><subscription/><subs_list>" * 9 + "</subs_db>"
        path = write(tmp_path, text)
        assert count_raw_tags(path, chunk_chars=chunk_chars) == 9

    def test_unterminated_tag_at_end_of_file(self, tmp_path):
        assert count_raw_tags(write(tmp_path, "<db><subs")) == 0


class TestLoadCorpus:

    def test_missing_file(self, tmp_path):
        snapshot = load_corpus(tmp_path / "db.xml")
        assert snapshot.record_count == 0
        assert snapshot.fingerprint.is_missing

    def test_wrapper_tag_does_not_trigger_fallback(self, tmp_path):
        path = write(tmp_path, WRAPPED_XML)
        with patch("anime_organizer.anime_organizer.corpus.document_parse") as fallback:
            snapshot = load_corpus(path)
        assert snapshot.record_count == 1
        assert snapshot.raw_tag_count == 1
        fallback.assert_not_called()

    def test_unreadable_file_is_a_load_error(self, tmp_path):
        path = write(tmp_path, ATTRIBUTE_XML)
        with patch.object(Path, "stat", denying_stat("db.xml")):
            outcome = load_corpus(path)
        assert isinstance(outcome, LoadError)
        assert "denied" in outcome.message

    def test_attribute_form(self, tmp_path):
        snapshot = load_corpus(write(tmp_path, ATTRIBUTE_XML))
        assert snapshot.record_count == 2
        assert snapshot.raw_tag_count == 2

        frieren = snapshot.records[0]
        assert frieren.key == "葬送のフリーレン_TV"
        assert frieren.name_cht == "葬送的芙莉蓮"
        assert frieren.repo_relative_path == "subs_list/Frieren/TV.zip"
        assert frieren.uploader == "someone"
        assert frieren.updated_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)

        bocchi = snapshot.records[1]
        assert bocchi.name_chs == ""
        assert bocchi.updated_at == datetime(2021, 4, 1, tzinfo=timezone.utc)

    def test_child_form_and_attribute_precedence(self, tmp_path):
        snapshot = load_corpus(write(tmp_path, CHILD_XML))
        record = snapshot.records[0]
        assert record.name_jp == "from attribute"
        assert record.name_en == "Suzume"
        assert record.type == "Movie"
        assert record.updated_at is None

    def test_truncated_file_uses_fallback(self, tmp_path):
        truncated = (
            "<db>"
            "<subs name_jp='A' type='TV'/>"
            "<subs name_jp='B' type='TV'/>"
            "<subs name_jp='C' type='TV'/>"
            "<subs name_jp='D"
        )
        outcome = load_corpus(write(tmp_path, truncated))
        assert not isinstance(outcome, LoadError)
        names = [r.name_jp for r in outcome.records]
        assert names[:3] == ["A", "B", "C"]

    def test_silent_stream_failure_triggers_fallback(self, tmp_path):
        path = write(tmp_path, ATTRIBUTE_XML)
        single = SnapshotBuilder()
        single.add(TitleRecord(key="only_TV", name_jp="only"))

        with patch("anime_organizer.anime_organizer.corpus.stream_parse", return_value=single):
            snapshot = load_corpus(path)

        assert snapshot.record_count == 2

    def test_fallback_must_be_strictly_larger(self, tmp_path):
        path = write(tmp_path, ATTRIBUTE_XML)
        single = SnapshotBuilder()
        single.add(TitleRecord(key="only_TV", name_jp="only"))
        also_single = SnapshotBuilder()
        also_single.add(TitleRecord(key="other_TV", name_jp="other"))

        with patch("anime_organizer.anime_organizer.corpus.stream_parse", return_value=single), \
             patch("anime_organizer.anime_organizer.corpus.document_parse", return_value=also_single):
            snapshot = load_corpus(path)

        assert [r.key for r in snapshot.records] == ["only_TV"]

    def test_garbage_is_load_error(self, tmp_path):
        outcome = load_corpus(write(tmp_path, "this is not xml <<<"))
        assert isinstance(outcome, LoadError)
        assert outcome.message

    def test_cancellation_propagates(self, tmp_path):
        path = write(tmp_path, ATTRIBUTE_XML)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            load_corpus(path, cancel)
