"""
Tests for target scanning and scan-state persistence.
"""

import json
import pytest

from anime_organizer.anime_organizer.scanner import scan_target, is_candidate_folder
from anime_organizer.anime_organizer.cache import (
    save_scan_state, load_scan_state, clear_scan_state, get_state_path, STATE_VERSION
)
from anime_organizer.anime_organizer.models import (
    AnimeFolderInfo, FolderState, ProviderError, VerificationStatus
)
from anime_organizer.anime_organizer.logging import FileError
from anime_organizer.anime_organizer.constants import SCAN_STATE_FILENAME


@pytest.fixture
def library(tmp_path):
    root = tmp_path / "anime"
    root.mkdir()
    for name in ("b Bocchi", "A Frieren", ".hidden", "C Suzume"):
        (root / name).mkdir()
    (root / "notes.txt").write_text("not a folder")
    return root


class TestScanner:

    def test_lists_visible_subfolders_sorted(self, library):
        folders = scan_target(library)
        assert [f.original_folder_name for f in folders] == ["A Frieren", "b Bocchi", "C Suzume"]
        assert all(f.state == FolderState.UNPROCESSED for f in folders)
        assert folders[0].original_path == library / "A Frieren"

    def test_candidate_filter(self, library):
        assert is_candidate_folder(library / "A Frieren")
        assert not is_candidate_folder(library / ".hidden")
        assert not is_candidate_folder(library / "notes.txt")

    def test_missing_target(self, tmp_path):
        with pytest.raises(FileError):
            scan_target(tmp_path / "missing")

    def test_file_target(self, library):
        with pytest.raises(FileError):
            scan_target(library / "notes.txt")


class TestScanState:

    def make_folders(self, root):
        identified = AnimeFolderInfo(
            original_path=root / "Frieren", original_folder_name="Frieren",
            title_jp="葬送のフリーレン", title_tw="葬送的芙莉蓮", year=2023, type="TV",
            state=FolderState.VERIFIED, verification_status=VerificationStatus.VERIFIED,
            is_identified=True, selected_title="葬送的芙莉蓮", subshare_key="葬送のフリーレン_TV",
        )
        failed = AnimeFolderInfo(
            original_path=root / "Unknown", original_folder_name="Unknown",
            state=FolderState.PROVISIONAL, provider_error=ProviderError.QUOTA_EXCEEDED,
        )
        return [identified, failed]

    def test_round_trip(self, tmp_path):
        folders = self.make_folders(tmp_path)
        assert save_scan_state(tmp_path, folders)

        loaded = load_scan_state(tmp_path)
        assert loaded == folders
        assert loaded[1].provider_error == ProviderError.QUOTA_EXCEEDED

    def test_default_and_custom_paths(self, tmp_path):
        assert get_state_path(tmp_path) == tmp_path / SCAN_STATE_FILENAME
        custom = tmp_path / "elsewhere" / "state.json"
        assert get_state_path(tmp_path, custom) == custom

        assert save_scan_state(tmp_path, self.make_folders(tmp_path), custom)
        assert custom.exists()
        assert load_scan_state(tmp_path) is None
        assert len(load_scan_state(tmp_path, custom)) == 2

    def test_file_contents(self, tmp_path):
        save_scan_state(tmp_path, self.make_folders(tmp_path))
        payload = json.loads(get_state_path(tmp_path).read_text(encoding="utf-8"))
        assert payload["version"] == STATE_VERSION
        assert payload["folders"][0]["state"] == "verified"
        assert payload["folders"][1]["provider_error"] == "quota-exceeded"

    @pytest.mark.parametrize("content", ["{not json", '{"version": 99, "folders": []}', '{"version": 1, "folders": [{}]}'])
    def test_unusable_state(self, tmp_path, content):
        get_state_path(tmp_path).write_text(content, encoding="utf-8")
        assert load_scan_state(tmp_path) is None

    def test_state_of_other_target_is_ignored(self, tmp_path):
        state = tmp_path / "state.json"
        save_scan_state(tmp_path / "one", self.make_folders(tmp_path), state)
        assert load_scan_state(tmp_path / "two", state) is None
        assert load_scan_state(tmp_path / "one", state) is not None

    def test_clear(self, tmp_path):
        save_scan_state(tmp_path, [])
        assert clear_scan_state(tmp_path)
        assert not clear_scan_state(tmp_path)
        assert load_scan_state(tmp_path) is None
