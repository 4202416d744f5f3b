import os
import shutil
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Set

from .models import AnimeFolderInfo, RenameHistoryEntry
from .analysis import sanitize_filename
from .naming import render_name
from .history import (
    HistoryStore,
    normalize_history_path,
    STATUS_SUCCESS,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_RESTORE_SUCCESS,
    STATUS_RESTORE_FAILED,
    STATUS_RESTORE_SKIPPED,
)
from .constants import MAX_PATH_LENGTH

logger = logging.getLogger(__name__)

MSG_PATH_TOO_LONG = "Path too long"
MSG_SOURCE_MISSING = "Source does not exist"
MSG_LOCKED = "Folder is in use"
MSG_TARGET_EXISTS = "Target already exists"
MSG_RENAMED = "Renamed"
MSG_RESTORED = "Restored"
MSG_DRY_RUN = "Dry run"


@dataclass
class FolderRenameOp:
    folder: AnimeFolderInfo
    current_path: Path
    target_name: str

    @property
    def target_path(self) -> Path:
        return self.current_path.parent / self.target_name


@dataclass
class RenameOutcome:
    op: FolderRenameOp
    status: str
    message: str


@dataclass
class RenameSummary:
    outcomes: List[RenameOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self.count(STATUS_SUCCESS)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


def is_path_length_valid(path: Path) -> bool:
    return len(str(path)) < MAX_PATH_LENGTH


def is_directory_locked(directory: Path) -> bool:
    """
    True when any file below `directory` cannot be opened for writing.
    A folder we cannot walk counts as locked.
    """
    if not directory.is_dir():
        return True
    try:
        for dirpath, _, filenames in os.walk(directory):
            for filename in filenames:
                try:
                    with open(os.path.join(dirpath, filename), 'r+b'):
                        pass
                except OSError:
                    return True
    except OSError:
        return True
    return False


def should_rename(folder: AnimeFolderInfo) -> bool:
    """Unidentified folders are renamed only on a user-chosen title and never after a provider error."""
    if folder.is_identified:
        return True
    if not folder.selected_title or not folder.selected_title.strip():
        return False
    return folder.provider_error is None


def get_target_name(folder: AnimeFolderInfo, naming_format: Optional[str]) -> str:
    return sanitize_filename(render_name(folder, naming_format))


def generate_rename_plan(folders: List[AnimeFolderInfo],
                         naming_format: Optional[str] = None) -> List[FolderRenameOp]:
    """Rename operations for every folder whose suggested name differs from its current one."""
    plan = []
    for folder in folders:
        if not should_rename(folder):
            continue
        target_name = get_target_name(folder, naming_format)
        current_path = Path(folder.original_path)
        if not target_name or target_name.casefold() == current_path.name.casefold():
            continue
        plan.append(FolderRenameOp(folder=folder, current_path=current_path, target_name=target_name))
    return plan


class FolderRenamer:
    """Applies rename plans and restores history entries, logging every attempt."""

    def __init__(self, history: Optional[HistoryStore] = None):
        self.history = history

    def _record(self, original: Path, new: Path, status: str, message: str) -> None:
        if self.history is None:
            return
        try:
            self.history.add(original, new, status, message)
        except Exception as e:
            logger.error(f"Failed to write history for {original}: {e}")

    def execute_rename_op(self, op: FolderRenameOp, planned: Set[str]) -> RenameOutcome:
        """
        Validates and performs one folder move. `planned` holds normalized
        targets already claimed in this run.
        """
        source = op.current_path
        target = op.target_path

        if not is_path_length_valid(target):
            status, message = STATUS_SKIPPED, MSG_PATH_TOO_LONG
        elif not source.is_dir():
            status, message = STATUS_FAILED, MSG_SOURCE_MISSING
        elif is_directory_locked(source):
            status, message = STATUS_SKIPPED, MSG_LOCKED
        elif normalize_history_path(target) in planned or target.exists():
            status, message = STATUS_SKIPPED, MSG_TARGET_EXISTS
        else:
            try:
                shutil.move(str(source), str(target))
            except (OSError, shutil.Error) as e:
                status, message = STATUS_FAILED, str(e)
            else:
                status, message = STATUS_SUCCESS, MSG_RENAMED
                planned.add(normalize_history_path(target))
                op.folder.update_original_path(target)

        if status == STATUS_SUCCESS:
            logger.info(f"Renamed '{source.name}' -> '{target.name}'")
        else:
            logger.error(f"Rename {status.lower()} for {source}: {message}")
        self._record(source, target, status, message)
        return RenameOutcome(op=op, status=status, message=message)

    def execute_rename_plan(self, plan: List[FolderRenameOp], dry_run: bool = False) -> RenameSummary:
        summary = RenameSummary()
        planned: Set[str] = set()
        for op in plan:
            if dry_run:
                logger.info(f"[dry run] '{op.current_path.name}' -> '{op.target_name}'")
                summary.outcomes.append(RenameOutcome(op=op, status=STATUS_SKIPPED, message=MSG_DRY_RUN))
                continue
            summary.outcomes.append(self.execute_rename_op(op, planned))
        logger.info(f"Rename finished: {summary.succeeded} succeeded, {summary.failed} not renamed")
        return summary

    def restore_entry(self, entry: RenameHistoryEntry) -> RenameOutcome:
        """Moves entry.new_path back to entry.original_path."""
        source = Path(entry.new_path)
        target = Path(entry.original_path)
        op = FolderRenameOp(
            folder=AnimeFolderInfo(original_path=source, original_folder_name=source.name),
            current_path=source,
            target_name=target.name,
        )

        if not is_path_length_valid(target):
            status, message = STATUS_RESTORE_SKIPPED, MSG_PATH_TOO_LONG
        elif not source.is_dir():
            status, message = STATUS_RESTORE_FAILED, MSG_SOURCE_MISSING
        elif target.exists():
            status, message = STATUS_RESTORE_SKIPPED, MSG_TARGET_EXISTS
        elif is_directory_locked(source):
            status, message = STATUS_RESTORE_SKIPPED, MSG_LOCKED
        else:
            try:
                shutil.move(str(source), str(target))
            except (OSError, shutil.Error) as e:
                status, message = STATUS_RESTORE_FAILED, str(e)
            else:
                status, message = STATUS_RESTORE_SUCCESS, MSG_RESTORED
                op.folder.update_original_path(target)

        logger.info(f"Restore {source} -> {target}: {status} ({message})")
        self._record(source, target, status, message)
        return RenameOutcome(op=op, status=status, message=message)
