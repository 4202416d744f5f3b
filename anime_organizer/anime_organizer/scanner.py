import logging
from pathlib import Path
from typing import List, Union

from .models import AnimeFolderInfo
from .logging import FileError

logger = logging.getLogger(__name__)


def is_candidate_folder(path: Path) -> bool:
    """Checks if a directory entry is a visible sub-folder worth identifying."""
    return path.is_dir() and not path.name.startswith('.')


def scan_target(root_path: Union[str, Path]) -> List[AnimeFolderInfo]:
    """
    Lists the immediate sub-folders of the target directory.

    Each folder is one anime candidate; nested folders (seasons, extras)
    belong to their parent and are not scanned separately.
    """
    root = Path(root_path)
    if not root.exists():
        raise FileError(f"Target path does not exist: {root}")
    if not root.is_dir():
        raise FileError(f"Target path is not a directory: {root}")

    folders: List[AnimeFolderInfo] = []
    try:
        for item in sorted(root.iterdir(), key=lambda p: p.name.casefold()):
            if not is_candidate_folder(item):
                continue
            folders.append(AnimeFolderInfo(original_path=item, original_folder_name=item.name))
    except PermissionError as e:
        logger.warning(f"Permission denied accessing {root}: {e}")

    logger.info(f"Found {len(folders)} folders under {root}")
    return folders
