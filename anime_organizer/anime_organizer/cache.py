"""
Scan-state persistence between CLI invocations.

`scan` saves the reconciled folders so `rename` can apply them later
without querying the provider again.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .models import AnimeFolderInfo
from .constants import SCAN_STATE_FILENAME

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def get_state_path(target: Union[str, Path], state_file: Optional[Union[str, Path]] = None) -> Path:
    """Returns the state file path: the configured one, else a file inside the target directory."""
    if state_file:
        return Path(state_file)
    return Path(target) / SCAN_STATE_FILENAME


def save_scan_state(target: Union[str, Path], folders: List[AnimeFolderInfo],
                    state_file: Optional[Union[str, Path]] = None) -> bool:
    """
    Saves reconciled folders to JSON.

    Returns:
        True if successful, False otherwise.
    """
    path = get_state_path(target, state_file)
    payload = {
        "version": STATE_VERSION,
        "target": str(target),
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "folders": [f.to_dict() for f in folders],
    }
    try:
        logger.info(f"Saving scan state to {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.debug(f"Scan state saved: {len(folders)} folders")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save scan state: {e}")
        return False


def load_scan_state(target: Union[str, Path],
                    state_file: Optional[Union[str, Path]] = None) -> Optional[List[AnimeFolderInfo]]:
    """Loads folders saved by the last scan of `target`, or None when there is no usable state."""
    path = get_state_path(target, state_file)
    if not path.exists():
        logger.debug(f"No scan state found at {path}")
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
        if payload.get("version") != STATE_VERSION:
            logger.warning(f"Ignoring scan state with unknown version {payload.get('version')}")
            return None
        if Path(payload.get("target", "")) != Path(target):
            logger.warning(f"Scan state at {path} belongs to {payload.get('target')}, not {target}")
            return None
        folders = [AnimeFolderInfo.from_dict(item) for item in payload.get("folders", [])]
    except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
        logger.warning(f"Failed to load scan state: {e}")
        return None

    logger.info(f"Loaded scan state: {len(folders)} folders")
    return folders


def clear_scan_state(target: Union[str, Path], state_file: Optional[Union[str, Path]] = None) -> bool:
    path = get_state_path(target, state_file)
    if not path.exists():
        return False
    try:
        path.unlink()
        logger.info(f"Scan state cleared: {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to clear scan state: {e}")
        return False
