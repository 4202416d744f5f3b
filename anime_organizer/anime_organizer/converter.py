"""
Traditional/Simplified Chinese script conversion.
"""
import logging
from typing import Optional

import zhconv

logger = logging.getLogger(__name__)


class ScriptConverter:
    """Converts between Chinese scripts. Returns None when conversion fails or input is blank."""

    def to_traditional(self, text: Optional[str]) -> Optional[str]:
        return self._convert(text, "zh-hant")

    def to_simplified(self, text: Optional[str]) -> Optional[str]:
        return self._convert(text, "zh-hans")

    def _convert(self, text: Optional[str], locale: str) -> Optional[str]:
        if not text or not text.strip():
            return None
        try:
            return zhconv.convert(text, locale)
        except (ValueError, KeyError) as e:
            logger.warning(f"Script conversion to {locale} failed for '{text}': {e}")
            return None


# Shared instance; conversion tables are loaded once by zhconv
converter = ScriptConverter()
