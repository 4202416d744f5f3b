import re
import html
import logging
from typing import Optional

from .constants import CJK_RANGES, NOISE_TOKEN_PATTERNS

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")
# Half- and full-width bracket pairs, non-greedy so adjacent groups are removed separately
BRACKET_RE = re.compile(r"[\(（\[【〈＜<].*?[\)）\]】〉＞>]")
TAG_RE = re.compile(r"<[^>]+>")
MATCH_SYMBOLS = "・･：:！!？?～〜‐‑−-—–."
MATCH_SYMBOLS_RE = re.compile("[" + re.escape(MATCH_SYMBOLS) + "]")
NOISE_RE = re.compile("|".join(NOISE_TOKEN_PATTERNS), re.IGNORECASE)
SEPARATOR_RE = re.compile(r"[\s._\-+~]+")


def normalize_title(text: Optional[str]) -> str:
    """
    Canonical form used for indexing and querying the title corpus.

    Trims, drops every whitespace character (full-width space included)
    and lowercases. Index build and queries must both go through here.
    """
    if not text:
        return ""
    return WHITESPACE_RE.sub("", text.strip()).lower()


def strip_brackets(text: Optional[str]) -> str:
    """Removes bracketed segments, leaving the surrounding text trimmed."""
    if not text or not text.strip():
        return ""
    return BRACKET_RE.sub("", text.strip()).strip()


def normalize_for_verification(text: Optional[str]) -> str:
    """
    Looser normalization for comparing against an external title database.
    Strips bracketed segments, markup, entities and punctuation before
    applying the same whitespace/case rules as normalize_title.
    """
    if not text or not text.strip():
        return ""
    cleaned = BRACKET_RE.sub("", text)
    cleaned = TAG_RE.sub("", cleaned)
    cleaned = html.unescape(cleaned)
    cleaned = MATCH_SYMBOLS_RE.sub("", cleaned)
    return normalize_title(cleaned)


def clean_folder_name(name: Optional[str]) -> str:
    """
    Strips release noise from a folder name: bracketed groups, resolution,
    codec, container and encoder tokens.

    Example:
        "[VCB-Studio] Sousou no Frieren [Ma10p_1080p][x265_flac]" -> "Sousou no Frieren"
    """
    if not name:
        return ""
    cleaned = BRACKET_RE.sub(" ", name)
    cleaned = NOISE_RE.sub(" ", cleaned)
    cleaned = SEPARATOR_RE.sub(" ", cleaned)
    return cleaned.strip()


def is_cjk_char(ch: str) -> bool:
    code = ord(ch)
    return any(start <= code <= end for start, end in CJK_RANGES)


def contains_cjk(text: Optional[str]) -> bool:
    """True when the text has at least one CJK ideograph."""
    if not text:
        return False
    return any(is_cjk_char(ch) for ch in text)


def sanitize_filename(name: str) -> str:
    """
    Sanitizes a string for use as a directory name.
    Replaces illegal characters (| : ? * < > " / \\) with full-width equivalents.
    """
    if not name:
        return "Unknown"

    replacements = {
        "|": "｜", ":": "：", "?": "？", "*": "＊",
        "<": "＜", ">": "＞", "\"": "＂", "/": "／", "\\": "＼"
    }

    sanitized = name
    for char, rep in replacements.items():
        sanitized = sanitized.replace(char, rep)

    # Trailing dots and spaces are rejected by Windows
    return sanitized.strip(" .")
