"""
Folder naming templates.

Templates use the placeholders {Title}, {TitleTW}, {TitleCN}, {TitleJP},
{TitleEN}, {Type}, {Year} and {Original}. A "({Year})" or "({Type})" group
disappears entirely when the value is missing.
"""
import re
import logging
from typing import Optional

from .models import AnimeFolderInfo
from .config import NamingLanguage
from .converter import ScriptConverter, converter as default_converter
from .constants import DEFAULT_NAMING_FORMAT, KNOWN_TYPES

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"(\{(?:Title|TitleTW|TitleCN|TitleJP|TitleEN|Type|Year|Original)\})")
TITLE_PLACEHOLDERS = {"{Title}", "{TitleTW}", "{TitleCN}", "{TitleJP}", "{TitleEN}", "{Original}"}
MULTI_SPACE_RE = re.compile(r"[ \t]{2,}")


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def render_name(info: AnimeFolderInfo, fmt: Optional[str] = None) -> str:
    """
    Suggested folder name for `info` under template `fmt`.

    Uses the selected title, else the analyzed title; with neither the
    original folder name is returned unchanged.
    """
    title = info.selected_title if not _blank(info.selected_title) else info.analyzed_title
    if _blank(title):
        return info.original_folder_name

    template = fmt if not _blank(fmt) else DEFAULT_NAMING_FORMAT
    if info.year is None:
        template = template.replace("({Year})", "")
    if _blank(info.type):
        template = template.replace("({Type})", "")

    name = (
        template
        .replace("{Title}", title)
        .replace("{TitleTW}", info.title_tw or title)
        .replace("{TitleCN}", info.title_cn or title)
        .replace("{TitleJP}", info.title_jp or title)
        .replace("{TitleEN}", info.title_en or title)
        .replace("{Type}", (info.type or "").strip())
        .replace("{Year}", str(info.year) if info.year is not None else "")
        .replace("{Original}", info.original_folder_name)
    )
    return MULTI_SPACE_RE.sub(" ", name).strip()


def build_organized_pattern(fmt: Optional[str] = None) -> Optional[re.Pattern]:
    """
    Regex matching folder names that already follow template `fmt`.

    Title placeholders match any text without square brackets, {Year} a
    four-digit year and {Type} a known type word. Returns None when the
    template has nothing but title placeholders, since every name would match it.
    """
    template = (fmt if not _blank(fmt) else DEFAULT_NAMING_FORMAT).strip()
    pieces = []
    anchored = False
    for part in PLACEHOLDER_RE.split(template):
        if not part:
            continue
        if part in TITLE_PLACEHOLDERS:
            pieces.append(r"[^\[\]【】]+?")
        elif part == "{Year}":
            pieces.append(r"(?:19|20)\d{2}")
            anchored = True
        elif part == "{Type}":
            pieces.append("(?:" + "|".join(re.escape(t) for t in KNOWN_TYPES) + ")")
            anchored = True
        else:
            if part.strip():
                anchored = True
            pieces.append(r"\s+".join(re.escape(chunk) for chunk in re.split(r"\s+", part)))
    if not anchored:
        return None
    return re.compile("^" + "".join(pieces) + "$", re.IGNORECASE)


def matches_template(folder_name: str, fmt: Optional[str] = None) -> bool:
    pattern = build_organized_pattern(fmt)
    return bool(pattern and pattern.match(folder_name.strip()))


def get_preferred_title(info: AnimeFolderInfo, language: NamingLanguage,
                        text_converter: Optional[ScriptConverter] = None) -> Optional[str]:
    """
    Display title in the preferred language. Chinese preferences fall back
    to a script-converted title from the other languages.
    """
    conv = text_converter or default_converter

    def first(*titles: Optional[str]) -> Optional[str]:
        for title in titles:
            if not _blank(title):
                return title
        return None

    language = NamingLanguage(language)
    if language == NamingLanguage.TRADITIONAL_CHINESE:
        if not _blank(info.title_tw):
            return info.title_tw
        return conv.to_traditional(first(info.title_cn, info.title_jp, info.title_en))
    if language == NamingLanguage.SIMPLIFIED_CHINESE:
        if not _blank(info.title_cn):
            return info.title_cn
        return conv.to_simplified(first(info.title_tw, info.title_jp, info.title_en))
    if language == NamingLanguage.JAPANESE:
        return first(info.title_jp, info.title_tw, info.title_cn, info.title_en)
    if language == NamingLanguage.ENGLISH:
        return first(info.title_en, info.title_jp, info.title_tw, info.title_cn)
    return first(info.title_tw, info.title_cn, info.title_jp, info.title_en)
