import re
import json
import hashlib
import logging
import threading
from typing import Optional, Dict, Any, List

from .models import AnimeMetadata
from .constants import SYSTEM_PROMPT, IDENTIFICATION_PROMPT, OUTPUT_SCHEMA_PROMPT, STABLE_ID_LENGTH

logger = logging.getLogger(__name__)


class TokenTracker:
    """Tracks token usage across the session."""
    def __init__(self):
        self.usage = {}  # model_name -> {"prompt": int, "completion": int}
        self._lock = threading.Lock()

    def add_usage(self, model: str, prompt: int, completion: int):
        with self._lock:
            if model not in self.usage:
                self.usage[model] = {"prompt": 0, "completion": 0}
            self.usage[model]["prompt"] += prompt or 0
            self.usage[model]["completion"] += completion or 0

    def get_summary(self) -> Dict[str, Dict[str, int]]:
        return self.usage


# Global instance
tracker = TokenTracker()


def build_user_prompt(names: List[str]) -> str:
    """
    Builds the identification prompt for a batch of folder names.
    Each name goes on its own line as `[i] "name"` so the model can echo the index.
    """
    lines = "\n".join(f'[{i}] "{name}"' for i, name in enumerate(names))
    return f"{IDENTIFICATION_PROMPT}\n\nFolder Names:\n{lines}\n\n{OUTPUT_SCHEMA_PROMPT}"


def get_system_prompt() -> str:
    return SYSTEM_PROMPT


def clean_ai_response(text: str) -> str:
    """
    Removes 'thinking' or 'reasoning' blocks some models emit before their answer.
    Handles <think>...</think>, <thinking>...</thinking> and <reasoning>...</reasoning>.
    """
    if not text:
        return ""

    cleaned = re.sub(r'<think>.*?</think>', '', text, flags=re.DOTALL)
    cleaned = re.sub(r'<thinking>.*?</thinking>', '', cleaned, flags=re.DOTALL)
    cleaned = re.sub(r'<reasoning>.*?</reasoning>', '', cleaned, flags=re.DOTALL)

    return cleaned.strip()


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Extracts the first JSON object found in a string.
    Resilient to preambles, postambles, and markdown blocks.
    """
    if not text:
        return None

    text = clean_ai_response(text)

    try:
        data = json.loads(text.strip())
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    # ```json ... ``` fences
    md_match = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', text, re.DOTALL | re.IGNORECASE)
    if md_match:
        try:
            return json.loads(md_match.group(1))
        except json.JSONDecodeError:
            pass

    first_brace = text.find('{')
    last_brace = text.rfind('}')
    if first_brace != -1 and last_brace != -1 and last_brace > first_brace:
        try:
            return json.loads(text[first_brace:last_brace + 1])
        except json.JSONDecodeError:
            pass

    logger.warning(f"Failed to extract JSON from AI response. Preview: {text[:200]}...")
    return None


def generate_stable_id(title_jp: Optional[str], year: Optional[int], anime_type: Optional[str]) -> str:
    """
    Deterministic id for a work: SHA-1 of "titleJP|year|type", first 12 hex chars.
    """
    raw = f"{(title_jp or '').strip()}|{year if year is not None else ''}|{(anime_type or '').strip()}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:STABLE_ID_LENGTH]


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_year(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = re.search(r"\d{4}", str(value or ""))
    return int(match.group(0)) if match else None


def _parse_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, confidence))


def item_to_metadata(item: Dict[str, Any]) -> AnimeMetadata:
    title_jp = _text_or_none(item.get("titleJP"))
    year = _parse_year(item.get("year"))
    anime_type = _text_or_none(item.get("type"))
    return AnimeMetadata(
        id=_text_or_none(item.get("id")) or generate_stable_id(title_jp, year, anime_type),
        title_jp=title_jp,
        title_cn=_text_or_none(item.get("titleCN")),
        title_tw=_text_or_none(item.get("titleTW")),
        title_en=_text_or_none(item.get("titleEN")),
        type=anime_type,
        year=year,
        confidence=_parse_confidence(item.get("confidence")),
    )


def parse_items_response(text: str, count: int) -> List[Optional[AnimeMetadata]]:
    """
    Maps a model answer of the form {"items": [{"index": i, ...}]} back onto
    the input positions. Positions the model skipped stay None, and an
    unreadable answer yields None for every position.
    """
    results: List[Optional[AnimeMetadata]] = [None] * count
    data = extract_json(text)
    if not data:
        return results

    items = data.get("items")
    if not isinstance(items, list):
        logger.warning("AI response has no 'items' list")
        return results

    for position, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        index = item.get("index", position)
        try:
            index = int(index)
        except (TypeError, ValueError):
            continue
        if 0 <= index < count:
            results[index] = item_to_metadata(item)
    return results
