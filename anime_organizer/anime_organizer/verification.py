"""
Cross-checks provider titles against the AnimeDB title search.
"""
import logging
import threading
from typing import Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from .models import VerificationStatus
from .analysis import strip_brackets, normalize_for_verification
from .net import create_retry_session
from .logging import log_api_call
from . import constants as c

logger = logging.getLogger(__name__)


def extract_titles(html: str) -> List[str]:
    """Titles listed on an AnimeDB search result page."""
    soup = BeautifulSoup(html, "lxml")
    titles = []
    for heading in soup.select(c.ANIMEDB_TITLE_SELECTOR):
        text = heading.get_text(" ", strip=True)
        if text:
            titles.append(text)
    return titles


def is_title_match(requested: str, candidate: str) -> bool:
    """Either normalized title contains the other."""
    normalized = normalize_for_verification(candidate)
    if not normalized or not requested:
        return False
    return requested in normalized or normalized in requested


class AnimeDbVerificationService:
    """
    Verifies titles with one AnimeDB search per distinct title.

    Outcomes, including failures, are cached for the lifetime of the
    service keyed by the bracket-stripped title.
    """

    def __init__(self, search_url: str = c.ANIMEDB_SEARCH_URL, timeout: int = c.ANIMEDB_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        self.search_url = search_url
        self.timeout = timeout
        self.session = session or create_retry_session()
        self._cache: Dict[str, VerificationStatus] = {}
        self._lock = threading.Lock()

    def cached(self, title: Optional[str]) -> Optional[VerificationStatus]:
        with self._lock:
            return self._cache.get(strip_brackets(title))

    def verify(self, title: Optional[str]) -> VerificationStatus:
        query = strip_brackets(title)
        if not query:
            return VerificationStatus.FAILED

        with self._lock:
            if query in self._cache:
                return self._cache[query]

        status = self._lookup(query, title)
        with self._lock:
            self._cache[query] = status
        return status

    def _lookup(self, query: str, title: str) -> VerificationStatus:
        requested = normalize_for_verification(title)
        if not requested:
            return VerificationStatus.FAILED

        params = {"word": query}
        log_api_call(self.search_url, "GET", params)
        try:
            response = self.session.get(
                self.search_url,
                params=params,
                cookies=c.ANIMEDB_TERMS_COOKIE,
                headers={"Accept": "text/html"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"AnimeDB lookup failed for '{query}': {e}")
            return VerificationStatus.FAILED

        titles = extract_titles(response.text)
        matched = any(is_title_match(requested, candidate) for candidate in titles)
        logger.info(f"AnimeDB '{query}': {len(titles)} results, {'verified' if matched else 'no match'}")
        return VerificationStatus.VERIFIED if matched else VerificationStatus.FAILED


class NullVerificationService:
    """Used when verification is disabled: every non-blank title passes."""

    def verify(self, title: Optional[str]) -> VerificationStatus:
        return VerificationStatus.VERIFIED if strip_brackets(title) else VerificationStatus.FAILED
