"""
Shared HTTP plumbing for LLM-backed metadata providers.

Subclasses describe how to build a request for a prompt and where the
answer text lives in the response; retry, backoff, status mapping and
response parsing live here.
"""
import time
import random
import logging
import threading
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from .base import MetadataProvider, ModelCatalogProvider, ProviderResult, fill_error
from .pacing import RequestPacer, compute_backoff, parse_retry_after, is_quota_exhausted
from ..models import ProviderError
from ..ai_api import build_user_prompt, get_system_prompt, parse_items_response
from ..logging import check_cancelled, log_api_call
from ..constants import (
    PROVIDER_MAX_RETRIES,
    PROVIDER_COOLDOWN_SECONDS,
    PROVIDER_BACKOFF_BASE_SECONDS,
    PROVIDER_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

# Status codes that map straight to a provider error without retrying
STATUS_ERRORS = {
    401: ProviderError.NO_KEY,
    403: ProviderError.NO_KEY,
    402: ProviderError.QUOTA_EXCEEDED,
    404: ProviderError.MODEL_NOT_FOUND,
}


@dataclass
class HttpRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None


class LlmMetadataProvider(MetadataProvider, ModelCatalogProvider):
    """Base class for providers that send the identification prompt to a chat model."""

    name = "llm"
    default_model = ""
    default_base_url = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = PROVIDER_MAX_RETRIES,
        cooldown_seconds: float = PROVIDER_COOLDOWN_SECONDS,
        backoff_base_seconds: float = PROVIDER_BACKOFF_BASE_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[float, float], float] = random.uniform,
    ):
        self.api_key = (api_key or "").strip() or None
        self.model = self.normalize_model_name(model)
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base_seconds = backoff_base_seconds
        self.session = session or requests.Session()
        self._sleep = sleep
        self._rand = rand
        self.pacer = RequestPacer(cooldown_seconds, name=self.name, sleep=sleep)
        self._models_cache: Optional[List[str]] = None

    def normalize_model_name(self, model: Optional[str]) -> str:
        return (model or "").strip() or self.default_model

    # --- hooks -----------------------------------------------------------

    @abstractmethod
    def build_request(self, system_prompt: str, user_prompt: str) -> HttpRequest:
        ...

    @abstractmethod
    def extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        ...

    @abstractmethod
    def build_models_request(self) -> HttpRequest:
        ...

    @abstractmethod
    def extract_models(self, data: Any) -> List[str]:
        ...

    # --- MetadataProvider ------------------------------------------------

    def analyze_batch(self, names: List[str],
                      cancel: Optional[threading.Event] = None) -> List[ProviderResult]:
        if not names:
            return []
        if not self.api_key:
            logger.warning(f"{self.name}: no API key configured")
            return fill_error(len(names), ProviderError.NO_KEY)

        request = self.build_request(get_system_prompt(), build_user_prompt(names))
        outcome = self.request_json(request, cancel)
        if isinstance(outcome, ProviderError):
            logger.warning(f"{self.name}: batch of {len(names)} failed with {outcome.value}")
            return fill_error(len(names), outcome)
        if outcome is None:
            return [ProviderResult.empty() for _ in names]

        try:
            text = self.extract_text(outcome)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning(f"{self.name}: unexpected response shape: {e}")
            text = None
        if not text:
            return [ProviderResult.empty() for _ in names]

        return [ProviderResult(metadata=m) for m in parse_items_response(text, len(names))]

    # --- ModelCatalogProvider --------------------------------------------

    def list_models(self, refresh: bool = False) -> List[str]:
        if self._models_cache is not None and not refresh:
            return list(self._models_cache)
        if not self.api_key:
            return []

        outcome = self.request_json(self.build_models_request())
        if outcome is None or isinstance(outcome, ProviderError):
            return []
        try:
            models = sorted(set(self.extract_models(outcome)))
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"{self.name}: unexpected models response: {e}")
            return []
        self._models_cache = models
        return list(models)

    # --- HTTP --------------------------------------------------------------

    def _send(self, request: HttpRequest) -> requests.Response:
        log_api_call(request.url, request.method, request.params)
        return self.session.request(
            request.method,
            request.url,
            headers=request.headers,
            params=request.params or None,
            json=request.json,
            timeout=self.timeout,
        )

    def _pause(self, seconds: float, cancel: Optional[threading.Event]) -> None:
        if cancel is not None:
            cancel.wait(seconds)
            check_cancelled(cancel, f"{self.name} request")
        else:
            self._sleep(seconds)

    def request_json(self, request: HttpRequest,
                     cancel: Optional[threading.Event] = None) -> Union[Dict[str, Any], ProviderError, None]:
        """
        Sends `request` through the pacer with the 429/5xx retry policy.

        Returns the decoded JSON body, a ProviderError, or None when the
        provider answered but with nothing usable.
        """
        for attempt in range(self.max_retries + 1):
            check_cancelled(cancel, f"{self.name} request")
            try:
                response = self.pacer.call(self._send, request)
            except requests.RequestException as e:
                logger.warning(f"{self.name}: request failed (attempt {attempt + 1}): {e}")
                if attempt >= self.max_retries:
                    return ProviderError.TRANSIENT
                self._pause(compute_backoff(attempt, self.backoff_base_seconds, rand=self._rand), cancel)
                continue

            status = response.status_code
            if status in STATUS_ERRORS:
                logger.error(f"{self.name}: HTTP {status} - {response.text[:200]}")
                return STATUS_ERRORS[status]

            if status == 429:
                body = response.text
                if is_quota_exhausted(body):
                    return ProviderError.QUOTA_EXCEEDED
                if attempt >= self.max_retries:
                    return ProviderError.RATE_LIMITED
                backoff = compute_backoff(attempt, self.backoff_base_seconds, rand=self._rand)
                retry_after = parse_retry_after(response.headers, body)
                delay = max(retry_after, backoff) if retry_after is not None else backoff
                logger.warning(f"{self.name}: rate limited, retrying in {delay:.1f}s")
                self._pause(delay, cancel)
                continue

            if status >= 500:
                logger.warning(f"{self.name}: server error {status} (attempt {attempt + 1})")
                if attempt >= self.max_retries:
                    return ProviderError.TRANSIENT
                self._pause(compute_backoff(attempt, self.backoff_base_seconds, rand=self._rand), cancel)
                continue

            if status >= 400:
                logger.error(f"{self.name}: HTTP {status} - {response.text[:200]}")
                return None

            try:
                return response.json()
            except ValueError as e:
                logger.warning(f"{self.name}: response is not JSON: {e}")
                return None

        return ProviderError.TRANSIENT

    def close(self) -> None:
        self.pacer.close()
        self.session.close()
