"""
Request pacing and backoff for metadata providers.

Each provider instance owns one RequestPacer. The pacer's worker thread is
the only code that reads or writes the last-request timestamp; callers hand
it work through a queue and wait on a Future, so outbound requests from one
provider are serialized and spaced by the cooldown.
"""
import re
import time
import queue
import random
import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional

from ..constants import PROVIDER_COOLDOWN_SECONDS, PROVIDER_BACKOFF_JITTER_SECONDS

logger = logging.getLogger(__name__)

RETRY_IN_RE = re.compile(r"retry in\s+(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
RETRY_DELAY_RE = re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"', re.IGNORECASE)
QUOTA_MARKERS = ("limit: 0", "quota exceeded")


def compute_backoff(attempt: int, base_seconds: float,
                    jitter_seconds: float = PROVIDER_BACKOFF_JITTER_SECONDS,
                    rand: Callable[[float, float], float] = random.uniform) -> float:
    """Exponential backoff: base * 2**attempt plus up to `jitter_seconds` of jitter."""
    return base_seconds * (2 ** attempt) + rand(0.0, jitter_seconds)


def parse_retry_after(headers: Optional[Mapping[str, str]], body: Optional[str]) -> Optional[float]:
    """
    Seconds the server asked us to wait, from the Retry-After header
    (delta-seconds or HTTP date) or a "retry in Ns" hint in the body.
    """
    value = None
    if headers:
        value = headers.get("Retry-After") or headers.get("retry-after")
    if value:
        value = value.strip()
        try:
            return max(0.0, float(value))
        except ValueError:
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

    if body:
        match = RETRY_IN_RE.search(body) or RETRY_DELAY_RE.search(body)
        if match:
            return float(match.group(1))
    return None


def is_quota_exhausted(body: Optional[str]) -> bool:
    """A 429 whose body says the quota is zero or used up will not recover by waiting."""
    if not body:
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


class RequestPacer:
    """
    Serializes calls through one worker thread and enforces a minimum gap
    between the start of consecutive calls.
    """

    def __init__(self, cooldown_seconds: float = PROVIDER_COOLDOWN_SECONDS, name: str = "provider",
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.cooldown_seconds = cooldown_seconds
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._last_request: Optional[float] = None
        self._closed = False
        self._thread = threading.Thread(target=self._worker, name=f"{name}-pacer", daemon=True)
        self._thread.start()

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        if self._closed:
            raise RuntimeError(f"Pacer for {self.name} is closed")
        future: Future = Future()
        self._queue.put((future, fn, args, kwargs))
        return future

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Runs `fn` on the pacer thread and returns (or raises) its result."""
        return self.submit(fn, *args, **kwargs).result()

    def close(self, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)  # Sentinel to stop worker
        if wait and threading.current_thread() is not self._thread:
            self._thread.join()

    def _wait_for_slot(self) -> None:
        if self._last_request is None or self.cooldown_seconds <= 0:
            return
        remaining = self.cooldown_seconds - (self._clock() - self._last_request)
        if remaining > 0:
            logger.debug(f"{self.name}: cooling down {remaining:.2f}s")
            self._sleep(remaining)

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break

            future, fn, args, kwargs = item
            try:
                if not future.set_running_or_notify_cancel():
                    continue
                self._wait_for_slot()
                self._last_request = self._clock()
                try:
                    result = fn(*args, **kwargs)
                except BaseException as e:
                    future.set_exception(e)
                else:
                    future.set_result(result)
            finally:
                self._queue.task_done()
