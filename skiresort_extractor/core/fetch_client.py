"""Resilient HTTP client for Nominatim, Overpass and elevation services.

Wraps a requests.Session with:
- Retry with exponential backoff (tenacity) on retryable statuses and transport errors
- A per-client RateLimiter enforcing a minimum interval between requests
- A content-addressed disk cache with TTL for JSON payloads

Cache files live at <dir>/<sha256(key)>.json and hold an envelope
{"savedAt": ISO-8601, "data": payload}. An entry is fresh while
0 <= age <= ttl.

Example:
    client = FetchClient()
    data = client.fetch_json(
        url="https://nominatim.openstreetmap.org/search",
        params={"q": "Cervinia, Italy", "format": "jsonv2"},
        cache=CachePolicy(dir=Path(".cache"), ttl_s=3600, key="search:cervinia"),
    )
"""

import hashlib
import json
import logging
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from skiresort_extractor.constants import USER_AGENT, FetchConfig
from skiresort_extractor.core.artifacts import write_json_atomic
from skiresort_extractor.core.timestamps import age_seconds, format_iso
from skiresort_extractor.errors import UpstreamError

logger = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    """Shared cache directory for lookups not tied to a workspace."""
    return Path(tempfile.gettempdir()) / "ptk-extractor-cache"


@dataclass(frozen=True)
class RetryPolicy:
    """How many times and how fast to retry a failing request."""

    max_attempts: int = FetchConfig.MAX_ATTEMPTS
    base_delay_s: float = FetchConfig.BASE_DELAY_S
    retry_on_statuses: frozenset[int] = field(default_factory=lambda: FetchConfig.RETRY_ON_STATUSES)


@dataclass(frozen=True)
class CachePolicy:
    """Where and for how long to cache a JSON response.

    Attributes:
        dir: Cache directory
        ttl_s: Maximum age of a usable entry in seconds
        key: Caller-chosen stable key, hashed into the file name
    """

    dir: Path
    ttl_s: float
    key: str

    @property
    def file_path(self) -> Path:
        digest = hashlib.sha256(self.key.encode("utf-8")).hexdigest()
        return Path(self.dir) / f"{digest}.json"


class RateLimiter:
    """Enforces a minimum interval between requests.

    Owned by a FetchClient; share one instance between clients that must
    respect the same upstream limit. Thread-safe.
    """

    def __init__(
        self,
        min_interval_s: float = FetchConfig.THROTTLE_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request_at: float | None = None

    def wait(self) -> None:
        """Block until the next request is allowed, then claim the slot."""
        with self._lock:
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval_s:
                    self._sleep(self.min_interval_s - elapsed)
            self._last_request_at = self._clock()


class _RetryableStatus(Exception):
    """Internal marker for a response whose status is in the retry set."""

    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


class FetchClient:
    """HTTP client with retry, throttling and JSON disk cache.

    Args:
        session: requests.Session (or compatible) used for transport
        rate_limiter: Throttle shared by every call on this client
        retry: Default retry policy, overridable per call
        sleep: Sleep function used between retries
        now: Clock used for cache ages
        user_agent: User-Agent header sent with every request
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        rate_limiter: RateLimiter | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        user_agent: str = USER_AGENT,
        timeout_s: float = FetchConfig.REQUEST_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter(sleep=sleep)
        self.retry = retry or RetryPolicy()
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self._sleep = sleep
        self._now = now

    # =========================================================================
    # Public API
    # =========================================================================

    def fetch_json(
        self,
        url: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        body: str | None = None,
        retry: RetryPolicy | None = None,
        cache: CachePolicy | None = None,
    ) -> Any:
        """Fetch a JSON payload, serving from cache when fresh.

        Returns:
            Decoded JSON value.

        Raises:
            UpstreamError: Non-retryable status, or retries exhausted.
        """
        if cache is not None:
            hit, data = self._read_cache(cache)
            if hit:
                logger.debug(f"Cache hit for {cache.key}")
                return data

        request_headers = {"Accept": "application/json", **(headers or {})}
        response = self._send(
            url=url,
            method=method,
            params=params,
            headers=request_headers,
            body=body,
            retry=retry or self.retry,
            decode_json=True,
        )
        if cache is not None:
            self._write_cache(cache, response)
        return response

    def fetch_bytes(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry: RetryPolicy | None = None,
    ) -> bytes:
        """Fetch a binary payload (no cache).

        Raises:
            UpstreamError: Non-retryable status, or retries exhausted.
        """
        return self._send(
            url=url,
            method="GET",
            params=params,
            headers=headers or {},
            body=None,
            retry=retry or self.retry,
            decode_json=False,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    def _send(
        self,
        url: str,
        method: str,
        params: dict[str, Any] | None,
        headers: dict[str, str],
        body: str | None,
        retry: RetryPolicy,
        decode_json: bool,
    ) -> Any:
        headers = {"User-Agent": self.user_agent, **headers}

        def attempt() -> Any:
            self.rate_limiter.wait()
            response = self.session.request(
                method,
                url,
                params=params,
                headers=headers,
                data=body.encode("utf-8") if body is not None else None,
                timeout=self.timeout_s,
            )
            if response.status_code >= 400:
                if response.status_code in retry.retry_on_statuses:
                    raise _RetryableStatus(response.status_code)
                raise UpstreamError(
                    f"Upstream returned HTTP {response.status_code}.",
                    status=response.status_code,
                )
            return response.json() if decode_json else response.content

        retrying = Retrying(
            stop=stop_after_attempt(retry.max_attempts),
            wait=wait_exponential(multiplier=retry.base_delay_s, exp_base=2),
            retry=retry_if_exception_type((_RetryableStatus, requests.RequestException, ValueError)),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return retrying(attempt)
        except _RetryableStatus as e:
            raise UpstreamError(
                f"Upstream returned HTTP {e.status} after {retry.max_attempts} attempts.",
                status=e.status,
                attempts=retry.max_attempts,
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError(
                f"Network request failed after {retry.max_attempts} attempts: {e}",
                attempts=retry.max_attempts,
            ) from e

    # =========================================================================
    # Cache
    # =========================================================================

    def _read_cache(self, cache: CachePolicy) -> tuple[bool, Any]:
        path = cache.file_path
        try:
            envelope = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False, None
        if not isinstance(envelope, dict) or not isinstance(envelope.get("savedAt"), str):
            return False, None
        age = age_seconds(envelope["savedAt"], now=self._now())
        if age is None or age < 0 or age > cache.ttl_s:
            return False, None
        return True, envelope.get("data")

    def _write_cache(self, cache: CachePolicy, data: Any) -> None:
        envelope = {"savedAt": format_iso(self._now()), "data": data}
        write_json_atomic(path=cache.file_path, data=envelope)
