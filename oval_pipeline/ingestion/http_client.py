"""
HTTP utilities for updaters.

Provides rate limiting, retries with backoff and circuit breaking. A single
client is shared by the worker threads of an update, so the limiter and the
breaker are lock protected.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

DEFAULT_USER_AGENT = "oval-pipeline/0.1"


class CircuitOpenError(RuntimeError):
    """Raised when the circuit breaker is open."""


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    jitter_ratio: float = 0.3
    timeout_seconds: float = 30.0


class RateLimiter:
    """Simple token bucket rate limiter."""

    def __init__(self, rate_per_minute: Optional[int], burst: Optional[int]):
        self.rate_per_minute = rate_per_minute
        self.burst = burst
        self._tokens = burst if burst else 0
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        if not self.rate_per_minute or not self.burst:
            return

        with self._lock:
            self._refill()
            if self._tokens < 1:
                wait_seconds = (1 - self._tokens) / (self.rate_per_minute / 60.0)
                time.sleep(wait_seconds)
                self._refill()

            self._tokens -= 1

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        refill_rate = self.rate_per_minute / 60.0
        self._tokens = min(self.burst, self._tokens + elapsed * refill_rate)
        self._last_refill = now


class CircuitBreaker:
    """Basic circuit breaker with half-open probe."""

    def __init__(self, failure_threshold: int = 5, open_seconds: int = 900):
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._half_open = False
        self._lock = threading.Lock()

    def can_attempt(self) -> bool:
        with self._lock:
            if self._opened_at is None:
                return True

            if time.monotonic() - self._opened_at >= self.open_seconds:
                if not self._half_open:
                    self._half_open = True
                    return True
                return False

            return False

    def record_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._opened_at = None
            self._half_open = False

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            if self._failure_count >= self.failure_threshold:
                self._opened_at = time.monotonic()
                self._half_open = False


class HttpClient:
    """HTTP client with retries, rate limiting and circuit breaking."""

    def __init__(
        self,
        source_id: str,
        rate_limit_per_minute: Optional[int] = None,
        rate_limit_burst: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.source_id = source_id
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self.retry_config = retry_config or RetryConfig()
        self.rate_limiter = RateLimiter(rate_limit_per_minute, rate_limit_burst)
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return self._request("GET", url, headers=headers).text

    def get_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        return self._request("GET", url, headers=headers).content

    def close(self) -> None:
        self.session.close()

    def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        if not self.circuit_breaker.can_attempt():
            raise CircuitOpenError(f"{self.source_id} circuit open")

        last_error: Optional[Exception] = None

        for attempt in range(self.retry_config.max_retries + 1):
            self.rate_limiter.acquire()
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.retry_config.timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt < self.retry_config.max_retries:
                    self._sleep_with_backoff(attempt, None)
                    continue
                self.circuit_breaker.record_failure()
                raise

            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error = requests.HTTPError(f"HTTP {response.status_code}", response=response)
                if attempt < self.retry_config.max_retries:
                    retry_after = self._retry_after_seconds(response)
                    self._sleep_with_backoff(attempt, retry_after)
                    continue
                self.circuit_breaker.record_failure()
                raise last_error

            if not 200 <= response.status_code < 300:
                self.circuit_breaker.record_failure()
                raise requests.HTTPError(
                    f"HTTP {response.status_code} for {url}", response=response
                )

            self.circuit_breaker.record_success()
            return response

        self.circuit_breaker.record_failure()
        raise last_error if last_error else RuntimeError("HTTP request failed")

    def _retry_after_seconds(self, response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None

        try:
            return float(value)
        except ValueError:
            try:
                dt = parsedate_to_datetime(value)
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=timezone.utc)
                return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())
            except (TypeError, ValueError):
                logger.debug("Unable to parse Retry-After header: %s", value)
                return None

    def _sleep_with_backoff(self, attempt: int, retry_after: Optional[float]) -> None:
        base = min(
            self.retry_config.max_delay_seconds,
            self.retry_config.base_delay_seconds * (2 ** attempt),
        )
        jitter = base * random.uniform(0, self.retry_config.jitter_ratio)
        delay = base + jitter
        if retry_after is not None:
            delay = max(delay, retry_after)
        time.sleep(delay)
