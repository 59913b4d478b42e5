"""Retry-with-backoff and circuit breaking for outbound fetches.

Every network call an adapter makes, plain HTTP or a headless render,
goes through ``FetchPolicy.execute`` so that transient failures are
retried with exponential backoff and a persistently failing endpoint is
short-circuited for a cooldown window.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional, TypeVar
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from pricetrail.config import settings
from pricetrail.core.exceptions import (
    CircuitOpenError,
    PermanentRequestError,
    TransientNetworkError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# 408 Request Timeout and 429 Too Many Requests are worth another attempt
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def is_transient_status(status_code: int) -> bool:
    """Return True for HTTP statuses that should be retried."""
    return status_code >= 500 or status_code in RETRYABLE_CLIENT_STATUSES


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, TransientNetworkError)


class CircuitBreaker:
    """Consecutive-failure circuit breaker for a single endpoint.

    - CLOSED: calls pass through, transient failures are counted
    - OPEN: after ``failure_threshold`` consecutive failures, calls fail fast
      for ``open_seconds``
    - HALF_OPEN: once the window elapses one trial call is let through;
      success closes the circuit, failure opens it again
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        endpoint: str,
        failure_threshold: int = 5,
        open_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self._clock = clock

        self.state = self.CLOSED
        self.failure_count = 0
        self._opened_at: Optional[float] = None
        self.logger = logger.bind(endpoint=endpoint)

    def remaining_open_time(self) -> float:
        """Seconds left before an open circuit allows a trial call."""
        if self.state != self.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.open_seconds - self._clock())

    def before_call(self) -> None:
        """Gate a call, raising CircuitOpenError while the circuit is open."""
        if self.state != self.OPEN:
            return

        remaining = self.remaining_open_time()
        if remaining > 0:
            raise CircuitOpenError(self.endpoint, remaining)

        self.state = self.HALF_OPEN
        self.logger.info("circuit_half_open")

    def record_success(self) -> None:
        if self.state != self.CLOSED:
            self.logger.info("circuit_closed", previous_state=self.state)
        self.state = self.CLOSED
        self.failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = self.OPEN
            self._opened_at = self._clock()
            self.logger.warning(
                "circuit_opened",
                failure_count=self.failure_count,
                open_seconds=self.open_seconds,
            )


class FetchPolicy:
    """Wraps outbound calls with retry and per-endpoint circuit breaking.

    One instance is shared by all adapters so breaker state survives
    across orchestrator runs.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = settings.FETCH_MAX_RETRIES,
        failure_threshold: int = settings.CIRCUIT_FAILURE_THRESHOLD,
        open_seconds: float = settings.CIRCUIT_OPEN_SECONDS,
        timeout: float = settings.FETCH_TIMEOUT_SECONDS,
        user_agent: str = settings.SCRAPER_USER_AGENT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the fetch policy.

        Args:
            client: Optional shared httpx client (created lazily otherwise)
            max_retries: Retries after the first attempt for transient errors
            failure_threshold: Consecutive failures that open a circuit
            open_seconds: How long an open circuit rejects calls
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header sent with every HTTP request
            clock: Monotonic clock, injectable for tests
            sleep: Backoff sleep, injectable for tests
        """
        self._client = client
        self.max_retries = max_retries
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self.timeout = timeout
        self.user_agent = user_agent
        self._clock = clock
        self._sleep = sleep
        self._breakers: Dict[str, CircuitBreaker] = {}
        self.logger = logger.bind(service="fetch_policy")

    def breaker_for(self, endpoint: str) -> CircuitBreaker:
        """Get or create the circuit breaker for an endpoint."""
        if endpoint not in self._breakers:
            self._breakers[endpoint] = CircuitBreaker(
                endpoint,
                failure_threshold=self.failure_threshold,
                open_seconds=self.open_seconds,
                clock=self._clock,
            )
        return self._breakers[endpoint]

    async def execute(
        self,
        request: Callable[[], Awaitable[T]],
        endpoint: str = "default",
        max_retries: Optional[int] = None,
    ) -> T:
        """Run ``request`` under the retry and circuit-breaker policy.

        Args:
            request: Zero-argument coroutine factory performing the call
            endpoint: Breaker key, usually the target host
            max_retries: Override for this call; 0 means a single attempt

        Returns:
            Whatever ``request`` returns

        Raises:
            CircuitOpenError: If the endpoint's circuit is open
            TransientNetworkError: If every retry failed
            PermanentRequestError: On a non-retryable client error
        """
        breaker = self.breaker_for(endpoint)
        retries = self.max_retries if max_retries is None else max_retries

        def _log_retry(retry_state) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            self.logger.warning(
                "fetch_retry_scheduled",
                endpoint=endpoint,
                attempt=retry_state.attempt_number,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(exc) if exc else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            # 2^attempt seconds: 2, 4, 8
            wait=wait_exponential(multiplier=2, min=0, max=60),
            # Stop retrying as soon as this call has tripped the breaker
            retry=retry_if_exception(
                lambda exc: _should_retry(exc) and breaker.state != CircuitBreaker.OPEN
            ),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                breaker.before_call()
                try:
                    result = await request()
                except TransientNetworkError:
                    breaker.record_failure()
                    raise
                breaker.record_success()
                return result

        raise AssertionError("unreachable: tenacity reraises the last error")  # pragma: no cover

    async def get_text(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> str:
        """GET a URL through the policy and return the body text."""
        endpoint = urlparse(url).netloc or url
        return await self.execute(
            lambda: self._http_get(url, headers),
            endpoint=endpoint,
            max_retries=max_retries,
        )

    async def _http_get(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """Single HTTP attempt, translating failures into the fetch taxonomy."""
        client = self._get_client()
        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)

        try:
            response = await client.get(url, headers=request_headers)
        except httpx.TransportError as e:
            # Covers connect/read timeouts as well as refused connections
            raise TransientNetworkError(url, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            if is_transient_status(response.status_code):
                raise TransientNetworkError(url, message, status_code=response.status_code)
            raise PermanentRequestError(url, message, status_code=response.status_code)

        return response.text

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
