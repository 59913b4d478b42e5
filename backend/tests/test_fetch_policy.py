"""Tests for retry with backoff and circuit breaking."""

import httpx
import pytest
from structlog.testing import capture_logs

from pricetrail.core.exceptions import (
    CircuitOpenError,
    FetchError,
    PermanentRequestError,
    TransientNetworkError,
)
from pricetrail.scrapers.utils.fetch_policy import CircuitBreaker, is_transient_status

from conftest import make_policy

URL = "https://shop.test/search?q=sandals"


class Counter:
    """MockTransport handler returning scripted responses and counting calls."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, text=f"body-{self.calls}")


class TestStatusClassification:

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 408, 429])
    def test_transient_statuses(self, status):
        assert is_transient_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_permanent_statuses(self, status):
        assert not is_transient_status(status)


class TestRetry:

    async def test_success_needs_no_retry(self, no_sleep):
        handler = Counter(200)
        policy = make_policy(handler, sleep=no_sleep)

        body = await policy.get_text(URL)

        assert body == "body-1"
        assert handler.calls == 1
        no_sleep.assert_not_called()

    async def test_transient_failures_retried_with_exponential_backoff(self, no_sleep):
        handler = Counter(503, 503, 503, 200)
        policy = make_policy(handler, sleep=no_sleep)

        body = await policy.get_text(URL)

        assert body == "body-4"
        assert handler.calls == 4
        assert [c.args[0] for c in no_sleep.call_args_list] == [2, 4, 8]

    async def test_retries_exhausted_reraises_original_error(self, no_sleep):
        handler = Counter(503)
        policy = make_policy(handler, sleep=no_sleep)

        with pytest.raises(TransientNetworkError) as exc_info:
            await policy.get_text(URL)

        assert exc_info.value.status_code == 503
        assert handler.calls == 4

    async def test_per_call_retry_override(self, no_sleep):
        handler = Counter(503)
        policy = make_policy(handler, sleep=no_sleep)

        with pytest.raises(TransientNetworkError):
            await policy.get_text(URL, max_retries=0)

        assert handler.calls == 1
        assert policy.max_retries == 3
        no_sleep.assert_not_called()

    async def test_permanent_error_not_retried(self, no_sleep):
        handler = Counter(404)
        policy = make_policy(handler, sleep=no_sleep)

        with pytest.raises(PermanentRequestError) as exc_info:
            await policy.get_text(URL)

        assert exc_info.value.status_code == 404
        assert handler.calls == 1
        no_sleep.assert_not_called()

    async def test_rate_limited_is_retried(self, no_sleep):
        handler = Counter(429, 200)
        policy = make_policy(handler, sleep=no_sleep)

        assert await policy.get_text(URL) == "body-2"
        assert handler.calls == 2

    async def test_timeout_is_transient(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectTimeout("timed out", request=request)

        policy = make_policy(handler, sleep=no_sleep)

        with pytest.raises(TransientNetworkError):
            await policy.get_text(URL)

        assert len(calls) == 4

    async def test_retry_events_logged(self, no_sleep):
        handler = Counter(500, 200)

        with capture_logs() as logs:
            policy = make_policy(handler, sleep=no_sleep)
            await policy.get_text(URL)

        retries = [e for e in logs if e["event"] == "fetch_retry_scheduled"]
        assert len(retries) == 1
        assert retries[0]["attempt"] == 1
        assert retries[0]["delay_seconds"] == 2
        assert retries[0]["endpoint"] == "shop.test"


class TestCircuitBreaker:

    async def test_opens_after_five_failures_and_fails_fast(self, no_sleep, fake_clock):
        handler = Counter(503)
        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)

        for _ in range(5):
            with pytest.raises(TransientNetworkError):
                await policy.get_text(URL)
        assert handler.calls == 5
        assert policy.breaker_for("shop.test").state == CircuitBreaker.OPEN

        fake_clock.advance(30)
        with pytest.raises(CircuitOpenError) as exc_info:
            await policy.get_text(URL)

        assert handler.calls == 5
        assert isinstance(exc_info.value, FetchError)
        assert exc_info.value.retry_after == pytest.approx(30)

    async def test_trial_call_after_window_closes_circuit(self, no_sleep, fake_clock):
        handler = Counter(503, 503, 503, 503, 503, 200)
        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)

        for _ in range(5):
            with pytest.raises(TransientNetworkError):
                await policy.get_text(URL)

        fake_clock.advance(61)
        body = await policy.get_text(URL)

        assert body == "body-6"
        assert handler.calls == 6
        breaker = policy.breaker_for("shop.test")
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    async def test_failed_trial_call_reopens_circuit(self, no_sleep, fake_clock):
        handler = Counter(503)
        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)

        for _ in range(5):
            with pytest.raises(TransientNetworkError):
                await policy.get_text(URL)

        fake_clock.advance(61)
        with pytest.raises(TransientNetworkError):
            await policy.get_text(URL)
        assert handler.calls == 6

        with pytest.raises(CircuitOpenError):
            await policy.get_text(URL)
        assert handler.calls == 6

    async def test_tripping_the_breaker_stops_retries(self, no_sleep, fake_clock):
        handler = Counter(503)
        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock)

        # First call: 1 attempt + 3 retries = 4 failures
        with pytest.raises(TransientNetworkError):
            await policy.get_text(URL)
        # Second call: the 5th failure opens the circuit; no further retries
        with pytest.raises(TransientNetworkError):
            await policy.get_text(URL)

        assert handler.calls == 5
        with pytest.raises(CircuitOpenError):
            await policy.get_text(URL)
        assert handler.calls == 5

    async def test_permanent_errors_do_not_count(self, no_sleep, fake_clock):
        handler = Counter(404)
        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)

        for _ in range(6):
            with pytest.raises(PermanentRequestError):
                await policy.get_text(URL)

        assert policy.breaker_for("shop.test").state == CircuitBreaker.CLOSED
        assert handler.calls == 6

    async def test_breakers_are_per_endpoint(self, no_sleep, fake_clock):
        def handler(request):
            status = 503 if request.url.host == "down.test" else 200
            return httpx.Response(status, text="ok")

        policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)

        for _ in range(5):
            with pytest.raises(TransientNetworkError):
                await policy.get_text("https://down.test/")

        assert await policy.get_text("https://up.test/") == "ok"

    async def test_transitions_logged(self, no_sleep, fake_clock):
        handler = Counter(503, 503, 503, 503, 503, 200)

        with capture_logs() as logs:
            policy = make_policy(handler, sleep=no_sleep, clock=fake_clock, max_retries=0)
            for _ in range(5):
                with pytest.raises(TransientNetworkError):
                    await policy.get_text(URL)
            fake_clock.advance(61)
            await policy.get_text(URL)

        events = [e["event"] for e in logs]
        assert events.count("circuit_opened") == 1
        assert events.index("circuit_opened") < events.index("circuit_half_open")
        assert events.index("circuit_half_open") < events.index("circuit_closed")

    async def test_execute_wraps_arbitrary_awaitables(self, no_sleep, fake_clock):
        policy = make_policy(Counter(200), sleep=no_sleep, clock=fake_clock)
        attempts = []

        async def render():
            attempts.append(1)
            if len(attempts) < 2:
                raise TransientNetworkError("https://render.test", "navigation failed")
            return "<html></html>"

        result = await policy.execute(render, endpoint="render.test")

        assert result == "<html></html>"
        assert len(attempts) == 2
