"""Tests for the execution monitor and alert channels."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from structlog.testing import capture_logs

from pricetrail.services.alerting import AlertNotifier, LogAlertNotifier, WebhookAlertNotifier
from pricetrail.services.monitor import ExecutionMonitor


class TestExecutionMonitor:

    async def test_result_passed_through(self):
        notifier = AsyncMock()
        monitor = ExecutionMonitor(alert_notifier=notifier)

        async def action():
            return 7

        assert await monitor.monitor("The Iconic", action) == 7
        notifier.notify.assert_not_called()

    async def test_failure_reraised_and_alerted(self):
        notifier = AsyncMock()
        monitor = ExecutionMonitor(alert_notifier=notifier)
        error = RuntimeError("selector changed")

        async def action():
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            await monitor.monitor("Amazon Au", action, search_term="sandals")

        assert exc_info.value is error
        notifier.notify.assert_awaited_once()
        args, kwargs = notifier.notify.call_args
        assert args == ("Amazon Au", error)
        assert kwargs["search_term"] == "sandals"
        assert "duration_seconds" in kwargs

    async def test_alert_failure_does_not_mask_error(self):
        notifier = AsyncMock()
        notifier.notify.side_effect = httpx.ConnectError("webhook down")

        async def action():
            raise ValueError("boom")

        with capture_logs() as logs:
            monitor = ExecutionMonitor(alert_notifier=notifier)
            with pytest.raises(ValueError):
                await monitor.monitor("Birds Nest", action)

        assert any(e["event"] == "alert_delivery_failed" for e in logs)

    async def test_logs_duration_on_success_and_failure(self):
        async def ok():
            return 1

        async def fail():
            raise RuntimeError("x")

        with capture_logs() as logs:
            monitor = ExecutionMonitor(alert_notifier=AsyncMock())
            await monitor.monitor("Shop A", ok)
            with pytest.raises(RuntimeError):
                await monitor.monitor("Shop B", fail)

        completed = next(e for e in logs if e["event"] == "execution_completed")
        failed = next(e for e in logs if e["event"] == "execution_failed")
        assert completed["label"] == "Shop A"
        assert completed["duration_seconds"] >= 0
        assert failed["label"] == "Shop B"
        assert failed["error"] == "x"
        assert failed["duration_seconds"] >= 0

    def test_default_notifier_logs(self):
        assert isinstance(ExecutionMonitor().alert_notifier, LogAlertNotifier)


class TestAlertNotifiers:

    def test_base_channel_is_abstract(self):
        class SilentNotifier(AlertNotifier):
            pass

        with pytest.raises(TypeError):
            AlertNotifier()
        with pytest.raises(TypeError):
            SilentNotifier()

    async def test_log_notifier(self):
        with capture_logs() as logs:
            await LogAlertNotifier().notify("Shop A", RuntimeError("down"), search_term="boots")

        (event,) = [e for e in logs if e["event"] == "alert_raised"]
        assert event["label"] == "Shop A"
        assert event["error_type"] == "RuntimeError"
        assert event["search_term"] == "boots"

    async def test_webhook_notifier_posts_json(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookAlertNotifier("https://hooks.test/alert", client=client)

        await notifier.notify("The Iconic", TimeoutError("render timed out"), duration_seconds=1.5)

        (payload,) = received
        assert payload["label"] == "The Iconic"
        assert payload["error_type"] == "TimeoutError"
        assert "The Iconic failed" in payload["text"]
        assert payload["context"] == {"duration_seconds": "1.5"}

    async def test_webhook_error_status_raises(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        notifier = WebhookAlertNotifier("https://hooks.test/alert", client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await notifier.notify("Shop A", RuntimeError("x"))
