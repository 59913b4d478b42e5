"""Execution monitor: timing, structured logs and alerts around a unit of work."""

import time
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from pricetrail.services.alerting import AlertNotifier, LogAlertNotifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ExecutionMonitor:
    """Times an awaited action and alerts when it fails.

    The action's result is passed through unchanged and its exception is
    re-raised unchanged. Alert delivery failures are logged, never raised.
    """

    def __init__(self, alert_notifier: Optional[AlertNotifier] = None):
        self.alert_notifier = alert_notifier or LogAlertNotifier()
        self.logger = logger.bind(service="execution_monitor")

    async def monitor(
        self,
        label: str,
        action: Callable[[], Awaitable[T]],
        **context,
    ) -> T:
        """Run ``action`` and log its outcome and duration.

        Args:
            label: Name of the unit of work (usually the source name)
            action: Zero-argument coroutine factory
            **context: Extra key-value pairs added to every log event

        Returns:
            Whatever ``action`` returns
        """
        self.logger.info("execution_started", label=label, **context)
        started = time.perf_counter()

        try:
            result = await action()
        except Exception as e:
            duration = round(time.perf_counter() - started, 2)
            self.logger.error(
                "execution_failed",
                label=label,
                duration_seconds=duration,
                error=str(e),
                exc_info=True,
                **context,
            )
            await self._send_alert(label, e, duration_seconds=duration, **context)
            raise

        duration = round(time.perf_counter() - started, 2)
        self.logger.info(
            "execution_completed",
            label=label,
            duration_seconds=duration,
            **context,
        )
        return result

    async def _send_alert(self, label: str, error: Exception, **context) -> None:
        try:
            await self.alert_notifier.notify(label, error, **context)
        except Exception as alert_error:
            self.logger.error(
                "alert_delivery_failed",
                label=label,
                error=str(alert_error),
            )
