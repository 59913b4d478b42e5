"""Alert channels for failed ingestion runs."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog

from pricetrail.config import settings

logger = structlog.get_logger(__name__)


class AlertNotifier(ABC):
    """Base alert channel. Subclasses deliver the alert somewhere."""

    @abstractmethod
    async def notify(self, label: str, error: BaseException, **context) -> None:
        """Deliver one alert for a failed run labelled ``label``."""


class LogAlertNotifier(AlertNotifier):
    """Default channel: a warning-level log event."""

    async def notify(self, label: str, error: BaseException, **context) -> None:
        logger.warning(
            "alert_raised",
            label=label,
            error_type=type(error).__name__,
            error=str(error),
            **context,
        )


class WebhookAlertNotifier(AlertNotifier):
    """POSTs a JSON alert to a webhook (Slack-compatible ``text`` field)."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self._client = client
        self.timeout = timeout

    async def notify(self, label: str, error: BaseException, **context) -> None:
        payload = {
            "text": f"ALERT: {label} failed with error: {error}",
            "label": label,
            "error_type": type(error).__name__,
            "error": str(error),
            "context": {k: str(v) for k, v in context.items()},
            "raised_at": datetime.now(timezone.utc).isoformat(),
        }

        if self._client is not None:
            response = await self._client.post(self.url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        response.raise_for_status()

        logger.info("alert_delivered", label=label, status_code=response.status_code)


def get_alert_notifier() -> AlertNotifier:
    """Pick the alert channel from settings."""
    if settings.ALERT_WEBHOOK_URL:
        return WebhookAlertNotifier(settings.ALERT_WEBHOOK_URL)
    return LogAlertNotifier()
