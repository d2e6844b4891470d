"""Fire-and-forget usage tracking."""

from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog

from seoreport.config import Settings, get_settings
from seoreport.exceptions import TrackingError
from seoreport.metrics import metrics
from seoreport.models import UsageEvent

logger = structlog.get_logger()

# Actions counted under their own metric label; anything else is "other"
KNOWN_ACTIONS = frozenset({"report_generated"})


def action_label(action: str) -> str:
    return action if action in KNOWN_ACTIONS else "other"


class UsageTracker:
    """
    Records usage events.

    ``track`` never raises: it is scheduled after the response has been sent
    and a failure here must not reach the user.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._transport = transport

    async def track(
        self,
        event: UsageEvent,
        identity: str = "unknown",
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> bool:
        """Log the event and forward it to the webhook if one is configured."""
        if not self._settings.tracking_enabled:
            return False

        try:
            record = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **event.model_dump(by_alias=True),
                "ip": identity,
                "userAgent": user_agent,
                "referrer": referrer or "direct",
            }
            logger.info("usage_event", **record)

            if self._settings.tracking_webhook_url:
                await self._forward(record)
        except Exception as e:
            metrics.usage_events_total.labels(action=action_label(event.action), result="failed").inc()
            logger.warning("tracking_failed", action=event.action, error=str(e))
            return False

        metrics.usage_events_total.labels(action=action_label(event.action), result="tracked").inc()
        return True

    async def _forward(self, record: dict) -> None:
        async with httpx.AsyncClient(transport=self._transport, timeout=5.0) as client:
            try:
                response = await client.post(self._settings.tracking_webhook_url, json=record)
            except httpx.HTTPError as e:
                raise TrackingError(f"Webhook unreachable: {e}") from e
        if not response.is_success:
            raise TrackingError(f"Webhook returned HTTP {response.status_code}")


# Singleton instance
_tracker: Optional[UsageTracker] = None


def get_tracker() -> UsageTracker:
    """Get the usage tracker singleton."""
    global _tracker
    if _tracker is None:
        _tracker = UsageTracker()
    return _tracker
