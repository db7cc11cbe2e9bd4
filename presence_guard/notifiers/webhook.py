"""
JSON webhook notifier.

Posts every notification to a single HTTP endpoint (a push gateway, a chat
webhook, an FCM relay). Any 2xx response counts as delivered; other
statuses, client errors and timeouts raise NotificationDeliveryFailure.

Example:
    >>> notifier = WebhookNotifier("https://push.example.org/notify")
    >>> await notifier.send("observer-1", "Check on Mom", "...", AlertLevel.WARNING)
    True
    >>> await notifier.close()
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp
import structlog

from presence_guard import __version__
from presence_guard.exceptions import NotificationDeliveryFailure
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.models.presence import AlertLevel

logger = structlog.get_logger(__name__)


class WebhookNotifier(PlatformNotifier):
    """
    Delivers notifications as JSON POST requests.

    Attributes:
        url: Target endpoint.
        timeout_seconds: Total request timeout.
        headers: Extra request headers (e.g. authorization).
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info("webhook_notifier_initialized", url=url, timeout_seconds=timeout_seconds)

    @property
    def name(self) -> str:
        return "webhook"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is created."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": f"presence-guard/{__version__}", **self.headers},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("webhook_session_closed", url=self.url)

    @staticmethod
    def build_payload(
        target_user_id: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return {
            "target_user_id": target_user_id,
            "title": title,
            "body": body,
            "level": level.value,
            "severity": level.severity,
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "metadata": metadata or {},
        }

    async def send(
        self,
        target_user_id: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        session = await self._ensure_session()
        payload = self.build_payload(target_user_id, title, body, level, metadata)

        try:
            async with session.post(self.url, json=payload) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    logger.error(
                        "webhook_delivery_failed",
                        url=self.url,
                        status=response.status,
                        target_user_id=target_user_id,
                        error=error_text[:200],
                    )
                    raise NotificationDeliveryFailure(
                        f"Webhook returned status {response.status}"
                    )

        except aiohttp.ClientError as e:
            logger.error("webhook_client_error", url=self.url, error=str(e))
            raise NotificationDeliveryFailure(f"Webhook request failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error("webhook_timeout", url=self.url, timeout=self.timeout_seconds)
            raise NotificationDeliveryFailure(
                f"Webhook request timeout after {self.timeout_seconds}s"
            ) from e

        logger.debug(
            "webhook_delivered",
            target_user_id=target_user_id,
            level=level.value,
        )
        return True
