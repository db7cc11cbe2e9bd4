"""
Abstract base class for platform notifiers.

A platform notifier is the push transport (FCM, APNs, a webhook, ...). The
dispatcher treats a False return, a NotificationDeliveryFailure or a timeout
identically: the delivery failed and the cooldown is rolled back.

Example:
    >>> class ConsoleNotifier(PlatformNotifier):
    ...     @property
    ...     def name(self) -> str:
    ...         return "console"
    ...
    ...     async def send(self, target_user_id, title, body, level, metadata=None):
    ...         print(target_user_id, title)
    ...         return True
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from presence_guard.models.presence import AlertLevel


class PlatformNotifier(ABC):
    """Outbound notification transport."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier used in logs."""
        pass

    @abstractmethod
    async def send(
        self,
        target_user_id: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Deliver one notification.

        Args:
            target_user_id: Observer receiving the notification.
            title: Short notification title.
            body: Notification text.
            level: Alert level being notified.
            metadata: Extra payload (observed person, elapsed seconds).

        Returns:
            bool: True if the transport accepted the notification.

        Raises:
            NotificationDeliveryFailure: If the transport rejected it.
        """
        pass

    async def close(self) -> None:
        """Release transport resources. No-op by default."""
        return None
