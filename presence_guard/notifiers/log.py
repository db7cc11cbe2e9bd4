"""
Log-only notifier.

Writes notifications to the structured log instead of a push transport.
Used when no webhook is configured and for local runs.
"""

from typing import Any, Dict, Optional

import structlog

from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.models.presence import AlertLevel

logger = structlog.get_logger(__name__)


class LogNotifier(PlatformNotifier):
    """Logs each notification at a level matching its severity."""

    @property
    def name(self) -> str:
        return "log"

    async def send(
        self,
        target_user_id: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        log = logger.error if level == AlertLevel.EMERGENCY else logger.warning
        log(
            "presence_notification",
            target_user_id=target_user_id,
            level=level.value,
            title=title,
            body=body,
            metadata=metadata or {},
        )
        return True
