"""
Platform notifier implementations.

Modules:
    log: Structured-log notifier
    webhook: JSON webhook notifier (aiohttp)
"""

from typing import Optional

from presence_guard.config.models import NotifierConfig
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.notifiers.log import LogNotifier
from presence_guard.notifiers.webhook import WebhookNotifier


def create_notifier(config: Optional[NotifierConfig] = None) -> PlatformNotifier:
    """
    Build the notifier described by the configuration.

    Returns a WebhookNotifier when a webhook URL is configured, otherwise
    a LogNotifier.
    """
    config = config or NotifierConfig()
    if config.webhook_url:
        return WebhookNotifier(config.webhook_url, timeout_seconds=config.timeout_seconds)
    return LogNotifier()


__all__ = [
    "LogNotifier",
    "WebhookNotifier",
    "create_notifier",
]
