"""
Escalation for the liveness engine.

This module contains alert classification, the escalation scheduler and
cooldown-guarded notification dispatch.

Components:
    classifier: AlertClassifier, elapsed silence to alert level
    cooldown: CooldownTable, bounded (person, level) cooldown entries
    dispatcher: NotificationDispatcher, cooldown-guarded delivery
    scheduler: EscalationScheduler, periodic re-evaluation loop

Example:
    >>> from presence_guard.detection import (
    ...     AlertClassifier,
    ...     EscalationScheduler,
    ...     NotificationDispatcher,
    ... )
    >>> dispatcher = NotificationDispatcher(notifier=LogNotifier())
    >>> scheduler = EscalationScheduler(store, directory, provider, dispatcher)
    >>> await scheduler.refresh_now()
"""

from presence_guard.detection.classifier import AlertClassifier, create_classifier
from presence_guard.detection.cooldown import CooldownTable
from presence_guard.detection.dispatcher import MESSAGE_TEMPLATES, NotificationDispatcher
from presence_guard.detection.scheduler import EscalationScheduler, TickSummary, WatchGroup

__all__ = [
    # Classifier
    "AlertClassifier",
    "create_classifier",
    # Dispatch
    "CooldownTable",
    "NotificationDispatcher",
    "MESSAGE_TEMPLATES",
    # Scheduler
    "EscalationScheduler",
    "TickSummary",
    "WatchGroup",
]
