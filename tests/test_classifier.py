"""Alert classifier tests."""

from datetime import timedelta

import pytest

from presence_guard.config.models import ThresholdConfig
from presence_guard.detection.classifier import AlertClassifier, create_classifier
from presence_guard.models.presence import AlertLevel

THRESHOLDS = ThresholdConfig()


@pytest.mark.parametrize(
    "elapsed,expected",
    [
        (timedelta(0), AlertLevel.NORMAL),
        (timedelta(hours=23, minutes=59), AlertLevel.NORMAL),
        (timedelta(hours=24), AlertLevel.WARNING),
        (timedelta(minutes=1500), AlertLevel.WARNING),
        (timedelta(hours=48), AlertLevel.DANGER),
        (timedelta(hours=71, minutes=59), AlertLevel.DANGER),
        (timedelta(hours=72), AlertLevel.EMERGENCY),
        (timedelta(days=30), AlertLevel.EMERGENCY),
    ],
)
def test_classify_boundaries_are_inclusive_on_the_lower_side(elapsed, expected):
    """Each level starts exactly at its threshold."""
    assert AlertClassifier().classify(elapsed, THRESHOLDS) == expected


def test_no_heartbeat_is_unknown():
    """A person who never sent a heartbeat is unknown, not emergency."""
    level = create_classifier().classify(None, THRESHOLDS)
    assert level == AlertLevel.UNKNOWN
    assert not level.is_actionable


def test_classification_is_monotonic():
    """A longer silence never yields a lower severity."""
    classifier = AlertClassifier()
    previous = 0
    for minutes in range(0, 80 * 60, 37):
        severity = classifier.classify(timedelta(minutes=minutes), THRESHOLDS).severity
        assert severity >= previous
        previous = severity


def test_custom_thresholds_are_respected():
    """Thresholds come from the config, not from constants."""
    thresholds = ThresholdConfig.from_hours(warning=1, danger=2, emergency=3)
    classifier = AlertClassifier()
    assert classifier.classify(timedelta(minutes=90), thresholds) == AlertLevel.WARNING
    assert classifier.classify(timedelta(hours=3), thresholds) == AlertLevel.EMERGENCY


def test_severity_order():
    """Severity increases from unknown to emergency."""
    ordered = [
        AlertLevel.UNKNOWN,
        AlertLevel.NORMAL,
        AlertLevel.WARNING,
        AlertLevel.DANGER,
        AlertLevel.EMERGENCY,
    ]
    assert [AlertClassifier.severity(level) for level in ordered] == [0, 1, 2, 3, 4]


@pytest.mark.parametrize(
    "elapsed,text",
    [
        (None, "no activity recorded"),
        (timedelta(seconds=20), "0 minutes"),
        (timedelta(minutes=45), "45 minutes"),
        (timedelta(hours=1, minutes=5), "1 hour 5 minutes"),
        (timedelta(hours=50), "2 days 2 hours"),
        (timedelta(days=1), "1 day"),
    ],
)
def test_describe(elapsed, text):
    """Durations render as readable text for notifications."""
    assert AlertClassifier.describe(elapsed) == text
