"""Slashing detection and notification."""

from .detector import (
    Detection,
    SlashingDetector,
    SlashingEvent,
    SlashingKind,
    intersection,
)
from .notifier import NotificationOutcome, Notifier
from .service import (
    BlockProvider,
    EventsProvider,
    HeadSlashingService,
    ServiceState,
)

__all__ = [
    "Detection",
    "SlashingDetector",
    "SlashingEvent",
    "SlashingKind",
    "intersection",
    "NotificationOutcome",
    "Notifier",
    "BlockProvider",
    "EventsProvider",
    "HeadSlashingService",
    "ServiceState",
]
