"""Notification helpers."""

import logging
import uuid
from datetime import datetime
from typing import Any

from payment_recovery.models.base import Event
from payment_recovery.services.contracts import NotificationService

logger = logging.getLogger(__name__)


class LoggingNotificationService:
    """Notification service that only logs. Default when nothing else is wired."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Event]] = []

    def notify(self, borrower_ref: str, event: Event) -> None:
        self.sent.append((borrower_ref, event))
        logger.info("Notify %s: %s (%s)", borrower_ref, event.event_type, event.subject)


def build_event(
    event_type: str,
    subject: str,
    data: dict[str, Any],
    source: str = "payment-recovery",
    now: datetime | None = None,
) -> Event:
    """Create a notification event envelope."""
    return Event(
        event_id=uuid.uuid4().hex,
        event_type=event_type,
        event_time=now or datetime.now(),
        source=source,
        subject=subject,
        data=data,
    )


def safe_notify(
    notifier: NotificationService | None,
    borrower_ref: str,
    event: Event,
) -> bool:
    """Deliver a notification without letting failures escape.

    Returns
    -------
    bool
        True if the notifier accepted the event.
    """
    if notifier is None:
        return False
    try:
        notifier.notify(borrower_ref, event)
    except Exception:
        logger.exception(
            "Notification %s for %s failed; continuing", event.event_type, borrower_ref
        )
        return False
    return True
