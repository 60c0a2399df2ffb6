"""Base models shared across domains."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Event:
    """Standard event envelope for notifications and streaming."""

    event_id: str
    event_type: str  # entity.action (e.g., attempt.escalated)
    event_time: datetime
    source: str  # Component that emitted the event
    subject: str  # Entity ID affected
    data: dict
    metadata: dict = field(default_factory=dict)
