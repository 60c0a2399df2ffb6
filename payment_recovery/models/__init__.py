"""Domain models for payment exception handling and recovery."""

from payment_recovery.models.base import Event

__all__ = ["Event"]
