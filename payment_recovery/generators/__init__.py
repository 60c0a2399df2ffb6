"""Demo data generators."""

from payment_recovery.generators.base import BaseGenerator

__all__ = ["BaseGenerator"]
