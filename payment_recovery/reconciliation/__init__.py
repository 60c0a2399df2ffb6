"""Suspense payment reconciliation."""

from payment_recovery.reconciliation.matcher import (
    ReconciliationMatcher,
    name_similarity,
    signals_for,
)
from payment_recovery.reconciliation.suspense import (
    AGE_BUCKETS,
    RESEARCH_STATUSES,
    SuspenseManager,
)

__all__ = [
    "AGE_BUCKETS",
    "RESEARCH_STATUSES",
    "ReconciliationMatcher",
    "SuspenseManager",
    "name_similarity",
    "signals_for",
]
