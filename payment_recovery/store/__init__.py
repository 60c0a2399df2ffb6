"""In-memory stores for recovery entities and the loan directory."""

from payment_recovery.store.loans import InMemoryLoanDirectory
from payment_recovery.store.recovery import RecoveryDataStore
from payment_recovery.store.repository import Repository

__all__ = ["InMemoryLoanDirectory", "RecoveryDataStore", "Repository"]
