"""Suspense account: unidentified payments awaiting research and matching."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from payment_recovery.allocation import allocate_payment, is_whole_cents
from payment_recovery.exceptions import EntityNotFoundError, InvalidEntityStateError
from payment_recovery.models.financial import (
    AppliedPayment,
    LoanMatch,
    LoanSummary,
    SuspensePayment,
    SuspenseReason,
    SuspenseStatus,
)
from payment_recovery.reconciliation.matcher import ReconciliationMatcher
from payment_recovery.services.contracts import (
    AllocationService,
    LoanDirectory,
    NotificationService,
)
from payment_recovery.services.notifications import build_event, safe_notify
from payment_recovery.store.recovery import RecoveryDataStore

logger = logging.getLogger(__name__)

RESEARCH_STATUSES = frozenset(
    {SuspenseStatus.UNMATCHED, SuspenseStatus.RESEARCHING, SuspenseStatus.PENDING_APPROVAL}
)

# Inclusive day ranges; None means open-ended
AGE_BUCKETS: dict[str, tuple[int, int | None]] = {
    "0-7": (0, 7),
    "8-30": (8, 30),
    "31-60": (31, 60),
    "60+": (61, None),
}

SORT_KEYS = ("amount", "date", "age", "confidence")


def format_date(now: datetime) -> str:
    return f"{now:%b %d, %Y}"


class SuspenseManager:
    """Commands and queries over suspense payments.

    Parameters
    ----------
    store : RecoveryDataStore
        Holds the suspense payments.
    matcher : ReconciliationMatcher
        Produces ranked candidate loans.
    loan_directory : LoanDirectory
        Resolves the loan a match is applied to.
    allocation_service : AllocationService | None
        Loan terms collaborator; the principal-first waterfall applies when
        absent or silent.
    notifier : NotificationService | None
        Fire-and-forget notifications.
    on_applied : Callable[[SuspensePayment, LoanSummary], None] | None
        Loan balance update hook, called after a match is applied.
    clock : Callable[[], datetime]
        Current time source.
    """

    def __init__(
        self,
        store: RecoveryDataStore,
        matcher: ReconciliationMatcher,
        loan_directory: LoanDirectory,
        allocation_service: AllocationService | None = None,
        notifier: NotificationService | None = None,
        on_applied: Callable[[SuspensePayment, LoanSummary], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.loan_directory = loan_directory
        self.allocation_service = allocation_service
        self.notifier = notifier
        self.on_applied = on_applied
        self.clock = clock

    def receive(self, payment: SuspensePayment) -> SuspensePayment:
        """Store a new unidentified payment with its ranked candidates."""
        if payment.amount <= 0:
            raise InvalidEntityStateError(
                f"Suspense payment {payment.payment_id} has non-positive amount {payment.amount}"
            )
        if not is_whole_cents(payment.amount):
            raise InvalidEntityStateError(
                f"Suspense payment {payment.payment_id} amount {payment.amount} has sub-cent precision"
            )
        payment.candidates = self.matcher.rank(payment)
        self.store.add_suspense_payment(payment)
        logger.info(
            "Suspense payment %s received: %s via %s, %d candidates",
            payment.payment_id,
            payment.amount,
            payment.payment_method.value,
            len(payment.candidates),
        )
        return payment

    def get(self, payment_id: str) -> SuspensePayment:
        return self.store.suspense.get(payment_id)

    def refresh_candidates(self, payment_id: str) -> list[LoanMatch]:
        """Re-run matching for an open payment and store the result."""

        def _refresh(payment: SuspensePayment) -> list[LoanMatch]:
            self._require_open(payment)
            payment.candidates = self.matcher.rank(payment)
            return payment.candidates

        return self.store.suspense.update(payment_id, _refresh)

    def apply_match(self, payment_id: str, loan_id: str, applied_by: str) -> SuspensePayment:
        """Apply a suspense payment to a loan.

        The allocation always sums to the payment amount. Once applied the
        payment is MATCHED and can no longer be changed.
        """
        loan = self.loan_directory.find_loan(loan_id)
        if loan is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        now = self.clock()

        def _apply(payment: SuspensePayment) -> SuspensePayment:
            self._require_open(payment)
            allocation = allocate_payment(
                payment.amount, loan.loan_id, loan, self.allocation_service
            )
            payment.applied_to = AppliedPayment(
                loan_id=loan.loan_id,
                applied_by=applied_by,
                applied_at=now,
                allocation=allocation,
            )
            payment.status = SuspenseStatus.MATCHED
            payment.notes.append(
                f"{format_date(now)}: Applied to loan {loan.loan_number} by {applied_by}"
            )
            return payment

        payment = self.store.suspense.update(payment_id, _apply)
        allocation = payment.applied_to.allocation
        logger.info(
            "Suspense payment %s applied to loan %s (principal=%s interest=%s fees=%s escrow=%s)",
            payment_id,
            loan.loan_id,
            allocation.principal,
            allocation.interest,
            allocation.fees,
            allocation.escrow,
        )

        if self.on_applied is not None:
            try:
                self.on_applied(payment, loan)
            except Exception:
                logger.exception("Balance update hook failed for loan %s", loan.loan_id)
                self.store.suspense.update(
                    payment_id,
                    lambda p: p.notes.append(
                        f"{format_date(self.clock())}: Loan balance update failed"
                    ),
                )

        safe_notify(
            self.notifier,
            loan.borrower_email or loan.loan_id,
            build_event(
                "suspense.payment_applied",
                payment_id,
                {
                    "loan_id": loan.loan_id,
                    "amount": str(payment.amount),
                    "principal": str(allocation.principal),
                    "interest": str(allocation.interest),
                    "fees": str(allocation.fees),
                    "escrow": str(allocation.escrow),
                    "applied_by": applied_by,
                },
                now=now,
            ),
        )
        return payment

    def reject(self, payment_id: str, reason: str) -> SuspensePayment:
        now = self.clock()

        def _reject(payment: SuspensePayment) -> SuspensePayment:
            self._require_open(payment)
            payment.status = SuspenseStatus.REJECTED
            payment.notes.append(f"Rejected: {reason} on {format_date(now)}")
            return payment

        payment = self.store.suspense.update(payment_id, _reject)
        logger.info("Suspense payment %s rejected: %s", payment_id, reason)
        return payment

    def add_note(self, payment_id: str, note: str) -> SuspensePayment:
        now = self.clock()

        def _note(payment: SuspensePayment) -> SuspensePayment:
            payment.notes.append(f"{format_date(now)}: {note}")
            return payment

        return self.store.suspense.update(payment_id, _note)

    def assign(self, payment_id: str, handler: str | None) -> SuspensePayment:
        def _assign(payment: SuspensePayment) -> SuspensePayment:
            self._require_open(payment)
            payment.assigned_to = handler
            return payment

        return self.store.suspense.update(payment_id, _assign)

    def set_status(self, payment_id: str, status: SuspenseStatus) -> SuspensePayment:
        """Move a payment between the research statuses."""
        if status not in RESEARCH_STATUSES:
            raise InvalidEntityStateError(
                f"Status {status.value} cannot be set directly; use apply_match or reject"
            )

        def _set(payment: SuspensePayment) -> SuspensePayment:
            if payment.status not in RESEARCH_STATUSES:
                raise InvalidEntityStateError(
                    f"Suspense payment {payment.payment_id} is {payment.status.value}"
                )
            payment.status = status
            return payment

        return self.store.suspense.update(payment_id, _set)

    def list_payments(
        self,
        status: SuspenseStatus | None = None,
        reason: SuspenseReason | None = None,
        age_bucket: str | None = None,
        search: str | None = None,
        sort_by: str = "date",
        descending: bool = True,
    ) -> list[SuspensePayment]:
        """Filter and sort suspense payments.

        ``age_bucket`` is one of ``0-7``, ``8-30``, ``31-60`` or ``60+`` days
        in suspense; ``search`` matches id, reference, customer name, email
        or phone.
        """
        if age_bucket is not None and age_bucket not in AGE_BUCKETS:
            raise ValueError(f"Unknown age bucket: {age_bucket}")
        if sort_by not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort_by}")

        now = self.clock()
        term = search.strip().lower() if search else ""

        def _matches(payment: SuspensePayment) -> bool:
            if status is not None and payment.status != status:
                return False
            if reason is not None and payment.reason != reason:
                return False
            if age_bucket is not None:
                low, high = AGE_BUCKETS[age_bucket]
                days = payment.days_in_suspense(now)
                if days < low or (high is not None and days > high):
                    return False
            if term:
                haystack = [
                    payment.payment_id,
                    payment.reference_number,
                    payment.customer_name,
                    payment.customer_email,
                    payment.customer_phone,
                ]
                if not any(term in value.lower() for value in haystack if value):
                    return False
            return True

        sort_key = {
            "amount": lambda p: p.amount,
            "date": lambda p: p.received_at,
            "age": lambda p: p.days_in_suspense(now),
            "confidence": lambda p: p.best_confidence,
        }[sort_by]

        return sorted(self.store.suspense.filter(_matches), key=sort_key, reverse=descending)

    @staticmethod
    def _require_open(payment: SuspensePayment) -> None:
        if payment.status not in RESEARCH_STATUSES:
            raise InvalidEntityStateError(
                f"Suspense payment {payment.payment_id} is {payment.status.value}"
            )
