"""Confidence-scored matching of suspense payments to loans."""

from __future__ import annotations

import logging
from datetime import date
from difflib import SequenceMatcher

from payment_recovery.config import MatchingConfig
from payment_recovery.models.financial import (
    IdentitySignals,
    LoanMatch,
    LoanSummary,
    MatchTier,
    SuspensePayment,
)
from payment_recovery.services.contracts import LoanDirectory
from payment_recovery.store.loans import digits_only, last_four, normalize_name

logger = logging.getLogger(__name__)


def signals_for(payment: SuspensePayment) -> IdentitySignals:
    """Identity hints carried by a suspense payment."""
    return IdentitySignals(
        name=payment.customer_name,
        email=payment.customer_email,
        phone=payment.customer_phone,
        account_number=payment.bank_account,
        routing_number=payment.routing_number,
    )


def name_similarity(left: str | None, right: str | None) -> float:
    """Similarity ratio of two names after normalization (0.0 to 1.0)."""
    a, b = normalize_name(left), normalize_name(right)
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


class ReconciliationMatcher:
    """Rank candidate loans for a suspense payment.

    The confidence score is a weighted sum over match signals, clamped to
    ``[0, 100]``. Weights and tier thresholds come from
    :class:`MatchingConfig`.
    """

    def __init__(self, loan_directory: LoanDirectory, config: MatchingConfig | None = None) -> None:
        self.loan_directory = loan_directory
        self.config = config or MatchingConfig()

    def score(self, payment: SuspensePayment, loan: LoanSummary) -> tuple[int, list[str]]:
        """Composite confidence and the reasons that contributed to it."""
        cfg = self.config
        score = 0
        reasons: list[str] = []

        # Amount (exact or within tolerance)
        expected = loan.expected_payment
        if expected > 0 and payment.amount == expected:
            score += cfg.exact_amount_weight
            reasons.append("Exact payment amount match")
        elif expected > 0 and abs(payment.amount - expected) <= expected * cfg.amount_tolerance:
            score += cfg.amount_range_weight
            reasons.append("Payment amount within expected range")

        # Borrower name
        if payment.customer_name:
            if normalize_name(payment.customer_name) == normalize_name(loan.borrower_name):
                score += cfg.name_exact_weight
                reasons.append("Customer name exact match")
            elif (
                name_similarity(payment.customer_name, loan.borrower_name)
                >= cfg.name_similarity_threshold
            ):
                score += cfg.name_partial_weight
                reasons.append("Customer name partial match")

        # Contact details count once
        contact_reasons = []
        if (
            payment.customer_email
            and loan.borrower_email
            and payment.customer_email.strip().lower() == loan.borrower_email.strip().lower()
        ):
            contact_reasons.append("Customer email match")
        if digits_only(payment.customer_phone) and digits_only(payment.customer_phone) == digits_only(
            loan.borrower_phone
        ):
            contact_reasons.append("Customer phone number match")
        if contact_reasons:
            score += cfg.contact_weight
            reasons.extend(contact_reasons)

        # Bank details
        if last_four(payment.bank_account) and last_four(payment.bank_account) == last_four(
            loan.account_number
        ):
            score += cfg.account_partial_weight
            reasons.append("Account number partial match")
        if digits_only(payment.routing_number) and digits_only(payment.routing_number) == digits_only(
            loan.routing_number
        ):
            score += cfg.routing_weight
            reasons.append("Routing number match")

        return max(0, min(100, score)), reasons

    def tier_for(self, confidence: int) -> MatchTier:
        if confidence > self.config.strong_threshold:
            return MatchTier.STRONG
        if confidence >= self.config.moderate_threshold:
            return MatchTier.MODERATE
        return MatchTier.WEAK

    def rank(self, payment: SuspensePayment) -> list[LoanMatch]:
        """Candidate loans ordered by confidence, then most recent due date.

        An empty list is a normal outcome; the payment stays unmatched.
        """
        try:
            loans = self.loan_directory.search_candidates(
                payment.amount, signals_for(payment), self.config.amount_tolerance
            )
        except Exception:
            logger.exception("Candidate search failed for suspense payment %s", payment.payment_id)
            return []

        matches = []
        for loan in loans:
            confidence, reasons = self.score(payment, loan)
            if confidence < max(self.config.min_confidence, 1):
                continue
            matches.append(
                LoanMatch(
                    loan_id=loan.loan_id,
                    borrower_name=loan.borrower_name,
                    current_balance=loan.current_balance,
                    payment_due_date=loan.next_payment_due,
                    expected_payment=loan.expected_payment,
                    confidence=confidence,
                    match_reasons=reasons,
                    tier=self.tier_for(confidence),
                )
            )

        matches.sort(key=lambda m: m.loan_id)
        matches.sort(key=lambda m: m.payment_due_date or date.min, reverse=True)
        matches.sort(key=lambda m: m.confidence, reverse=True)

        logger.debug(
            "Suspense payment %s: %d candidates (best %s)",
            payment.payment_id,
            len(matches),
            matches[0].confidence if matches else 0,
        )
        return matches
