"""In-memory loan directory with lookup indexes."""

import bisect
import re
from dataclasses import dataclass, field
from decimal import Decimal

from payment_recovery.models.financial import IdentitySignals, LoanSummary


def normalize_name(name: str | None) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not name:
        return ""
    return " ".join(re.sub(r"[^\w\s]", " ", name.lower()).split())


def digits_only(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def last_four(value: str | None) -> str:
    digits = digits_only(value)
    return digits[-4:] if len(digits) >= 4 else ""


@dataclass
class InMemoryLoanDirectory:
    """Loan directory keyed by loan id and loan number.

    Candidate search goes through indexes on expected payment amount,
    borrower name tokens, contact details and account last-four instead of
    scanning every loan.
    """

    loans: dict[str, LoanSummary] = field(default_factory=dict)

    # Lookup indexes
    _by_number: dict[str, str] = field(default_factory=dict)
    _amounts: list[tuple[Decimal, str]] = field(default_factory=list)
    _name_tokens: dict[str, set[str]] = field(default_factory=dict)
    _emails: dict[str, set[str]] = field(default_factory=dict)
    _phones: dict[str, set[str]] = field(default_factory=dict)
    _account_last_four: dict[str, set[str]] = field(default_factory=dict)

    def add_loan(self, loan: LoanSummary) -> None:
        """Add a loan to the directory."""
        self.loans[loan.loan_id] = loan
        self._by_number[loan.loan_number.upper()] = loan.loan_id
        bisect.insort(self._amounts, (loan.expected_payment, loan.loan_id))

        for token in normalize_name(loan.borrower_name).split():
            self._name_tokens.setdefault(token, set()).add(loan.loan_id)
        if loan.borrower_email:
            self._emails.setdefault(loan.borrower_email.lower(), set()).add(loan.loan_id)
        if digits_only(loan.borrower_phone):
            self._phones.setdefault(digits_only(loan.borrower_phone), set()).add(loan.loan_id)
        if last_four(loan.account_number):
            self._account_last_four.setdefault(last_four(loan.account_number), set()).add(
                loan.loan_id
            )

    def find_loan(self, loan_ref: str) -> LoanSummary | None:
        """Look up a loan by id or loan number. ``None`` means not found."""
        if not loan_ref:
            return None
        if loan_ref in self.loans:
            return self.loans[loan_ref]
        loan_id = self._by_number.get(loan_ref.strip().upper())
        return self.loans.get(loan_id) if loan_id else None

    def search_candidates(
        self,
        amount: Decimal,
        signals: IdentitySignals,
        tolerance: Decimal = Decimal("0.10"),
    ) -> list[LoanSummary]:
        """Return active loans that share at least one signal with the payment."""
        hits: set[str] = set()

        low = amount * (1 - tolerance)
        high = amount * (1 + tolerance)
        start = bisect.bisect_left(self._amounts, (low, ""))
        for expected, loan_id in self._amounts[start:]:
            if expected > high:
                break
            hits.add(loan_id)

        for token in normalize_name(signals.name).split():
            hits |= self._name_tokens.get(token, set())
        if signals.email:
            hits |= self._emails.get(signals.email.lower(), set())
        if digits_only(signals.phone):
            hits |= self._phones.get(digits_only(signals.phone), set())
        if last_four(signals.account_number):
            hits |= self._account_last_four.get(last_four(signals.account_number), set())

        return [self.loans[lid] for lid in sorted(hits) if self.loans[lid].active]

    def summary(self) -> dict[str, int]:
        return {"loans": len(self.loans)}
