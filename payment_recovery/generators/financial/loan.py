"""Loan directory generator."""

import random
from datetime import date, timedelta
from decimal import Decimal

from payment_recovery.generators.base import BaseGenerator
from payment_recovery.models.financial import LoanSummary


class LoanSummaryGenerator(BaseGenerator):
    """Generate loans as the loan directory would return them."""

    def generate(self, as_of: date | None = None) -> LoanSummary:
        """Generate one active loan.

        Parameters
        ----------
        as_of : date | None
            Reference date for the next due date (default today).

        Returns
        -------
        LoanSummary
            Generated loan.
        """
        as_of = as_of or date.today()
        balance = Decimal(str(random.randint(50, 350) * 1000))
        expected = Decimal(str(random.randint(500, 3500))) + Decimal(random.choice(["0.00", "0.50", "0.25"]))
        # Monthly interest on the balance at 4-8% APR
        interest = (balance * Decimal(str(round(random.uniform(0.04, 0.08), 4))) / 12).quantize(
            Decimal("0.01")
        )

        return LoanSummary(
            loan_id=self.fake.uuid4(),
            loan_number=f"LN{random.randint(100000, 999999)}",
            borrower_name=self.fake.name(),
            current_balance=balance,
            expected_payment=expected,
            next_payment_due=as_of + timedelta(days=random.randint(-15, 30)),
            borrower_email=self.fake.email(),
            borrower_phone=self.digits(10),
            account_number=self.digits(random.randint(8, 12)),
            routing_number=self.digits(9),
            interest_due=min(interest, expected),
            fees_due=Decimal(random.choice(["0.00", "0.00", "25.00", "35.00"])),
        )

    def generate_batch(self, count: int, as_of: date | None = None) -> list[LoanSummary]:
        """Generate ``count`` loans with unique loan numbers."""
        loans: list[LoanSummary] = []
        seen: set[str] = set()
        while len(loans) < count:
            loan = self.generate(as_of)
            if loan.loan_number in seen:
                continue
            seen.add(loan.loan_number)
            loans.append(loan)
        return loans
