"""Bulk payment file generator."""

import csv
import io
import random
from datetime import date, timedelta

from payment_recovery.batch.parser import ALL_FIELDS
from payment_recovery.generators.base import BaseGenerator
from payment_recovery.models.financial import LoanSummary

# Corruptions applied to rows that should fail validation
INVALID_MUTATIONS = (
    "loan_number",
    "payment_amount",
    "payment_date",
    "payment_method",
    "routing_number",
    "unknown_loan",
)


class BatchFileGenerator(BaseGenerator):
    """Generate bulk payment CSV rows against a set of loans."""

    METHODS = ["ACH", "ACH", "ACH", "WIRE", "CHECK", "CARD"]

    def generate_row(self, loan: LoanSummary, as_of: date | None = None) -> dict[str, str]:
        """Generate a valid row paying ``loan``'s expected payment."""
        as_of = as_of or date.today()
        method = random.choice(self.METHODS)
        bank = method in ("ACH", "WIRE")
        return {
            "loan_number": loan.loan_number,
            "payment_amount": f"{loan.expected_payment:.2f}",
            "payment_date": (as_of - timedelta(days=random.randint(0, 10))).isoformat(),
            "payment_method": method,
            "account_number": (loan.account_number or self.digits(10)) if bank else "",
            "routing_number": (loan.routing_number or self.digits(9)) if bank else "",
            "customer_reference": f"REF{self.digits(6)}",
        }

    def corrupt(self, row: dict[str, str], mutation: str, as_of: date | None = None) -> dict[str, str]:
        """Return a copy of ``row`` that fails validation in one way."""
        as_of = as_of or date.today()
        bad = dict(row)
        if mutation == "loan_number":
            bad["loan_number"] = "LN1"
        elif mutation == "payment_amount":
            bad["payment_amount"] = random.choice(["-50.00", "0", "abc", "2500000.00"])
        elif mutation == "payment_date":
            bad["payment_date"] = random.choice(
                ["not-a-date", (as_of + timedelta(days=30)).isoformat()]
            )
        elif mutation == "payment_method":
            bad["payment_method"] = "BITCOIN"
        elif mutation == "routing_number":
            bad["payment_method"] = "ACH"
            bad["account_number"] = bad["account_number"] or self.digits(10)
            bad["routing_number"] = self.digits(7)
        elif mutation == "unknown_loan":
            bad["loan_number"] = f"ZZ{random.randint(100000, 999999)}"
        else:
            raise ValueError(f"Unknown mutation: {mutation}")
        return bad

    def generate_rows(
        self,
        loans: list[LoanSummary],
        count: int,
        invalid_rate: float = 0.0,
        as_of: date | None = None,
    ) -> list[dict[str, str]]:
        """Generate ``count`` rows, roughly ``invalid_rate`` of them invalid."""
        rows = []
        for _ in range(count):
            row = self.generate_row(random.choice(loans), as_of)
            if random.random() < invalid_rate:
                row = self.corrupt(row, random.choice(INVALID_MUTATIONS), as_of)
            rows.append(row)
        return rows

    @staticmethod
    def to_csv(rows: list[dict[str, str]]) -> str:
        """Render rows as CSV text with the standard header."""
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(ALL_FIELDS), lineterminator="\n")
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()
