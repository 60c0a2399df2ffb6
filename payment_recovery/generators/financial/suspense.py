"""Suspense payment generator."""

import random
from datetime import datetime, timedelta
from decimal import Decimal

from payment_recovery.generators.base import BaseGenerator
from payment_recovery.models.financial import (
    LoanSummary,
    PaymentMethod,
    SuspensePayment,
    SuspenseReason,
)


class SuspensePaymentGenerator(BaseGenerator):
    """Generate unidentified payments, some of which trace back to a loan."""

    METHODS = [PaymentMethod.ACH, PaymentMethod.WIRE, PaymentMethod.CHECK, PaymentMethod.CASH]
    SOURCES = ["Bank Lockbox", "Wire Transfer", "ACH Return", "Branch Deposit", "Mobile Deposit"]

    def generate(
        self,
        loans: list[LoanSummary] | None = None,
        match_rate: float = 0.6,
        now: datetime | None = None,
    ) -> SuspensePayment:
        """Generate one suspense payment.

        Parameters
        ----------
        loans : list[LoanSummary] | None
            Loans a payment may belong to.
        match_rate : float
            Probability that the payment carries signals from one of ``loans``.
        now : datetime | None
            Reference time; payments are received up to 90 days before it.

        Returns
        -------
        SuspensePayment
            Generated payment.
        """
        now = now or datetime.now()
        payment = SuspensePayment(
            payment_id=f"SUS-{self.fake.unique.random_number(digits=8, fix_len=True)}",
            amount=Decimal(str(random.randint(100, 5000))) + Decimal("0.00"),
            received_at=now - timedelta(days=random.randint(0, 90), hours=random.randint(0, 23)),
            payment_method=random.choice(self.METHODS),
            reference_number=f"REF{self.digits(8)}",
            payment_source=random.choice(self.SOURCES),
            reason=random.choice(
                [
                    SuspenseReason.UNKNOWN_CUSTOMER,
                    SuspenseReason.INSUFFICIENT_INFO,
                    SuspenseReason.DUPLICATE_PAYMENT,
                    SuspenseReason.OVERPAYMENT,
                ]
            ),
        )

        if loans and random.random() < match_rate:
            self._trace_to(payment, random.choice(loans))
        elif random.random() < 0.5:
            payment.customer_name = self.fake.name()
            payment.customer_phone = self.digits(10)

        return payment

    def _trace_to(self, payment: SuspensePayment, loan: LoanSummary) -> None:
        """Copy a random subset of the loan's identity signals onto the payment."""
        payment.amount = loan.expected_payment
        if random.random() < 0.8:
            payment.customer_name = loan.borrower_name
        if random.random() < 0.4:
            payment.customer_email = loan.borrower_email
        if random.random() < 0.4:
            payment.customer_phone = loan.borrower_phone
        if random.random() < 0.5 and loan.account_number:
            payment.bank_account = "****" + loan.account_number[-4:]
            payment.routing_number = loan.routing_number

    def generate_batch(
        self,
        count: int,
        loans: list[LoanSummary] | None = None,
        match_rate: float = 0.6,
        now: datetime | None = None,
    ) -> list[SuspensePayment]:
        return [self.generate(loans, match_rate, now) for _ in range(count)]
