"""Payment allocation across principal, interest, fees and escrow."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from payment_recovery.exceptions import AllocationError
from payment_recovery.models.financial import Allocation, LoanSummary
from payment_recovery.services.contracts import AllocationService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest residual attributed to rounding (one cent per component)
MAX_ROUNDING_RESIDUAL = Decimal("0.04")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def is_whole_cents(amount: Decimal) -> bool:
    """True if ``amount`` carries no precision below one cent."""
    return to_money(amount) == amount


def waterfall_allocation(amount: Decimal, loan: LoanSummary | None) -> Allocation:
    """Split ``amount`` principal first, then interest, then fees.

    Principal is capped at the loan's current balance and interest/fees at
    what is due; anything left over is held in escrow.
    """
    remaining = to_money(amount)
    if loan is None:
        return Allocation(principal=remaining, interest=ZERO, fees=ZERO, escrow=ZERO)

    principal = min(remaining, max(to_money(loan.current_balance), ZERO))
    remaining -= principal
    interest = min(remaining, max(to_money(loan.interest_due), ZERO))
    remaining -= interest
    fees = min(remaining, max(to_money(loan.fees_due), ZERO))
    remaining -= fees

    return Allocation(principal=principal, interest=interest, fees=fees, escrow=remaining)


def normalize_allocation(allocation: Allocation, amount: Decimal) -> Allocation:
    """Quantize components and absorb rounding residue into principal.

    Raises
    ------
    AllocationError
        If ``amount`` has sub-cent precision, or the components disagree
        with it by more than rounding.
    """
    if not is_whole_cents(amount):
        raise AllocationError(f"Payment amount {amount} is not a whole number of cents")
    amount = to_money(amount)
    result = Allocation(
        principal=to_money(allocation.principal),
        interest=to_money(allocation.interest),
        fees=to_money(allocation.fees),
        escrow=to_money(allocation.escrow),
    )
    residual = amount - result.total
    if residual and abs(residual) > MAX_ROUNDING_RESIDUAL:
        raise AllocationError(
            f"Allocation total {result.total} does not match payment amount {amount}"
        )
    result.principal += residual
    if result.total != amount:
        raise AllocationError(f"Allocation total {result.total} != {amount}")
    return result


def allocate_payment(
    amount: Decimal,
    loan_id: str,
    loan: LoanSummary | None = None,
    service: AllocationService | None = None,
) -> Allocation:
    """Allocate a payment, preferring the loan-terms service.

    Falls back to :func:`waterfall_allocation` when no service is wired, the
    service returns ``None``, or the service call fails.
    """
    allocation = None
    if service is not None:
        try:
            allocation = service.compute_allocation(loan_id, amount)
        except Exception:
            logger.exception("Allocation service failed for loan %s; using waterfall", loan_id)
            allocation = None

    if allocation is None:
        allocation = waterfall_allocation(amount, loan)

    return normalize_allocation(allocation, amount)
