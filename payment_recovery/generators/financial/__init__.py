"""Payment recovery demo data generators."""

from payment_recovery.generators.financial.batch import INVALID_MUTATIONS, BatchFileGenerator
from payment_recovery.generators.financial.loan import LoanSummaryGenerator
from payment_recovery.generators.financial.suspense import SuspensePaymentGenerator

__all__ = [
    "INVALID_MUTATIONS",
    "BatchFileGenerator",
    "LoanSummaryGenerator",
    "SuspensePaymentGenerator",
]
