"""SQLAlchemy models package."""

from bankrec.models.banking import BankAccount, BankTransaction
from bankrec.models.billing import (
    Expense,
    ExpenseStatus,
    Invoice,
    InvoiceDirection,
    InvoiceStatus,
)
from bankrec.models.import_job import ImportJob, ImportJobStatus, ImportTier
from bankrec.models.reconciliation import (
    MATCHED_STATUSES,
    LedgerImmutableError,
    MatchKind,
    MatchRecord,
    MatchSource,
    MatchStatus,
)

__all__ = [
    "MATCHED_STATUSES",
    "BankAccount",
    "BankTransaction",
    "Expense",
    "ExpenseStatus",
    "ImportJob",
    "ImportJobStatus",
    "ImportTier",
    "Invoice",
    "InvoiceDirection",
    "InvoiceStatus",
    "LedgerImmutableError",
    "MatchKind",
    "MatchRecord",
    "MatchSource",
    "MatchStatus",
]
