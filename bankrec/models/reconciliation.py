"""Match ledger models.

``MatchRecord`` rows form an append-only event log per bank transaction.
The current reconciliation status of a transaction is the record with the
greatest ``created_at`` (ties broken by ``id``); a transaction with no
records is implicitly unmatched.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Uuid, event
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from bankrec.database import Base
from bankrec.models.base import CompanyOwnedMixin, utcnow


class MatchStatus(str, Enum):
    UNMATCHED = "unmatched"
    AUTO_MATCHED = "auto_matched"
    MANUAL_MATCHED = "manual_matched"
    IGNORED = "ignored"


class MatchKind(str, Enum):
    INVOICE = "invoice"
    EXPENSE = "expense"
    UNMATCH = "unmatch"
    IGNORE = "ignore"


class MatchSource(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


MATCHED_STATUSES = frozenset({MatchStatus.AUTO_MATCHED, MatchStatus.MANUAL_MATCHED})


class LedgerImmutableError(RuntimeError):
    """Raised when code attempts to rewrite or delete a ledger record."""


class MatchRecord(Base, CompanyOwnedMixin):
    """One reconciliation decision for a bank transaction."""

    __tablename__ = "match_records"
    __table_args__ = (
        Index("ix_match_records_txn_created", "bank_transaction_id", "created_at", "id"),
    )

    # Monotonic integer key; orders records written within the same instant.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    bank_transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    match_status: Mapped[MatchStatus] = mapped_column(
        SQLEnum(MatchStatus, name="match_status_enum"), nullable=False
    )
    match_kind: Mapped[MatchKind] = mapped_column(
        SQLEnum(MatchKind, name="match_kind_enum"), nullable=False
    )
    matched_invoice_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=True
    )
    matched_expense_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses.id"), nullable=True
    )
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-100
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source: Mapped[MatchSource] = mapped_column(
        SQLEnum(MatchSource, name="match_source_enum"), nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def target_id(self) -> UUID | None:
        return self.matched_invoice_id or self.matched_expense_id


@event.listens_for(MatchRecord, "before_update")
def _reject_update(mapper, connection, target: MatchRecord) -> None:
    raise LedgerImmutableError(f"MatchRecord {target.id} is append-only and cannot be updated")


@event.listens_for(MatchRecord, "before_delete")
def _reject_delete(mapper, connection, target: MatchRecord) -> None:
    raise LedgerImmutableError(f"MatchRecord {target.id} is append-only and cannot be deleted")
