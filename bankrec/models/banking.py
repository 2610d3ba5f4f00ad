"""Bank account and imported bank transaction models."""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bankrec.config import settings
from bankrec.database import Base
from bankrec.models.base import CompanyOwnedMixin, TimestampMixin, UUIDMixin, utcnow


class BankAccount(Base, UUIDMixin, CompanyOwnedMixin, TimestampMixin):
    """A company bank account that statements are imported into."""

    __tablename__ = "bank_accounts"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default=lambda: settings.default_currency
    )


class BankTransaction(Base, UUIDMixin, CompanyOwnedMixin):
    """A single booked line from a bank statement.

    Rows are immutable once imported. Reconciliation state lives in the
    match ledger (``MatchRecord``), never on the transaction itself.

    Amount sign: positive = credit (incoming), negative = debit (outgoing).
    """

    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("ix_bank_transactions_company_account_date", "company_id", "account_id", "date"),
    )

    account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )
    import_job_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("import_jobs.id", ondelete="SET NULL"), nullable=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reference: Mapped[str | None] = mapped_column(String(500), nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
