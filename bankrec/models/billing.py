"""Invoice and expense models (the candidate side of reconciliation)."""

import datetime as dt
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from bankrec.database import Base
from bankrec.models.base import CompanyOwnedMixin, TimestampMixin, UUIDMixin


class InvoiceDirection(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ExpenseStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(Base, UUIDMixin, CompanyOwnedMixin, TimestampMixin):
    """Issued or received invoice.

    Reconciliation only touches ``status``, ``paid_at`` and
    ``status_before_match`` (the status snapshot restored on unlink).
    """

    __tablename__ = "invoices"

    direction: Mapped[InvoiceDirection] = mapped_column(
        SQLEnum(InvoiceDirection, name="invoice_direction_enum"),
        nullable=False,
        default=InvoiceDirection.OUTBOUND,
    )
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    buyer_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    issue_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus, name="invoice_status_enum"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    paid_at: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    status_before_match: Mapped[InvoiceStatus | None] = mapped_column(
        SQLEnum(InvoiceStatus, name="invoice_status_enum"), nullable=True
    )

    @property
    def amount(self) -> Decimal:
        """Amount compared against bank transactions: gross total, else net."""
        return self.total_amount if self.total_amount is not None else self.net_amount


class Expense(Base, UUIDMixin, CompanyOwnedMixin, TimestampMixin):
    """Recorded expense awaiting (or matched to) an outgoing payment."""

    __tablename__ = "expenses"

    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[ExpenseStatus] = mapped_column(
        SQLEnum(ExpenseStatus, name="expense_status_enum"),
        nullable=False,
        default=ExpenseStatus.PENDING,
    )
    payment_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    status_before_match: Mapped[ExpenseStatus | None] = mapped_column(
        SQLEnum(ExpenseStatus, name="expense_status_enum"), nullable=True
    )
