"""Side effects of matching on invoices and expenses, and their reversal.

Matching snapshots the entity's status into ``status_before_match`` so an
unlink can put it back exactly.
"""

from datetime import date

from bankrec.models import Expense, ExpenseStatus, Invoice, InvoiceStatus


def settle_invoice(invoice: Invoice, paid_on: date) -> None:
    invoice.status_before_match = invoice.status
    invoice.paid_at = paid_on
    invoice.status = InvoiceStatus.ACCEPTED


def settle_expense(expense: Expense, paid_on: date) -> None:
    expense.status_before_match = expense.status
    expense.status = ExpenseStatus.PAID
    expense.payment_date = paid_on


def release_invoice(invoice: Invoice) -> None:
    invoice.status = invoice.status_before_match or InvoiceStatus.SENT
    invoice.paid_at = None
    invoice.status_before_match = None


def release_expense(expense: Expense) -> None:
    expense.status = expense.status_before_match or ExpenseStatus.PENDING
    expense.payment_date = None
    expense.status_before_match = None


def invoice_is_open(invoice: Invoice) -> bool:
    """Unpaid outbound invoice that can still receive a payment."""
    return invoice.paid_at is None and invoice.status not in (
        InvoiceStatus.CANCELLED,
        InvoiceStatus.REJECTED,
    )


def expense_is_open(expense: Expense) -> bool:
    return expense.status in (ExpenseStatus.DRAFT, ExpenseStatus.PENDING)
