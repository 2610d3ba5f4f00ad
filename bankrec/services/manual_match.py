"""Reviewer-driven link / unlink / ignore operations.

Each operation commits its own unit of work and reports the outcome as a
``MatchActionResult`` instead of raising, so callers can surface the error
code directly.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.constants.error_ids import ErrorIds
from bankrec.errors import (
    AlreadyMatchedError,
    EntityNotFound,
    PersistenceFailure,
    ReconciliationError,
    TargetUnavailableError,
    ValidationError,
)
from bankrec.logger import get_logger, log_exception
from bankrec.models import (
    MATCHED_STATUSES,
    BankTransaction,
    Expense,
    Invoice,
    MatchKind,
    MatchRecord,
    MatchSource,
    MatchStatus,
)
from bankrec.services.ledger import append_record, current_record, effective_status
from bankrec.services.settlement import (
    expense_is_open,
    invoice_is_open,
    release_expense,
    release_invoice,
    settle_expense,
    settle_invoice,
)

logger = get_logger(__name__)

MANUAL_MATCH_SCORE = 100


@dataclass(frozen=True)
class MatchActionResult:
    success: bool
    error_code: str | None = None
    error: str | None = None
    record_id: int | None = None

    @classmethod
    def ok(cls, record: MatchRecord | None = None) -> MatchActionResult:
        return cls(success=True, record_id=record.id if record is not None else None)

    @classmethod
    def failed(cls, exc: ReconciliationError) -> MatchActionResult:
        return cls(success=False, error_code=exc.code, error=exc.message)


async def get_company_transaction(
    db: AsyncSession, company_id: UUID, transaction_id: UUID
) -> BankTransaction:
    txn = await db.scalar(
        select(BankTransaction).where(
            BankTransaction.id == transaction_id,
            BankTransaction.company_id == company_id,
        )
    )
    if txn is None:
        raise EntityNotFound("Bank transaction", transaction_id)
    return txn


async def _lock_invoice(db: AsyncSession, company_id: UUID, invoice_id: UUID) -> Invoice:
    invoice = await db.scalar(
        select(Invoice)
        .where(Invoice.id == invoice_id, Invoice.company_id == company_id)
        .with_for_update()
    )
    if invoice is None:
        raise EntityNotFound("Invoice", invoice_id)
    return invoice


async def _lock_expense(db: AsyncSession, company_id: UUID, expense_id: UUID) -> Expense:
    expense = await db.scalar(
        select(Expense)
        .where(Expense.id == expense_id, Expense.company_id == company_id)
        .with_for_update()
    )
    if expense is None:
        raise EntityNotFound("Expense", expense_id)
    return expense


def _parse_link_kind(kind: MatchKind | str) -> MatchKind:
    try:
        parsed = MatchKind(kind)
    except ValueError:
        parsed = None
    if parsed not in (MatchKind.INVOICE, MatchKind.EXPENSE):
        raise ValidationError(f"Unsupported match kind: {kind}", kind=str(kind))
    return parsed


async def _run(
    db: AsyncSession,
    operation: str,
    transaction_id: UUID,
    action: Callable[[], Awaitable[MatchRecord | None]],
) -> MatchActionResult:
    try:
        record = await action()
        await db.commit()
    except ReconciliationError as exc:
        await db.rollback()
        logger.info(
            f"Manual {operation} rejected",
            transaction_id=str(transaction_id),
            error_code=exc.code,
            error=exc.message,
        )
        return MatchActionResult.failed(exc)
    except SQLAlchemyError as exc:
        await db.rollback()
        log_exception(
            logger,
            exc,
            f"Manual {operation} failed",
            error_id=ErrorIds.MANUAL_MATCH_FAILED,
            transaction_id=str(transaction_id),
        )
        return MatchActionResult.failed(
            PersistenceFailure(f"Failed to {operation} transaction")
        )
    return MatchActionResult.ok(record)


async def link(
    db: AsyncSession,
    company_id: UUID,
    transaction_id: UUID,
    target_id: UUID,
    kind: MatchKind | str,
    created_by: str | None = None,
) -> MatchActionResult:
    """Manually match a transaction to an invoice or expense."""

    async def action() -> MatchRecord:
        link_kind = _parse_link_kind(kind)
        txn = await get_company_transaction(db, company_id, transaction_id)
        current = await current_record(db, txn.id)
        if effective_status(current) in MATCHED_STATUSES:
            raise AlreadyMatchedError(
                "Transaction is already matched; unlink it first",
                transaction_id=str(txn.id),
            )

        if link_kind == MatchKind.INVOICE:
            invoice = await _lock_invoice(db, company_id, target_id)
            if not invoice_is_open(invoice):
                raise TargetUnavailableError(
                    f"Invoice {invoice.invoice_number} is not open", invoice_id=str(invoice.id)
                )
            record = await append_record(
                db,
                company_id=company_id,
                transaction_id=txn.id,
                status=MatchStatus.MANUAL_MATCHED,
                kind=MatchKind.INVOICE,
                source=MatchSource.MANUAL,
                confidence_score=MANUAL_MATCH_SCORE,
                reason="Manual match",
                matched_invoice_id=invoice.id,
                created_by=created_by,
            )
            settle_invoice(invoice, txn.date)
        else:
            expense = await _lock_expense(db, company_id, target_id)
            if not expense_is_open(expense):
                raise TargetUnavailableError(
                    "Expense is not open", expense_id=str(expense.id)
                )
            record = await append_record(
                db,
                company_id=company_id,
                transaction_id=txn.id,
                status=MatchStatus.MANUAL_MATCHED,
                kind=MatchKind.EXPENSE,
                source=MatchSource.MANUAL,
                confidence_score=MANUAL_MATCH_SCORE,
                reason="Manual match",
                matched_expense_id=expense.id,
                created_by=created_by,
            )
            settle_expense(expense, txn.date)
        await db.flush()
        logger.info(
            "Manually linked bank transaction",
            transaction_id=str(txn.id),
            target_id=str(target_id),
            kind=link_kind.value,
        )
        return record

    return await _run(db, "link", transaction_id, action)


async def unlink(
    db: AsyncSession,
    company_id: UUID,
    transaction_id: UUID,
    created_by: str | None = None,
) -> MatchActionResult:
    """Undo the current match (or ignore) of a transaction.

    Appends an UNMATCHED record and restores the previously matched entity.
    A transaction that is already unmatched is left untouched.
    """

    async def action() -> MatchRecord | None:
        txn = await get_company_transaction(db, company_id, transaction_id)
        current = await current_record(db, txn.id)
        if effective_status(current) == MatchStatus.UNMATCHED:
            return None

        if current.matched_invoice_id is not None:
            release_invoice(await _lock_invoice(db, company_id, current.matched_invoice_id))
        elif current.matched_expense_id is not None:
            release_expense(await _lock_expense(db, company_id, current.matched_expense_id))

        record = await append_record(
            db,
            company_id=company_id,
            transaction_id=txn.id,
            status=MatchStatus.UNMATCHED,
            kind=MatchKind.UNMATCH,
            source=MatchSource.MANUAL,
            reason=f"Unlinked from {current.match_status.value}",
            created_by=created_by,
        )
        logger.info(
            "Unlinked bank transaction",
            transaction_id=str(txn.id),
            previous_status=current.match_status.value,
        )
        return record

    return await _run(db, "unlink", transaction_id, action)


async def ignore(
    db: AsyncSession,
    company_id: UUID,
    transaction_id: UUID,
    created_by: str | None = None,
) -> MatchActionResult:
    """Exclude a transaction from auto-matching until it is unlinked."""

    async def action() -> MatchRecord | None:
        txn = await get_company_transaction(db, company_id, transaction_id)
        status = effective_status(await current_record(db, txn.id))
        if status in MATCHED_STATUSES:
            raise AlreadyMatchedError(
                "Transaction is matched; unlink it before ignoring",
                transaction_id=str(txn.id),
            )
        if status == MatchStatus.IGNORED:
            return None
        return await append_record(
            db,
            company_id=company_id,
            transaction_id=txn.id,
            status=MatchStatus.IGNORED,
            kind=MatchKind.IGNORE,
            source=MatchSource.MANUAL,
            reason="Ignored by reviewer",
            created_by=created_by,
        )

    return await _run(db, "ignore", transaction_id, action)
