"""Batch auto-matching of unmatched bank transactions."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.constants.error_ids import ErrorIds
from bankrec.errors import EntityNotFound, PersistenceFailure, ValidationError
from bankrec.logger import async_log_timing, get_logger, log_exception
from bankrec.models import (
    BankAccount,
    BankTransaction,
    Expense,
    ExpenseStatus,
    Invoice,
    InvoiceDirection,
    InvoiceStatus,
    MatchKind,
    MatchRecord,
    MatchSource,
    MatchStatus,
)
from bankrec.services.ledger import append_record, latest_records_subquery
from bankrec.services.matching_config import ReconciliationConfig, load_reconciliation_config
from bankrec.services.resolver import MatchOutcome, Resolution, resolve
from bankrec.services.settlement import settle_expense, settle_invoice

logger = get_logger(__name__)


@dataclass(frozen=True)
class AutoMatchResult:
    matched_count: int
    evaluated: int


def resolve_threshold(threshold: int | None, config: ReconciliationConfig) -> int:
    """Effective commit threshold; never below the matched cutoff."""
    if threshold is None:
        return config.auto_match_threshold
    if threshold < config.matched_threshold or threshold > 100:
        raise ValidationError(
            f"threshold must be between {config.matched_threshold} and 100",
            threshold=threshold,
        )
    return threshold


async def load_unmatched_transactions(
    db: AsyncSession,
    company_id: UUID,
    account_id: UUID | None = None,
) -> list[BankTransaction]:
    """Transactions whose latest ledger record is UNMATCHED, or that have none.

    Ignored and matched transactions are excluded. Newest first.
    """
    latest = latest_records_subquery(company_id)
    stmt = (
        select(BankTransaction)
        .outerjoin(latest, latest.c.bank_transaction_id == BankTransaction.id)
        .outerjoin(MatchRecord, MatchRecord.id == latest.c.record_id)
        .where(BankTransaction.company_id == company_id)
        .where(or_(MatchRecord.id.is_(None), MatchRecord.match_status == MatchStatus.UNMATCHED))
        .order_by(BankTransaction.date.desc(), BankTransaction.created_at.desc())
    )
    if account_id is not None:
        stmt = stmt.where(BankTransaction.account_id == account_id)
    result = await db.execute(stmt)
    return list(result.scalars())


async def load_open_candidates(
    db: AsyncSession, company_id: UUID, *, lock: bool = True
) -> tuple[list[Invoice], list[Expense]]:
    """Open outbound invoices and unpaid expenses.

    With ``lock`` the rows are selected FOR UPDATE so concurrent runs over the
    same company serialize on their candidates.
    """
    invoice_stmt = (
        select(Invoice)
        .where(
            Invoice.company_id == company_id,
            Invoice.direction == InvoiceDirection.OUTBOUND,
            Invoice.paid_at.is_(None),
            Invoice.status.not_in([InvoiceStatus.CANCELLED, InvoiceStatus.REJECTED]),
        )
        .order_by(Invoice.issue_date, Invoice.invoice_number)
    )
    expense_stmt = (
        select(Expense)
        .where(
            Expense.company_id == company_id,
            Expense.status.in_([ExpenseStatus.DRAFT, ExpenseStatus.PENDING]),
        )
        .order_by(Expense.date, Expense.id)
    )
    if lock:
        invoice_stmt = invoice_stmt.with_for_update()
        expense_stmt = expense_stmt.with_for_update()

    invoices = await db.execute(invoice_stmt)
    expenses = await db.execute(expense_stmt)
    return list(invoices.scalars()), list(expenses.scalars())


async def _commit_pair(
    db: AsyncSession,
    company_id: UUID,
    txn: BankTransaction,
    resolution: Resolution,
    target: Invoice | Expense,
    created_by: str | None,
) -> None:
    # Ledger append and entity update succeed or fail together.
    async with db.begin_nested():
        await append_record(
            db,
            company_id=company_id,
            transaction_id=txn.id,
            status=MatchStatus.AUTO_MATCHED,
            kind=resolution.matched_kind,
            source=MatchSource.AUTO,
            confidence_score=resolution.confidence_score,
            reason=resolution.reason,
            matched_invoice_id=resolution.matched_invoice_id,
            matched_expense_id=resolution.matched_expense_id,
            created_by=created_by,
        )
        if isinstance(target, Invoice):
            settle_invoice(target, txn.date)
        else:
            settle_expense(target, txn.date)
        await db.flush()


async def run_auto_match(
    db: AsyncSession,
    company_id: UUID,
    account_id: UUID | None = None,
    threshold: int | None = None,
    created_by: str | None = None,
    config: ReconciliationConfig | None = None,
) -> AutoMatchResult:
    """Match every unmatched transaction in scope that resolves with high confidence.

    Only ``matched`` resolutions at or above ``threshold`` are committed;
    partial and ambiguous results are left for manual review. Safe to re-run:
    committed transactions are no longer selected.
    """
    config = config or load_reconciliation_config()
    effective_threshold = resolve_threshold(threshold, config)

    if account_id is not None:
        account = await db.scalar(
            select(BankAccount).where(
                BankAccount.id == account_id, BankAccount.company_id == company_id
            )
        )
        if account is None:
            raise EntityNotFound("Bank account", account_id)

    matched_count = 0
    evaluated = 0

    async with async_log_timing(
        "auto_match",
        logger=logger,
        company_id=str(company_id),
        account_id=str(account_id) if account_id else None,
        threshold=effective_threshold,
    ) as timing:
        transactions = await load_unmatched_transactions(db, company_id, account_id)
        invoices, expenses = await load_open_candidates(db, company_id)
        timing["transactions"] = len(transactions)
        timing["open_invoices"] = len(invoices)
        timing["open_expenses"] = len(expenses)

        if transactions and (invoices or expenses):
            invoices_by_id = {invoice.id: invoice for invoice in invoices}
            expenses_by_id = {expense.id: expense for expense in expenses}
            claimed: set[UUID] = set()

            for txn in transactions:
                resolution = resolve(
                    txn,
                    [i for i in invoices if i.id not in claimed],
                    [e for e in expenses if e.id not in claimed],
                    config,
                )
                evaluated += 1

                if (
                    resolution.status != MatchOutcome.MATCHED
                    or resolution.confidence_score < effective_threshold
                    or resolution.matched_id is None
                ):
                    continue

                target_id = resolution.matched_id
                target: Invoice | Expense = (
                    invoices_by_id[target_id]
                    if resolution.matched_kind == MatchKind.INVOICE
                    else expenses_by_id[target_id]
                )
                # Claimed even on failure: a rolled-back entity is expired and
                # is retried on the next run instead.
                claimed.add(target_id)
                try:
                    await _commit_pair(db, company_id, txn, resolution, target, created_by)
                except SQLAlchemyError as exc:
                    log_exception(
                        logger,
                        exc,
                        "Failed to commit auto-match pair",
                        error_id=ErrorIds.AUTO_MATCH_PAIR_FAILED,
                        transaction_id=str(txn.id),
                        target_id=str(target_id),
                    )
                    continue
                matched_count += 1
                logger.info(
                    "Auto-matched bank transaction",
                    transaction_id=str(txn.id),
                    target_id=str(target_id),
                    kind=resolution.matched_kind.value,
                    score=resolution.confidence_score,
                )

        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            log_exception(
                logger,
                exc,
                "Failed to commit auto-match run",
                error_id=ErrorIds.AUTO_MATCH_COMMIT_FAILED,
                company_id=str(company_id),
                pending_matches=matched_count,
            )
            raise PersistenceFailure("Failed to commit auto-match results") from exc
        timing["evaluated"] = evaluated
        timing["matched_count"] = matched_count

    return AutoMatchResult(matched_count=matched_count, evaluated=evaluated)
