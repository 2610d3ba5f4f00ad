"""Read side of reconciliation: candidates, summary counts and listings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.logger import get_logger, log_timing
from bankrec.models import (
    BankTransaction,
    Expense,
    Invoice,
    MatchKind,
    MatchRecord,
    MatchStatus,
)
from bankrec.services.auto_match import load_open_candidates
from bankrec.services.ledger import latest_records_subquery
from bankrec.services.manual_match import get_company_transaction
from bankrec.services.matching_config import ReconciliationConfig, load_reconciliation_config
from bankrec.services.resolver import rank_candidates

logger = get_logger(__name__)


@dataclass(frozen=True)
class CandidateView:
    kind: MatchKind
    target_id: UUID
    score: int
    reason: str
    label: str
    amount: Decimal
    date: date


@dataclass(frozen=True)
class CandidateListing:
    invoice_candidates: list[CandidateView]
    expense_candidates: list[CandidateView]


@dataclass(frozen=True)
class ReconciliationSummary:
    unmatched: int = 0
    auto_matched: int = 0
    manual_matched: int = 0
    ignored: int = 0
    mismatched: int = 0


async def list_candidates(
    db: AsyncSession,
    company_id: UUID,
    transaction_id: UUID,
    limit: int | None = None,
    config: ReconciliationConfig | None = None,
) -> CandidateListing:
    """Open invoices and expenses that score above zero for a transaction.

    Every scored candidate is returned unless ``limit`` caps each list.
    """
    config = config or load_reconciliation_config()
    txn = await get_company_transaction(db, company_id, transaction_id)
    invoices, expenses = await load_open_candidates(db, company_id, lock=False)
    invoices_by_id = {invoice.id: invoice for invoice in invoices}
    expenses_by_id = {expense.id: expense for expense in expenses}

    with log_timing(
        "score_candidates", logger=logger, level="debug", transaction_id=str(txn.id)
    ) as timing:
        ranked = rank_candidates(txn, invoices, expenses, config)
        timing["candidates"] = len(ranked)

    invoice_views: list[CandidateView] = []
    expense_views: list[CandidateView] = []
    for candidate in ranked:
        if candidate.score <= 0:
            continue
        if candidate.kind == MatchKind.INVOICE:
            invoice = invoices_by_id[candidate.target_id]
            invoice_views.append(
                CandidateView(
                    kind=candidate.kind,
                    target_id=invoice.id,
                    score=candidate.score,
                    reason=candidate.reason,
                    label=invoice.invoice_number,
                    amount=invoice.amount,
                    date=invoice.issue_date,
                )
            )
        else:
            expense = expenses_by_id[candidate.target_id]
            expense_views.append(
                CandidateView(
                    kind=candidate.kind,
                    target_id=expense.id,
                    score=candidate.score,
                    reason=candidate.reason,
                    label=expense.vendor_name or expense.description or "",
                    amount=expense.total_amount,
                    date=expense.date,
                )
            )

    return CandidateListing(
        invoice_candidates=invoice_views[:limit],
        expense_candidates=expense_views[:limit],
    )


def _scoped(
    stmt: Select,
    company_id: UUID,
    account_id: UUID | None,
    date_from: date | None,
    date_to: date | None,
) -> Select:
    stmt = stmt.where(BankTransaction.company_id == company_id)
    if account_id is not None:
        stmt = stmt.where(BankTransaction.account_id == account_id)
    if date_from is not None:
        stmt = stmt.where(BankTransaction.date >= date_from)
    if date_to is not None:
        stmt = stmt.where(BankTransaction.date <= date_to)
    return stmt


async def summary(
    db: AsyncSession,
    company_id: UUID,
    account_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    config: ReconciliationConfig | None = None,
) -> ReconciliationSummary:
    """Count transactions per current status, plus amount mismatches.

    ``mismatched`` counts transactions whose current record points at an
    invoice or expense whose amount differs from the transaction's absolute
    amount by more than the configured epsilon, whatever the status.
    """
    config = config or load_reconciliation_config()
    latest = latest_records_subquery(company_id)

    status_counts = await db.execute(
        _scoped(
            select(MatchRecord.match_status, func.count(BankTransaction.id))
            .select_from(BankTransaction)
            .outerjoin(latest, latest.c.bank_transaction_id == BankTransaction.id)
            .outerjoin(MatchRecord, MatchRecord.id == latest.c.record_id)
            .group_by(MatchRecord.match_status),
            company_id,
            account_id,
            date_from,
            date_to,
        )
    )
    counts: dict[MatchStatus, int] = {}
    for status, count in status_counts.all():
        key = status or MatchStatus.UNMATCHED
        counts[key] = counts.get(key, 0) + count

    targets = await db.execute(
        _scoped(
            select(
                BankTransaction.amount,
                Invoice.total_amount,
                Invoice.net_amount,
                Expense.total_amount,
            )
            .select_from(BankTransaction)
            .join(latest, latest.c.bank_transaction_id == BankTransaction.id)
            .join(MatchRecord, MatchRecord.id == latest.c.record_id)
            .outerjoin(Invoice, Invoice.id == MatchRecord.matched_invoice_id)
            .outerjoin(Expense, Expense.id == MatchRecord.matched_expense_id)
            .where(
                or_(
                    MatchRecord.matched_invoice_id.is_not(None),
                    MatchRecord.matched_expense_id.is_not(None),
                )
            ),
            company_id,
            account_id,
            date_from,
            date_to,
        )
    )
    mismatched = 0
    for txn_amount, invoice_total, invoice_net, expense_total in targets.all():
        if invoice_total is not None or invoice_net is not None:
            target_amount = invoice_total if invoice_total is not None else invoice_net
        else:
            target_amount = expense_total
        if target_amount is None:
            continue
        if abs(Decimal(target_amount) - abs(Decimal(txn_amount))) > config.mismatch_epsilon:
            mismatched += 1

    return ReconciliationSummary(
        unmatched=counts.get(MatchStatus.UNMATCHED, 0),
        auto_matched=counts.get(MatchStatus.AUTO_MATCHED, 0),
        manual_matched=counts.get(MatchStatus.MANUAL_MATCHED, 0),
        ignored=counts.get(MatchStatus.IGNORED, 0),
        mismatched=mismatched,
    )


async def list_transactions(
    db: AsyncSession,
    company_id: UUID,
    status: MatchStatus | None = None,
    account_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[tuple[BankTransaction, MatchRecord | None]], int]:
    """Page of transactions with their current ledger record, newest first."""
    latest = latest_records_subquery(company_id)
    base = (
        select(BankTransaction, MatchRecord)
        .outerjoin(latest, latest.c.bank_transaction_id == BankTransaction.id)
        .outerjoin(MatchRecord, MatchRecord.id == latest.c.record_id)
        .where(BankTransaction.company_id == company_id)
    )
    if account_id is not None:
        base = base.where(BankTransaction.account_id == account_id)
    if status == MatchStatus.UNMATCHED:
        base = base.where(
            or_(MatchRecord.id.is_(None), MatchRecord.match_status == MatchStatus.UNMATCHED)
        )
    elif status is not None:
        base = base.where(MatchRecord.match_status == status)

    total = await db.scalar(select(func.count()).select_from(base.subquery())) or 0
    result = await db.execute(
        base.order_by(BankTransaction.date.desc(), BankTransaction.created_at.desc(), BankTransaction.id)
        .limit(limit)
        .offset(offset)
    )
    return [(txn, record) for txn, record in result.all()], total
