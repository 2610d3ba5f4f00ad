"""Append-only match ledger and current-status derivation."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.models import MatchKind, MatchRecord, MatchSource, MatchStatus


def effective_status(record: MatchRecord | None) -> MatchStatus:
    """Status implied by the latest record; no record means unmatched."""
    if record is None:
        return MatchStatus.UNMATCHED
    return record.match_status


def latest_records_subquery(company_id: UUID):
    """Latest ledger record per transaction for one company.

    ``row_number() over (partition by transaction order by created_at desc,
    id desc)`` picks the newest record; ``id`` orders same-instant writes.
    """
    ranked = (
        select(
            MatchRecord.id.label("record_id"),
            MatchRecord.bank_transaction_id.label("bank_transaction_id"),
            func.row_number()
            .over(
                partition_by=MatchRecord.bank_transaction_id,
                order_by=(MatchRecord.created_at.desc(), MatchRecord.id.desc()),
            )
            .label("rn"),
        )
        .where(MatchRecord.company_id == company_id)
        .subquery()
    )
    return (
        select(ranked.c.record_id, ranked.c.bank_transaction_id)
        .where(ranked.c.rn == 1)
        .subquery()
    )


async def current_record(db: AsyncSession, transaction_id: UUID) -> MatchRecord | None:
    result = await db.execute(
        select(MatchRecord)
        .where(MatchRecord.bank_transaction_id == transaction_id)
        .order_by(MatchRecord.created_at.desc(), MatchRecord.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def current_records(
    db: AsyncSession,
    company_id: UUID,
    transaction_ids: Iterable[UUID] | None = None,
) -> dict[UUID, MatchRecord]:
    """Current record for each transaction in one query.

    Transactions without any record are absent from the result.
    """
    latest = latest_records_subquery(company_id)
    stmt = select(MatchRecord).join(latest, MatchRecord.id == latest.c.record_id)
    if transaction_ids is not None:
        ids = list(transaction_ids)
        if not ids:
            return {}
        stmt = stmt.where(MatchRecord.bank_transaction_id.in_(ids))
    result = await db.execute(stmt)
    return {record.bank_transaction_id: record for record in result.scalars()}


async def history(db: AsyncSession, transaction_id: UUID) -> list[MatchRecord]:
    """All ledger records for a transaction, oldest first."""
    result = await db.execute(
        select(MatchRecord)
        .where(MatchRecord.bank_transaction_id == transaction_id)
        .order_by(MatchRecord.created_at.asc(), MatchRecord.id.asc())
    )
    return list(result.scalars())


async def append_record(
    db: AsyncSession,
    *,
    company_id: UUID,
    transaction_id: UUID,
    status: MatchStatus,
    kind: MatchKind,
    source: MatchSource,
    confidence_score: int = 0,
    reason: str | None = None,
    matched_invoice_id: UUID | None = None,
    matched_expense_id: UUID | None = None,
    created_by: str | None = None,
) -> MatchRecord:
    """Add a new ledger record to the session and flush it.

    The caller owns the transaction boundary.
    """
    record = MatchRecord(
        company_id=company_id,
        bank_transaction_id=transaction_id,
        match_status=status,
        match_kind=kind,
        source=source,
        confidence_score=confidence_score,
        reason=reason,
        matched_invoice_id=matched_invoice_id,
        matched_expense_id=matched_expense_id,
        created_by=created_by,
    )
    db.add(record)
    await db.flush()
    return record
