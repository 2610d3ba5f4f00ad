"""Tests for the append-only match ledger."""

from datetime import UTC, datetime

import pytest
import pytest_asyncio

from bankrec.models import LedgerImmutableError, MatchKind, MatchRecord, MatchSource, MatchStatus
from bankrec.services.ledger import (
    append_record,
    current_record,
    current_records,
    effective_status,
    history,
)
from tests.factories import BankAccountFactory, BankTransactionFactory


@pytest_asyncio.fixture
async def account(db, company_id):
    return await BankAccountFactory.create_async(db, company_id=company_id)


async def _append(db, txn, status: MatchStatus, kind: MatchKind, reason: str) -> MatchRecord:
    record = await append_record(
        db,
        company_id=txn.company_id,
        transaction_id=txn.id,
        status=status,
        kind=kind,
        source=MatchSource.MANUAL,
        reason=reason,
    )
    await db.commit()
    return record


async def test_transaction_without_records_is_unmatched(db, account):
    txn = await BankTransactionFactory.create_async(db, account=account)

    record = await current_record(db, txn.id)

    assert record is None
    assert effective_status(record) == MatchStatus.UNMATCHED


async def test_latest_record_wins_and_history_is_oldest_first(db, account):
    txn = await BankTransactionFactory.create_async(db, account=account)

    await _append(db, txn, MatchStatus.IGNORED, MatchKind.IGNORE, "first")
    await _append(db, txn, MatchStatus.UNMATCHED, MatchKind.UNMATCH, "second")
    await _append(db, txn, MatchStatus.IGNORED, MatchKind.IGNORE, "third")

    current = await current_record(db, txn.id)
    assert current.reason == "third"
    assert [r.reason for r in await history(db, txn.id)] == ["first", "second", "third"]


async def test_same_instant_records_ordered_by_id(db, account, company_id):
    txn = await BankTransactionFactory.create_async(db, account=account)
    instant = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
    for reason, status, kind in (
        ("earlier", MatchStatus.IGNORED, MatchKind.IGNORE),
        ("later", MatchStatus.UNMATCHED, MatchKind.UNMATCH),
    ):
        db.add(
            MatchRecord(
                company_id=company_id,
                bank_transaction_id=txn.id,
                match_status=status,
                match_kind=kind,
                source=MatchSource.MANUAL,
                reason=reason,
                created_at=instant,
            )
        )
        await db.flush()
    await db.commit()

    assert (await current_record(db, txn.id)).reason == "later"
    assert (await current_records(db, company_id))[txn.id].reason == "later"


async def test_current_records_batches_and_scopes_by_company(db, account, company_id, other_company_id):
    first = await BankTransactionFactory.create_async(db, account=account)
    second = await BankTransactionFactory.create_async(db, account=account)
    untouched = await BankTransactionFactory.create_async(db, account=account)
    await _append(db, first, MatchStatus.IGNORED, MatchKind.IGNORE, "a")
    await _append(db, second, MatchStatus.IGNORED, MatchKind.IGNORE, "b")
    await _append(db, second, MatchStatus.UNMATCHED, MatchKind.UNMATCH, "c")

    records = await current_records(db, company_id)

    assert {txn_id: r.reason for txn_id, r in records.items()} == {first.id: "a", second.id: "c"}
    assert untouched.id not in records
    assert await current_records(db, company_id, transaction_ids=[]) == {}
    assert list(await current_records(db, company_id, transaction_ids=[second.id])) == [second.id]
    assert await current_records(db, other_company_id) == {}


async def test_records_cannot_be_updated(db, account):
    txn = await BankTransactionFactory.create_async(db, account=account)
    record = await _append(db, txn, MatchStatus.IGNORED, MatchKind.IGNORE, "original")

    record.reason = "rewritten"
    with pytest.raises(LedgerImmutableError):
        await db.flush()


async def test_records_cannot_be_deleted(db, account):
    txn = await BankTransactionFactory.create_async(db, account=account)
    record = await _append(db, txn, MatchStatus.IGNORED, MatchKind.IGNORE, "original")

    await db.delete(record)
    with pytest.raises(LedgerImmutableError):
        await db.flush()
