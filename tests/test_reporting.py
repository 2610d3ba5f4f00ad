"""Tests for reconciliation summary, candidate listing and transaction listing."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from bankrec.errors import EntityNotFound
from bankrec.models import MatchKind, MatchStatus
from bankrec.services.auto_match import run_auto_match
from bankrec.services.manual_match import ignore, link, unlink
from bankrec.services.reporting import list_candidates, list_transactions, summary
from tests.factories import (
    BankAccountFactory,
    BankTransactionFactory,
    ExpenseFactory,
    InvoiceFactory,
)


@pytest_asyncio.fixture
async def account(db, company_id):
    return await BankAccountFactory.create_async(db, company_id=company_id)


@pytest_asyncio.fixture
async def ledger_mix(db, account, company_id):
    """One transaction in each reconciliation state."""
    untouched = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("7.00"), date=date(2025, 1, 5)
    )
    auto = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("100.00"), date=date(2025, 3, 10)
    )
    manual = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("-60.00"), date=date(2025, 3, 10)
    )
    ignored = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("-3.50"), date=date(2025, 3, 10)
    )
    unlinked = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("-9.99"), date=date(2025, 3, 10)
    )
    await InvoiceFactory.create_async(db, company_id=company_id, total_amount=Decimal("100.00"))
    manual_target = await ExpenseFactory.create_async(
        db, company_id=company_id, total_amount=Decimal("75.00"), date=date(2025, 1, 1)
    )
    unlink_target = await ExpenseFactory.create_async(
        db, company_id=company_id, total_amount=Decimal("9.99"), date=date(2025, 1, 1)
    )

    assert (await run_auto_match(db, company_id)).matched_count == 1
    assert (await link(db, company_id, manual.id, manual_target.id, "expense")).success
    assert (await ignore(db, company_id, ignored.id)).success
    assert (await link(db, company_id, unlinked.id, unlink_target.id, "expense")).success
    assert (await unlink(db, company_id, unlinked.id)).success

    return {
        "untouched": untouched,
        "auto": auto,
        "manual": manual,
        "ignored": ignored,
        "unlinked": unlinked,
    }


async def test_summary_counts_current_status(db, company_id, ledger_mix):
    counts = await summary(db, company_id)

    assert counts.unmatched == 2
    assert counts.auto_matched == 1
    assert counts.manual_matched == 1
    assert counts.ignored == 1
    # manual link of -60.00 to a 75.00 expense
    assert counts.mismatched == 1


async def test_summary_filters(db, company_id, account, ledger_mix):
    march = await summary(db, company_id, date_from=date(2025, 3, 1), date_to=date(2025, 3, 31))
    assert march.unmatched == 1

    january = await summary(db, company_id, date_to=date(2025, 1, 31))
    assert (january.unmatched, january.auto_matched) == (1, 0)

    other_account = await summary(db, company_id, account_id=uuid4())
    assert other_account.unmatched == 0


async def test_summary_is_tenant_scoped(db, other_company_id, ledger_mix):
    counts = await summary(db, other_company_id)

    assert (counts.unmatched, counts.auto_matched, counts.mismatched) == (0, 0, 0)


async def test_exact_amount_match_is_not_mismatched(db, account, company_id):
    await BankTransactionFactory.create_async(db, account=account, amount=Decimal("-250.00"))
    await ExpenseFactory.create_async(db, company_id=company_id, total_amount=Decimal("250.00"))
    await run_auto_match(db, company_id)

    assert (await summary(db, company_id)).mismatched == 0


async def test_list_candidates_sorted_and_positive_only(db, account, company_id):
    txn = await BankTransactionFactory.create_async(
        db, account=account, amount=Decimal("500.00"), reference="INV-2025-900"
    )
    await InvoiceFactory.create_async(db, company_id=company_id, total_amount=Decimal("510.00"))
    by_reference = await InvoiceFactory.create_async(
        db, company_id=company_id, invoice_number="INV-2025-900", total_amount=Decimal("1.00")
    )
    await InvoiceFactory.create_async(db, company_id=company_id, total_amount=Decimal("9000.00"))
    await ExpenseFactory.create_async(db, company_id=company_id, total_amount=Decimal("500.00"))

    listing = await list_candidates(db, company_id, txn.id)

    assert [c.score for c in listing.invoice_candidates] == [100, 70]
    assert listing.invoice_candidates[0].target_id == by_reference.id
    assert listing.invoice_candidates[0].label == "INV-2025-900"
    assert listing.invoice_candidates[0].kind == MatchKind.INVOICE
    assert listing.expense_candidates == []


async def test_list_candidates_respects_limit(db, account, company_id):
    txn = await BankTransactionFactory.create_async(db, account=account, amount=Decimal("-20.00"))
    for _ in range(3):
        await ExpenseFactory.create_async(
            db, company_id=company_id, total_amount=Decimal("20.00"), vendor_name="Kiosk"
        )

    listing = await list_candidates(db, company_id, txn.id, limit=2)

    assert len(listing.expense_candidates) == 2
    assert listing.expense_candidates[0].label == "Kiosk"


async def test_list_candidates_returns_every_candidate_by_default(db, account, company_id):
    txn = await BankTransactionFactory.create_async(db, account=account, amount=Decimal("-20.00"))
    for _ in range(12):
        await ExpenseFactory.create_async(db, company_id=company_id, total_amount=Decimal("20.00"))

    listing = await list_candidates(db, company_id, txn.id)

    assert len(listing.expense_candidates) == 12


async def test_list_candidates_for_foreign_transaction(db, company_id, other_company_id):
    foreign_account = await BankAccountFactory.create_async(db, company_id=other_company_id)
    txn = await BankTransactionFactory.create_async(db, account=foreign_account)

    with pytest.raises(EntityNotFound):
        await list_candidates(db, company_id, txn.id)


async def test_list_transactions_by_status(db, company_id, ledger_mix):
    rows, total = await list_transactions(db, company_id, status=MatchStatus.UNMATCHED)

    assert total == 2
    assert {txn.id for txn, _ in rows} == {ledger_mix["untouched"].id, ledger_mix["unlinked"].id}

    rows, total = await list_transactions(db, company_id, status=MatchStatus.AUTO_MATCHED)
    assert total == 1
    txn, record = rows[0]
    assert txn.id == ledger_mix["auto"].id
    assert record.match_status == MatchStatus.AUTO_MATCHED


async def test_list_transactions_paging(db, company_id, ledger_mix):
    rows, total = await list_transactions(db, company_id, limit=2, offset=0)
    tail, _ = await list_transactions(db, company_id, limit=10, offset=2)

    assert total == 5
    assert len(rows) == 2
    assert len(tail) == 3
    assert rows[0][0].date >= rows[1][0].date
    assert ledger_mix["untouched"].id == tail[-1][0].id
