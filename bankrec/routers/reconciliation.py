"""Reconciliation API router."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query

from bankrec.deps import CurrentCompanyId, CurrentUserId, DbSession
from bankrec.errors import ReconciliationError
from bankrec.models import MatchStatus
from bankrec.schemas.reconciliation import (
    AutoMatchRequest,
    AutoMatchResponse,
    CandidateListResponse,
    LinkRequest,
    MatchActionResponse,
    MatchHistoryResponse,
    MatchRecordResponse,
    ReconciliationSummaryResponse,
    TransactionListResponse,
    TransactionWithStatus,
)
from bankrec.services import ledger, manual_match, reporting
from bankrec.services.auto_match import run_auto_match
from bankrec.services.manual_match import get_company_transaction
from bankrec.utils.exceptions import raise_for_domain_error

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("/auto-match", response_model=AutoMatchResponse)
async def auto_match(
    payload: AutoMatchRequest,
    db: DbSession,
    company_id: CurrentCompanyId,
    user_id: CurrentUserId,
) -> AutoMatchResponse:
    try:
        result = await run_auto_match(
            db,
            company_id,
            account_id=payload.account_id,
            threshold=payload.threshold,
            created_by=user_id,
        )
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return AutoMatchResponse.model_validate(result)


@router.get("/transactions/{transaction_id}/candidates", response_model=CandidateListResponse)
async def list_candidates(
    transaction_id: UUID,
    db: DbSession,
    company_id: CurrentCompanyId,
    limit: int | None = Query(None, ge=1),
) -> CandidateListResponse:
    try:
        listing = await reporting.list_candidates(db, company_id, transaction_id, limit=limit)
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return CandidateListResponse.model_validate(listing)


@router.get("/transactions/{transaction_id}/history", response_model=MatchHistoryResponse)
async def match_history(
    transaction_id: UUID, db: DbSession, company_id: CurrentCompanyId
) -> MatchHistoryResponse:
    try:
        txn = await get_company_transaction(db, company_id, transaction_id)
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    records = await ledger.history(db, txn.id)
    return MatchHistoryResponse(
        items=[MatchRecordResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.post("/transactions/{transaction_id}/link", response_model=MatchActionResponse)
async def link_transaction(
    transaction_id: UUID,
    payload: LinkRequest,
    db: DbSession,
    company_id: CurrentCompanyId,
    user_id: CurrentUserId,
) -> MatchActionResponse:
    result = await manual_match.link(
        db, company_id, transaction_id, payload.target_id, payload.kind, created_by=user_id
    )
    return MatchActionResponse.model_validate(result)


@router.post("/transactions/{transaction_id}/unlink", response_model=MatchActionResponse)
async def unlink_transaction(
    transaction_id: UUID,
    db: DbSession,
    company_id: CurrentCompanyId,
    user_id: CurrentUserId,
) -> MatchActionResponse:
    result = await manual_match.unlink(db, company_id, transaction_id, created_by=user_id)
    return MatchActionResponse.model_validate(result)


@router.post("/transactions/{transaction_id}/ignore", response_model=MatchActionResponse)
async def ignore_transaction(
    transaction_id: UUID,
    db: DbSession,
    company_id: CurrentCompanyId,
    user_id: CurrentUserId,
) -> MatchActionResponse:
    result = await manual_match.ignore(db, company_id, transaction_id, created_by=user_id)
    return MatchActionResponse.model_validate(result)


@router.get("/summary", response_model=ReconciliationSummaryResponse)
async def reconciliation_summary(
    db: DbSession,
    company_id: CurrentCompanyId,
    account_id: UUID | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> ReconciliationSummaryResponse:
    result = await reporting.summary(
        db, company_id, account_id=account_id, date_from=date_from, date_to=date_to
    )
    return ReconciliationSummaryResponse.model_validate(result)


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    db: DbSession,
    company_id: CurrentCompanyId,
    status: MatchStatus | None = Query(None),
    account_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> TransactionListResponse:
    rows, total = await reporting.list_transactions(
        db, company_id, status=status, account_id=account_id, limit=limit, offset=offset
    )
    items = [
        TransactionWithStatus(
            id=txn.id,
            account_id=txn.account_id,
            date=txn.date,
            amount=txn.amount,
            description=txn.description,
            reference=txn.reference,
            counterparty_name=txn.counterparty_name,
            currency=txn.currency,
            match_status=ledger.effective_status(record),
            matched_invoice_id=record.matched_invoice_id if record else None,
            matched_expense_id=record.matched_expense_id if record else None,
            confidence_score=record.confidence_score if record else 0,
        )
        for txn, record in rows
    ]
    return TransactionListResponse(items=items, total=total)
