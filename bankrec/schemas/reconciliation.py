"""Pydantic schemas for reconciliation API."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from bankrec.models import MatchKind, MatchSource, MatchStatus
from bankrec.schemas.base import BaseResponse, ListResponse


class AutoMatchRequest(BaseModel):
    """Request body to run auto-matching."""

    account_id: UUID | None = None
    threshold: int | None = Field(default=None, ge=0, le=100)


class AutoMatchResponse(BaseResponse):
    matched_count: int
    evaluated: int


class CandidateResponse(BaseResponse):
    kind: MatchKind
    target_id: UUID
    score: int
    reason: str
    label: str
    amount: Decimal
    date: date


class CandidateListResponse(BaseResponse):
    invoice_candidates: list[CandidateResponse]
    expense_candidates: list[CandidateResponse]


class MatchRecordResponse(BaseResponse):
    """One ledger entry."""

    id: int
    bank_transaction_id: UUID
    match_status: MatchStatus
    match_kind: MatchKind
    matched_invoice_id: UUID | None
    matched_expense_id: UUID | None
    confidence_score: int
    reason: str | None
    source: MatchSource
    created_by: str | None
    created_at: datetime


MatchHistoryResponse = ListResponse[MatchRecordResponse]


class LinkRequest(BaseModel):
    target_id: UUID
    kind: MatchKind


class MatchActionResponse(BaseResponse):
    success: bool
    error_code: str | None = None
    error: str | None = None
    record_id: int | None = None


class ReconciliationSummaryResponse(BaseResponse):
    unmatched: int
    auto_matched: int
    manual_matched: int
    ignored: int
    mismatched: int


class TransactionWithStatus(BaseModel):
    """Bank transaction with its current reconciliation state."""

    id: UUID
    account_id: UUID
    date: date
    amount: Decimal
    description: str
    reference: str | None
    counterparty_name: str | None
    currency: str
    match_status: MatchStatus
    matched_invoice_id: UUID | None = None
    matched_expense_id: UUID | None = None
    confidence_score: int = 0


TransactionListResponse = ListResponse[TransactionWithStatus]
