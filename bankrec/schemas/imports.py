"""Pydantic schemas for statement import API."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from bankrec.models import ImportJobStatus, ImportTier
from bankrec.schemas.base import BaseResponse


class UploadResponse(BaseResponse):
    job_id: UUID
    deduplicated: bool
    status: ImportJobStatus
    tier_used: ImportTier | None


class ImportJobResponse(BaseResponse):
    id: UUID
    bank_account_id: UUID
    file_checksum: str
    original_filename: str
    storage_path: str
    status: ImportJobStatus
    tier_used: ImportTier | None
    failure_reason: str | None
    transaction_count: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class ParsedTransactionIn(BaseModel):
    date: date
    amount: Decimal = Field(..., max_digits=18, decimal_places=2)
    description: str = ""
    reference: str | None = Field(default=None, max_length=500)
    counterparty_name: str | None = Field(default=None, max_length=255)


class ImportTransactionsRequest(BaseModel):
    transactions: list[ParsedTransactionIn] = Field(default_factory=list)
