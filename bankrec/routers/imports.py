"""Bank statement import API router."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import RedirectResponse

from bankrec.deps import CurrentCompanyId, CurrentUserId, DbSession
from bankrec.errors import ReconciliationError
from bankrec.logger import get_logger
from bankrec.schemas.imports import ImportJobResponse, ImportTransactionsRequest, UploadResponse
from bankrec.services.ingestion import (
    ParsedTransaction,
    get_import_job,
    import_parsed_transactions,
    statement_download_url,
    upload_statement,
)
from bankrec.services.scanning import ContentScanner, default_scanner
from bankrec.services.storage import StorageService
from bankrec.utils.exceptions import raise_for_domain_error

router = APIRouter(prefix="/banking/import", tags=["banking"])
logger = get_logger(__name__)


def get_storage_service() -> StorageService:
    return StorageService()


def get_content_scanner() -> ContentScanner:
    return default_scanner


@router.post("/upload", response_model=UploadResponse)
async def upload(
    db: DbSession,
    company_id: CurrentCompanyId,
    user_id: CurrentUserId,
    storage: Annotated[StorageService, Depends(get_storage_service)],
    scanner: Annotated[ContentScanner, Depends(get_content_scanner)],
    file: UploadFile = File(...),
    account_id: UUID = Form(...),
) -> UploadResponse:
    """Upload a bank statement (PDF or XML) for import.

    Re-uploading identical bytes for the same account returns the existing
    job with ``deduplicated=true``.
    """
    content = await file.read()
    logger.info(
        "Statement upload request received",
        company_id=str(company_id),
        account_id=str(account_id),
        filename=file.filename,
        size=len(content),
    )
    try:
        result = await upload_statement(
            db,
            company_id,
            account_id,
            file.filename or "unknown",
            content,
            storage,
            scanner,
            created_by=user_id,
        )
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return UploadResponse.model_validate(result)


@router.get("/jobs/{job_id}", response_model=ImportJobResponse)
async def get_job(job_id: UUID, db: DbSession, company_id: CurrentCompanyId) -> ImportJobResponse:
    try:
        job = await get_import_job(db, company_id, job_id)
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return ImportJobResponse.model_validate(job)


@router.post("/jobs/{job_id}/transactions", response_model=ImportJobResponse)
async def import_transactions(
    job_id: UUID,
    payload: ImportTransactionsRequest,
    db: DbSession,
    company_id: CurrentCompanyId,
) -> ImportJobResponse:
    """Store the parsed transactions of an import job; repeat calls are no-ops."""
    parsed = [ParsedTransaction(**item.model_dump()) for item in payload.transactions]
    try:
        job = await import_parsed_transactions(db, company_id, job_id, parsed)
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return ImportJobResponse.model_validate(job)


@router.get("/jobs/{job_id}/file", response_class=RedirectResponse, status_code=307)
async def download_statement(
    job_id: UUID,
    db: DbSession,
    company_id: CurrentCompanyId,
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> RedirectResponse:
    """Redirect to a short-lived URL for the originally uploaded statement."""
    try:
        url = await statement_download_url(db, company_id, job_id, storage)
    except ReconciliationError as exc:
        raise_for_domain_error(exc)
    return RedirectResponse(url, status_code=307)
