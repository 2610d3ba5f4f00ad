"""Statement ingestion: upload gate and parsed-transaction import.

Upload order matters: validate, checksum, dedup lookup, scan, then write to
storage and create the ImportJob. Nothing is persisted for a rejected file,
and a stored object whose ImportJob could not be created is removed again.
"""

from __future__ import annotations

import hashlib
import mimetypes
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.config import settings
from bankrec.constants.error_ids import ErrorIds
from bankrec.errors import (
    DuplicateUpload,
    EntityNotFound,
    FileTooLargeError,
    PersistenceFailure,
    UnsafeFileError,
    ValidationError,
)
from bankrec.logger import get_logger, log_exception
from bankrec.models import (
    BankAccount,
    BankTransaction,
    ImportJob,
    ImportJobStatus,
    ImportTier,
)
from bankrec.services.scanning import ContentScanner, default_scanner
from bankrec.services.storage import StorageError, StorageService, statement_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadResult:
    job_id: UUID
    deduplicated: bool
    status: ImportJobStatus
    tier_used: ImportTier | None


@dataclass(frozen=True)
class ParsedTransaction:
    """One transaction as produced by a statement parser."""

    date: date
    amount: Decimal
    description: str = ""
    reference: str | None = None
    counterparty_name: str | None = None


def file_checksum(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def statement_extension(filename: str) -> str:
    name = Path(filename or "").name
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def tier_for_extension(extension: str) -> ImportTier | None:
    return ImportTier.XML if extension == "xml" else None


async def get_company_account(db: AsyncSession, company_id: UUID, account_id: UUID) -> BankAccount:
    account = await db.scalar(
        select(BankAccount).where(BankAccount.id == account_id, BankAccount.company_id == company_id)
    )
    if account is None:
        raise EntityNotFound("Bank account", account_id)
    return account


async def get_import_job(db: AsyncSession, company_id: UUID, job_id: UUID) -> ImportJob:
    job = await db.scalar(
        select(ImportJob).where(ImportJob.id == job_id, ImportJob.company_id == company_id)
    )
    if job is None:
        raise EntityNotFound("Import job", job_id)
    return job


async def statement_download_url(
    db: AsyncSession, company_id: UUID, job_id: UUID, storage: StorageService
) -> str:
    """Return a short-lived URL serving the stored statement of an import job."""
    job = await get_import_job(db, company_id, job_id)
    content_type = mimetypes.guess_type(job.original_filename)[0] or "application/octet-stream"
    try:
        return await run_in_threadpool(
            storage.generate_presigned_url,
            key=job.storage_path,
            filename=job.original_filename,
            content_type=content_type,
        )
    except StorageError as exc:
        logger.error(
            "Failed to generate statement download URL",
            error=str(exc),
            error_id=ErrorIds.STORAGE_DOWNLOAD_FAILED,
            import_job_id=str(job_id),
        )
        raise PersistenceFailure("Stored statement is unavailable") from exc


async def find_existing_job(db: AsyncSession, account_id: UUID, checksum: str) -> ImportJob | None:
    return await db.scalar(
        select(ImportJob).where(
            ImportJob.bank_account_id == account_id,
            ImportJob.file_checksum == checksum,
        )
    )


def validate_upload(filename: str, content: bytes) -> str:
    """Return the normalized extension or raise ``ValidationError``."""
    extension = statement_extension(filename)
    allowed = settings.allowed_statement_extensions
    if extension not in allowed:
        raise ValidationError(
            f"Unsupported file type: .{extension or '?'} (allowed: {', '.join(allowed)})",
            filename=filename,
        )
    if not content:
        raise ValidationError("Uploaded file is empty", filename=filename)
    if len(content) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise FileTooLargeError(
            f"File exceeds {limit_mb}MB limit",
            filename=filename,
            size=len(content),
        )
    return extension


def scan_upload(scanner: ContentScanner, content: bytes, extension: str, filename: str) -> None:
    try:
        result = scanner.scan(content, extension)
    except Exception as exc:
        # A scanner that cannot decide is treated as a rejection.
        raise UnsafeFileError("File could not be scanned", filename=filename) from exc
    if not result.clean:
        raise UnsafeFileError(result.reason or "File rejected by content scan", filename=filename)


async def _cleanup_orphaned_object(storage: StorageService, storage_key: str) -> None:
    """Best-effort removal of an object whose ImportJob was never committed."""
    try:
        await run_in_threadpool(storage.delete_object, storage_key)
    except StorageError as exc:
        logger.error(
            "Failed to clean up storage object after DB error",
            error=str(exc),
            error_id=ErrorIds.STORAGE_DELETE_FAILED,
            storage_key=storage_key,
        )


async def upload_statement(
    db: AsyncSession,
    company_id: UUID,
    account_id: UUID,
    filename: str,
    content: bytes,
    storage: StorageService,
    scanner: ContentScanner | None = None,
    created_by: str | None = None,
) -> UploadResult:
    """Accept a statement file for import, de-duplicated by content checksum."""
    scanner = scanner or default_scanner
    filename = Path(filename or "unknown").name or "unknown"

    await get_company_account(db, company_id, account_id)
    extension = validate_upload(filename, content)
    checksum = file_checksum(content)

    existing = await find_existing_job(db, account_id, checksum)
    if existing is not None:
        logger.info(
            "Duplicate statement upload",
            account_id=str(account_id),
            checksum=checksum,
            import_job_id=str(existing.id),
        )
        return UploadResult(
            job_id=existing.id,
            deduplicated=True,
            status=existing.status,
            tier_used=existing.tier_used,
        )

    scan_upload(scanner, content, extension, filename)

    job_id = uuid4()
    storage_key = statement_key(account_id, job_id, extension)
    try:
        await run_in_threadpool(
            storage.upload_bytes,
            key=storage_key,
            content=content,
            content_type=mimetypes.guess_type(filename)[0] or "application/octet-stream",
        )
    except StorageError as exc:
        logger.error(
            "Failed to upload statement to storage",
            error=str(exc),
            error_id=ErrorIds.STORAGE_UPLOAD_FAILED,
            storage_key=storage_key,
        )
        raise PersistenceFailure("Failed to store statement file") from exc

    job = ImportJob(
        id=job_id,
        company_id=company_id,
        bank_account_id=account_id,
        file_checksum=checksum,
        original_filename=filename,
        storage_path=storage_key,
        status=ImportJobStatus.PENDING,
        tier_used=tier_for_extension(extension),
        created_by=created_by,
    )
    db.add(job)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(
            "Concurrent duplicate statement upload",
            account_id=str(account_id),
            checksum=checksum,
            error_id=ErrorIds.IMPORT_DUPLICATE_RACE,
        )
        await _cleanup_orphaned_object(storage, storage_key)
        raise DuplicateUpload(
            "Statement already uploaded for this account", checksum=checksum
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        log_exception(
            logger,
            exc,
            "Failed to persist import job",
            error_id=ErrorIds.IMPORT_JOB_PERSIST_FAILED,
            account_id=str(account_id),
        )
        await _cleanup_orphaned_object(storage, storage_key)
        raise PersistenceFailure("Failed to persist import job") from exc

    logger.info(
        "Statement uploaded",
        import_job_id=str(job.id),
        account_id=str(account_id),
        checksum=checksum,
        size=len(content),
        tier_used=job.tier_used.value if job.tier_used else None,
    )
    return UploadResult(
        job_id=job.id,
        deduplicated=False,
        status=job.status,
        tier_used=job.tier_used,
    )


async def import_parsed_transactions(
    db: AsyncSession,
    company_id: UUID,
    job_id: UUID,
    transactions: Iterable[ParsedTransaction],
) -> ImportJob:
    """Create the bank transactions of an import job, exactly once.

    A job that is already COMPLETED is returned unchanged.
    """
    job = await db.scalar(
        select(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.company_id == company_id)
        .with_for_update()
    )
    if job is None:
        raise EntityNotFound("Import job", job_id)
    if job.status == ImportJobStatus.COMPLETED:
        logger.info(
            "Import job already completed; skipping",
            import_job_id=str(job.id),
            transaction_count=job.transaction_count,
        )
        return job

    account = await get_company_account(db, company_id, job.bank_account_id)

    count = 0
    try:
        for parsed in transactions:
            db.add(
                BankTransaction(
                    company_id=company_id,
                    account_id=account.id,
                    import_job_id=job.id,
                    date=parsed.date,
                    amount=parsed.amount,
                    description=parsed.description or "",
                    reference=parsed.reference,
                    counterparty_name=parsed.counterparty_name,
                    currency=account.currency,
                )
            )
            count += 1
        job.status = ImportJobStatus.COMPLETED
        job.transaction_count = count
        job.failure_reason = None
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        log_exception(
            logger,
            exc,
            "Failed to import parsed transactions",
            error_id=ErrorIds.IMPORT_JOB_PERSIST_FAILED,
            import_job_id=str(job_id),
        )
        raise PersistenceFailure("Failed to import parsed transactions") from exc

    logger.info(
        "Imported parsed transactions",
        import_job_id=str(job.id),
        account_id=str(account.id),
        transaction_count=count,
    )
    return job


async def mark_import_failed(
    db: AsyncSession, company_id: UUID, job_id: UUID, reason: str
) -> ImportJob:
    job = await get_import_job(db, company_id, job_id)
    if job.status == ImportJobStatus.COMPLETED:
        raise ValidationError("A completed import job cannot be marked as failed")
    job.status = ImportJobStatus.FAILED
    job.failure_reason = reason[:1000]
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceFailure("Failed to update import job") from exc
    logger.warning("Import job failed", import_job_id=str(job.id), reason=job.failure_reason)
    return job
