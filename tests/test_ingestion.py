"""Tests for statement upload and parsed-transaction import."""

import hashlib
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from bankrec.errors import (
    DuplicateUpload,
    EntityNotFound,
    FileTooLargeError,
    PersistenceFailure,
    UnsafeFileError,
    ValidationError,
)
from bankrec.models import BankTransaction, ImportJob, ImportJobStatus, ImportTier
from bankrec.services import ingestion
from bankrec.services.ingestion import (
    ParsedTransaction,
    import_parsed_transactions,
    mark_import_failed,
    statement_download_url,
    statement_extension,
    upload_statement,
)
from bankrec.services.scanning import ScanResult
from bankrec.services.storage import StorageError, StorageService
from tests.factories import BankAccountFactory

PDF_BYTES = b"%PDF-1.7\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"
XML_BYTES = b'<?xml version="1.0"?><Document><BkToCstmrStmt/></Document>'


@pytest.fixture
def storage():
    return MagicMock(spec=StorageService)


@pytest_asyncio.fixture
async def account(db, company_id):
    return await BankAccountFactory.create_async(db, company_id=company_id)


async def _job_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(ImportJob))


class TestUpload:
    async def test_pdf_upload_creates_pending_job(self, db, company_id, account, storage):
        result = await upload_statement(
            db, company_id, account.id, "march.pdf", PDF_BYTES, storage, created_by="alice"
        )

        assert not result.deduplicated
        assert result.status == ImportJobStatus.PENDING
        assert result.tier_used is None
        checksum = hashlib.sha256(PDF_BYTES).hexdigest()
        storage.upload_bytes.assert_called_once_with(
            key=f"statements/{account.id}/{result.job_id}.pdf",
            content=PDF_BYTES,
            content_type="application/pdf",
        )
        job = await db.get(ImportJob, result.job_id)
        assert job.storage_path == f"statements/{account.id}/{result.job_id}.pdf"
        assert job.file_checksum == checksum
        assert job.original_filename == "march.pdf"
        assert job.created_by == "alice"

    async def test_xml_upload_uses_xml_tier(self, db, company_id, account, storage):
        result = await upload_statement(db, company_id, account.id, "camt.XML", XML_BYTES, storage)

        assert result.tier_used == ImportTier.XML

    async def test_path_components_stripped_from_filename(self, db, company_id, account, storage):
        result = await upload_statement(
            db, company_id, account.id, "../../etc/march.pdf", PDF_BYTES, storage
        )

        job = await db.get(ImportJob, result.job_id)
        assert job.original_filename == "march.pdf"

    async def test_identical_bytes_are_deduplicated(self, db, company_id, account, storage):
        first = await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage)
        second = await upload_statement(db, company_id, account.id, "renamed.pdf", PDF_BYTES, storage)

        assert second.deduplicated
        assert second.job_id == first.job_id
        assert storage.upload_bytes.call_count == 1
        assert await _job_count(db) == 1

    async def test_same_bytes_for_another_account_is_new_job(
        self, db, company_id, account, storage
    ):
        other = await BankAccountFactory.create_async(db, company_id=company_id)

        first = await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage)
        second = await upload_statement(db, company_id, other.id, "a.pdf", PDF_BYTES, storage)

        assert not second.deduplicated
        assert second.job_id != first.job_id

    @pytest.mark.parametrize(
        ("filename", "content"),
        [("statement.csv", b"date,amount\n"), ("noextension", PDF_BYTES), ("empty.pdf", b"")],
    )
    async def test_invalid_uploads_rejected_before_storage(
        self, db, company_id, account, storage, filename, content
    ):
        with pytest.raises(ValidationError):
            await upload_statement(db, company_id, account.id, filename, content, storage)

        storage.upload_bytes.assert_not_called()
        assert await _job_count(db) == 0

    async def test_oversized_upload_rejected(self, db, company_id, account, storage, monkeypatch):
        monkeypatch.setattr(ingestion.settings, "max_upload_bytes", 10)

        with pytest.raises(FileTooLargeError):
            await upload_statement(db, company_id, account.id, "big.pdf", PDF_BYTES, storage)

        storage.upload_bytes.assert_not_called()

    @pytest.mark.parametrize(
        ("filename", "content"),
        [
            ("evil.pdf", b"%PDF-1.4\n<< /OpenAction << /S /JavaScript /JS (app.alert(1)) >> >>"),
            ("fake.pdf", XML_BYTES),
            ("xxe.xml", b'<?xml version="1.0"?><!DOCTYPE d [<!ENTITY x SYSTEM "file:///etc/passwd">]><d>&x;</d>'),
        ],
    )
    async def test_unsafe_content_rejected(self, db, company_id, account, storage, filename, content):
        with pytest.raises(UnsafeFileError):
            await upload_statement(db, company_id, account.id, filename, content, storage)

        storage.upload_bytes.assert_not_called()
        assert await _job_count(db) == 0

    async def test_scanner_failure_is_a_rejection(self, db, company_id, account, storage):
        scanner = MagicMock()
        scanner.scan.side_effect = RuntimeError("scanner offline")

        with pytest.raises(UnsafeFileError, match="could not be scanned"):
            await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage, scanner)

    async def test_custom_scanner_verdict_used(self, db, company_id, account, storage):
        scanner = MagicMock()
        scanner.scan.return_value = ScanResult(clean=False, reason="EICAR signature")

        with pytest.raises(UnsafeFileError, match="EICAR"):
            await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage, scanner)

    async def test_account_of_other_company_not_found(
        self, db, company_id, other_company_id, storage
    ):
        foreign = await BankAccountFactory.create_async(db, company_id=other_company_id)

        with pytest.raises(EntityNotFound):
            await upload_statement(db, company_id, foreign.id, "a.pdf", PDF_BYTES, storage)

    async def test_storage_failure_persists_nothing(self, db, company_id, account, storage):
        storage.upload_bytes.side_effect = StorageError("bucket unreachable")

        with pytest.raises(PersistenceFailure):
            await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage)

        assert await _job_count(db) == 0

    async def test_db_failure_removes_stored_object(self, db, company_id, account, storage):
        account_id = account.id

        with patch.object(db, "commit", AsyncMock(side_effect=SQLAlchemyError("db down"))):
            with pytest.raises(PersistenceFailure):
                await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)

        uploaded_key = storage.upload_bytes.call_args.kwargs["key"]
        storage.delete_object.assert_called_once_with(uploaded_key)
        assert await _job_count(db) == 0

    async def test_db_failure_never_deletes_another_uploads_object(
        self, db, company_id, account, storage
    ):
        account_id = account.id

        with patch.object(db, "commit", AsyncMock(side_effect=SQLAlchemyError("db down"))):
            with pytest.raises(PersistenceFailure):
                await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)
        failed_key = storage.delete_object.call_args.args[0]

        retry = await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)

        job = await db.get(ImportJob, retry.job_id)
        assert job.storage_path != failed_key
        assert storage.delete_object.call_count == 1

    async def test_cleanup_failure_does_not_mask_original_error(
        self, db, company_id, account, storage
    ):
        storage.delete_object.side_effect = StorageError("still down")
        account_id = account.id

        with patch.object(db, "commit", AsyncMock(side_effect=SQLAlchemyError("db down"))):
            with pytest.raises(PersistenceFailure):
                await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)

    async def test_concurrent_duplicate_removes_only_its_own_object(
        self, db, company_id, account, storage
    ):
        account_id = account.id
        first = await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)
        first_id = first.job_id
        first_key = f"statements/{account_id}/{first_id}.pdf"

        # Simulate losing the race: the dedup lookup misses the winner's row.
        with patch(
            "bankrec.services.ingestion.find_existing_job", AsyncMock(return_value=None)
        ):
            with pytest.raises(DuplicateUpload):
                await upload_statement(db, company_id, account_id, "a.pdf", PDF_BYTES, storage)

        loser_key = storage.upload_bytes.call_args.kwargs["key"]
        assert loser_key != first_key
        storage.delete_object.assert_called_once_with(loser_key)
        jobs = (await db.execute(select(ImportJob.id))).scalars().all()
        assert jobs == [first_id]


class TestImportTransactions:
    async def _upload(self, db, company_id, account, storage):
        result = await upload_statement(db, company_id, account.id, "a.pdf", PDF_BYTES, storage)
        return result.job_id

    async def test_import_creates_transactions_once(self, db, company_id, account, storage):
        job_id = await self._upload(db, company_id, account, storage)
        parsed = [
            ParsedTransaction(date=date(2025, 3, 10), amount=Decimal("100.00"), reference="INV-1"),
            ParsedTransaction(
                date=date(2025, 3, 11),
                amount=Decimal("-42.50"),
                description="Card payment",
                counterparty_name="Acme",
            ),
        ]

        job = await import_parsed_transactions(db, company_id, job_id, parsed)

        assert job.status == ImportJobStatus.COMPLETED
        assert job.transaction_count == 2
        rows = (await db.execute(select(BankTransaction))).scalars().all()
        assert len(rows) == 2
        assert {r.import_job_id for r in rows} == {job_id}
        assert {r.currency for r in rows} == {"EUR"}

        again = await import_parsed_transactions(db, company_id, job_id, parsed)

        assert again.transaction_count == 2
        assert await db.scalar(select(func.count()).select_from(BankTransaction)) == 2

    async def test_import_for_other_company_not_found(
        self, db, company_id, other_company_id, account, storage
    ):
        job_id = await self._upload(db, company_id, account, storage)

        with pytest.raises(EntityNotFound):
            await import_parsed_transactions(db, other_company_id, job_id, [])

    async def test_failed_job_can_be_reimported(self, db, company_id, account, storage):
        job_id = await self._upload(db, company_id, account, storage)

        failed = await mark_import_failed(db, company_id, job_id, "OCR timeout")
        assert failed.status == ImportJobStatus.FAILED
        assert failed.failure_reason == "OCR timeout"

        job = await import_parsed_transactions(
            db, company_id, job_id, [ParsedTransaction(date=date(2025, 3, 10), amount=Decimal("1.00"))]
        )
        assert job.status == ImportJobStatus.COMPLETED
        assert job.failure_reason is None

    async def test_completed_job_cannot_be_marked_failed(self, db, company_id, account, storage):
        job_id = await self._upload(db, company_id, account, storage)
        await import_parsed_transactions(db, company_id, job_id, [])

        with pytest.raises(ValidationError):
            await mark_import_failed(db, company_id, job_id, "late failure")

    async def test_unknown_job(self, db, company_id):
        with pytest.raises(EntityNotFound):
            await mark_import_failed(db, company_id, uuid4(), "nope")


class TestStatementDownload:
    async def test_presigned_url_for_stored_statement(self, db, company_id, account, storage):
        storage.generate_presigned_url.return_value = "https://s3.local/signed"
        result = await upload_statement(db, company_id, account.id, "march.pdf", PDF_BYTES, storage)

        url = await statement_download_url(db, company_id, result.job_id, storage)

        assert url == "https://s3.local/signed"
        storage.generate_presigned_url.assert_called_once_with(
            key=f"statements/{account.id}/{result.job_id}.pdf",
            filename="march.pdf",
            content_type="application/pdf",
        )

    async def test_other_company_cannot_download(
        self, db, company_id, other_company_id, account, storage
    ):
        result = await upload_statement(db, company_id, account.id, "march.pdf", PDF_BYTES, storage)

        with pytest.raises(EntityNotFound):
            await statement_download_url(db, other_company_id, result.job_id, storage)
        storage.generate_presigned_url.assert_not_called()

    async def test_storage_failure_is_persistence_failure(self, db, company_id, account, storage):
        storage.generate_presigned_url.side_effect = StorageError("signing failed")
        result = await upload_statement(db, company_id, account.id, "march.pdf", PDF_BYTES, storage)

        with pytest.raises(PersistenceFailure):
            await statement_download_url(db, company_id, result.job_id, storage)


@pytest.mark.parametrize(
    ("filename", "expected"),
    [("a.PDF", "pdf"), ("dir/b.xml", "xml"), ("archive.tar.gz", "gz"), ("README", ""), ("", "")],
)
def test_statement_extension(filename, expected):
    assert statement_extension(filename) == expected
