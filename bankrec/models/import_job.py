"""Statement import job model."""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from bankrec.database import Base
from bankrec.models.base import CompanyOwnedMixin, TimestampMixin, UUIDMixin


class ImportJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportTier(str, Enum):
    """Which parser tier handles the statement."""

    XML = "xml"
    PDF_OCR = "pdf_ocr"


class ImportJob(Base, UUIDMixin, CompanyOwnedMixin, TimestampMixin):
    """One uploaded statement file and the state of its import."""

    __tablename__ = "import_jobs"
    __table_args__ = (
        UniqueConstraint(
            "bank_account_id", "file_checksum", name="uq_import_jobs_account_file_checksum"
        ),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )
    file_checksum: Mapped[str] = mapped_column(String(64), nullable=False)  # sha256 hex
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[ImportJobStatus] = mapped_column(
        SQLEnum(ImportJobStatus, name="import_job_status_enum"),
        nullable=False,
        default=ImportJobStatus.PENDING,
    )
    tier_used: Mapped[ImportTier | None] = mapped_column(
        SQLEnum(ImportTier, name="import_tier_enum"), nullable=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
