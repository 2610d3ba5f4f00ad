"""Domain errors raised by the reconciliation services.

Routers translate these into HTTP responses via ``bankrec.utils.exceptions``.
An ambiguous match is not an error; it is ``MatchOutcome.AMBIGUOUS``.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for reconciliation engine errors."""

    code = "reconciliation_error"

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ReconciliationError):
    """Bad input shape, size or type."""

    code = "validation_error"


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds the configured size limit."""

    code = "file_too_large"


class UnsafeFileError(ValidationError):
    """Uploaded file was rejected (or could not be scanned) by the content scanner."""

    code = "unsafe_file"


class EntityNotFound(ReconciliationError):
    """Missing id, or an id that belongs to another tenant."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: object | None = None) -> None:
        super().__init__(f"{entity} not found", entity=entity, entity_id=str(entity_id))
        self.entity = entity
        self.entity_id = entity_id


class DuplicateUpload(ReconciliationError):
    """A statement with the same checksum already exists for the bank account."""

    code = "duplicate_upload"


class PersistenceFailure(ReconciliationError):
    """Storage or database I/O failed."""

    code = "persistence_failure"


class AlreadyMatchedError(ValidationError):
    """The bank transaction is already matched; unlink it first."""

    code = "already_matched"


class TargetUnavailableError(ValidationError):
    """The invoice or expense is already settled or cancelled."""

    code = "target_unavailable"
