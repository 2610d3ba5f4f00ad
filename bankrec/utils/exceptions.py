"""Common exception utilities for FastAPI routers."""

from typing import NoReturn

from fastapi import HTTPException, status

from bankrec.errors import (
    DuplicateUpload,
    EntityNotFound,
    FileTooLargeError,
    PersistenceFailure,
    ReconciliationError,
    ValidationError,
)


def raise_not_found(resource_name: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource_name} not found",
    ) from cause


def raise_bad_request(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    ) from cause


def raise_conflict(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    ) from cause


def raise_too_large(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=413,
        detail=detail,
    ) from cause


def raise_internal_error(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    ) from cause


def raise_service_unavailable(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=detail,
    ) from cause


def raise_for_domain_error(exc: ReconciliationError) -> NoReturn:
    """Map a domain error raised by a service onto the matching HTTP response."""
    if isinstance(exc, EntityNotFound):
        raise_not_found(exc.entity, cause=exc)
    if isinstance(exc, FileTooLargeError):
        raise_too_large(exc.message, cause=exc)
    if isinstance(exc, ValidationError):
        raise_bad_request(exc.message, cause=exc)
    if isinstance(exc, DuplicateUpload):
        raise_conflict(exc.message, cause=exc)
    if isinstance(exc, PersistenceFailure):
        raise_service_unavailable(exc.message, cause=exc)
    raise_internal_error(exc.message, cause=exc)
