"""Tests for domain error to HTTP mapping."""

import pytest
from fastapi import HTTPException, status

from bankrec.errors import (
    AlreadyMatchedError,
    DuplicateUpload,
    EntityNotFound,
    FileTooLargeError,
    PersistenceFailure,
    ReconciliationError,
    UnsafeFileError,
    ValidationError,
)
from bankrec.utils.exceptions import raise_for_domain_error, raise_not_found


@pytest.mark.parametrize(
    ("error", "expected_status"),
    [
        (EntityNotFound("Invoice", "abc"), status.HTTP_404_NOT_FOUND),
        (FileTooLargeError("too big"), 413),
        (UnsafeFileError("active content"), status.HTTP_400_BAD_REQUEST),
        (ValidationError("bad threshold"), status.HTTP_400_BAD_REQUEST),
        (AlreadyMatchedError("already matched"), status.HTTP_400_BAD_REQUEST),
        (DuplicateUpload("dup"), status.HTTP_409_CONFLICT),
        (PersistenceFailure("db down"), status.HTTP_503_SERVICE_UNAVAILABLE),
        (ReconciliationError("unexpected"), status.HTTP_500_INTERNAL_SERVER_ERROR),
    ],
)
def test_raise_for_domain_error(error, expected_status):
    with pytest.raises(HTTPException) as exc_info:
        raise_for_domain_error(error)

    assert exc_info.value.status_code == expected_status
    assert exc_info.value.__cause__ is error


def test_not_found_detail_names_entity():
    with pytest.raises(HTTPException) as exc_info:
        raise_for_domain_error(EntityNotFound("Bank account", "acc-1"))

    assert exc_info.value.detail == "Bank account not found"


def test_raise_not_found_with_cause():
    cause = ValueError("Original error")

    with pytest.raises(HTTPException) as exc_info:
        raise_not_found("Import job", cause=cause)

    assert exc_info.value.__cause__ is cause


def test_error_details_are_kept():
    error = ValidationError("bad", threshold=50)

    assert error.code == "validation_error"
    assert error.details == {"threshold": 50}
    assert str(error) == "bad"
