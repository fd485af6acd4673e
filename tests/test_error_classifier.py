"""
Tests del clasificador de errores.
"""
import pytest
from pydantic import ValidationError

from casetrack.core.exceptions import (
    AuthenticationException,
    DependencyExistsException,
    DuplicateKeyException,
    ErrorKind,
    InvalidReferenceException,
    NotAuthorizedException,
    NotFoundException,
    SessionInvalidException,
    ValidationException,
)
from casetrack.core.store import StoreError, StoreErrorKind
from casetrack.models.schemas import CaseCreate
from casetrack.services.error_classifier import (
    DUPLICATE_MESSAGES,
    GENERIC_MESSAGES,
    REFERENCE_MESSAGES,
    classify,
)


@pytest.mark.parametrize("field", list(REFERENCE_MESSAGES))
def test_invalid_reference_has_field_message(field):
    """Test: Cada FK conocida tiene su mensaje."""
    result = classify(InvalidReferenceException(field, "x"))

    assert result.kind == ErrorKind.INVALID_REFERENCE
    assert result.field == field
    assert result.message == REFERENCE_MESSAGES[field]


def test_unknown_reference_field_uses_generic_message():
    result = classify(InvalidReferenceException("other_id"))

    assert result.kind == ErrorKind.INVALID_REFERENCE
    assert result.message == GENERIC_MESSAGES[ErrorKind.INVALID_REFERENCE]


def test_duplicate_case_number():
    result = classify(DuplicateKeyException("case_number", "C-1"))

    assert result.kind == ErrorKind.DUPLICATE_KEY
    assert result.field == "case_number"
    assert result.message == DUPLICATE_MESSAGES["case_number"]


def test_store_foreign_key_scans_message_in_order():
    """Test: Sin campo estructurado se busca en el texto, en orden declarado."""
    error = StoreError(
        StoreErrorKind.FOREIGN_KEY,
        'violates foreign key constraint "cases_application_id_fkey" (user_id check)',
    )

    result = classify(error)

    assert result.kind == ErrorKind.INVALID_REFERENCE
    assert result.field == "user_id"


def test_store_unique_with_field():
    result = classify(StoreError(StoreErrorKind.UNIQUE, "UNIQUE constraint failed", field="email"))

    assert result.kind == ErrorKind.DUPLICATE_KEY
    assert result.message == DUPLICATE_MESSAGES["email"]


@pytest.mark.parametrize(
    "store_kind, expected",
    [
        (StoreErrorKind.PERMISSION, ErrorKind.NOT_AUTHORIZED),
        (StoreErrorKind.NOT_FOUND, ErrorKind.NOT_FOUND),
        (StoreErrorKind.AUTH, ErrorKind.SESSION_INVALID),
        (StoreErrorKind.CHECK, ErrorKind.UNKNOWN),
        (StoreErrorKind.OTHER, ErrorKind.UNKNOWN),
    ],
)
def test_store_kinds_map_to_taxonomy(store_kind, expected):
    result = classify(StoreError(store_kind, "raw driver text", field="secret_column"))

    assert result.kind == expected
    assert result.field is None
    assert "raw driver text" not in result.message


def test_domain_exceptions():
    assert classify(NotFoundException("Caso", "1")).kind == ErrorKind.NOT_FOUND
    assert classify(NotAuthorizedException("Caso", "1")).kind == ErrorKind.NOT_AUTHORIZED
    assert classify(SessionInvalidException()).kind == ErrorKind.SESSION_INVALID


def test_dependency_exists_keeps_its_message():
    error = DependencyExistsException("Usuario", "u-1", ["cases", "todos"])

    result = classify(error)

    assert result.kind == ErrorKind.DEPENDENCY_EXISTS
    assert "cases, todos" in result.message


def test_authentication_message_is_user_facing():
    result = classify(AuthenticationException("Tu cuenta está desactivada."))

    assert result.kind == ErrorKind.SESSION_INVALID
    assert result.message == "Tu cuenta está desactivada."


def test_validation_exception_keeps_message_and_field():
    result = classify(ValidationException("Filtro no soportado: foo", field="foo"))

    assert result.kind == ErrorKind.UNKNOWN
    assert result.field == "foo"
    assert result.message == "Filtro no soportado: foo"


def test_pydantic_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        CaseCreate.model_validate({"description": "x"})

    result = classify(exc_info.value)

    assert result.kind == ErrorKind.UNKNOWN
    assert result.field is not None


def test_unexpected_error_does_not_leak_details():
    result = classify(RuntimeError("connection string postgres://user:pw@host"))

    assert result.kind == ErrorKind.UNKNOWN
    assert result.message == GENERIC_MESSAGES[ErrorKind.UNKNOWN]


def test_classification_is_deterministic():
    error = StoreError(StoreErrorKind.UNIQUE, "duplicate key value violates unique constraint", field="case_number")

    assert classify(error) == classify(error)
