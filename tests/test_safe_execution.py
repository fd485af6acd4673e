"""
Tests del envoltorio de ejecución segura.
"""
from unittest.mock import MagicMock

from casetrack.core.exceptions import (
    DuplicateKeyException,
    ErrorKind,
    SessionInvalidException,
)
from casetrack.core.store import StoreError, StoreErrorKind
from casetrack.services.safe_execution import SafeExecutor


def test_successful_operation(fake_session):
    result = SafeExecutor(fake_session).execute(lambda: 42, context="test.ok")

    assert result.ok
    assert result.value == 42
    assert result.error is None


def test_invalid_session_skips_operation(fake_session):
    """Test: Con sesión inválida la operación nunca se invoca."""
    fake_session.valid = False
    operation = MagicMock()

    result = SafeExecutor(fake_session).execute(operation, context="test.invalid")

    operation.assert_not_called()
    assert not result.ok
    assert result.error.kind == ErrorKind.SESSION_INVALID
    assert fake_session.clear_calls == 1


def test_session_validation_error_counts_as_invalid(fake_session):
    fake_session.valid = RuntimeError("store unreachable")
    operation = MagicMock()

    result = SafeExecutor(fake_session).execute(operation)

    operation.assert_not_called()
    assert result.error.kind == ErrorKind.SESSION_INVALID


def test_domain_error_is_classified(fake_session):
    def operation():
        raise DuplicateKeyException("case_number", "C-1")

    result = SafeExecutor(fake_session).execute(operation, context="cases.create")

    assert not result.ok
    assert result.error.kind == ErrorKind.DUPLICATE_KEY
    assert result.error.field == "case_number"
    assert fake_session.clear_calls == 0


def test_store_error_is_classified(fake_session):
    def operation():
        raise StoreError(StoreErrorKind.FOREIGN_KEY, "violates foreign key", field="origin_id")

    result = SafeExecutor(fake_session).execute(operation)

    assert result.error.kind == ErrorKind.INVALID_REFERENCE
    assert result.error.field == "origin_id"


def test_session_invalid_during_operation_clears_session(fake_session):
    def operation():
        raise SessionInvalidException("Token expirado")

    result = SafeExecutor(fake_session).execute(operation)

    assert result.error.kind == ErrorKind.SESSION_INVALID
    assert fake_session.clear_calls == 1


def test_unexpected_error_becomes_unknown(fake_session):
    def operation():
        raise KeyError("internal")

    result = SafeExecutor(fake_session).execute(operation)

    assert result.error.kind == ErrorKind.UNKNOWN
    assert "internal" not in result.error.message
