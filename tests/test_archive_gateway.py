"""
Tests de la pasarela de archivo.

Los procedimientos del servidor se sustituyen por handlers locales
registrados con register_procedure.
"""
import pytest

from casetrack.core.store import StoreError, StoreErrorKind, register_procedure, unregister_procedure
from casetrack.models.audit_log import AuditEntry
from casetrack.repositories.cases import CaseRepository
from casetrack.services.archive_gateway import (
    ARCHIVE_MODULE_MISSING,
    EMPTY_ARCHIVE_STATS,
    NO_ARCHIVE_PERMISSIONS,
    ArchiveGateway,
)


@pytest.fixture
def gateway(db_session, recorder):
    return ArchiveGateway(db_session, recorder)


@pytest.fixture
def procedures():
    """Registra handlers y los retira al terminar."""
    names = []

    def add(name, handler):
        register_procedure(name, handler)
        names.append(name)

    yield add

    for name in names:
        unregister_procedure(name)


@pytest.fixture
def case(db_session, recorder, seeded, case_payload):
    return CaseRepository(db_session, recorder).create(case_payload("C-100"), seeded.alice.id)


def _entries(db_session, table_name="cases"):
    return (
        db_session.query(AuditEntry)
        .filter(AuditEntry.table_name == table_name)
        .order_by(AuditEntry.id)
        .all()
    )


def test_archive_case_audits_delete(gateway, procedures, db_session, seeded, case):
    calls = []
    procedures("archive_case", lambda db, **params: calls.append(params) or {"archived_id": "arch-1"})

    result = gateway.archive_case(case.id, seeded.alice.id, reason="CLOSED", reason_text="cerrado")

    assert result.success
    assert calls[0]["p_case_id"] == case.id
    assert calls[0]["p_user_id"] == seeded.alice.id
    assert calls[0]["p_retention_days"] == 2555

    entry = _entries(db_session)[-1]
    assert entry.operation == "DELETE"
    assert entry.record_id == case.id
    assert entry.old_data["case_number"] == "C-100"
    assert entry.new_data["status"] == "ARCHIVED"
    assert entry.new_data["archived_by"] == seeded.alice.id
    assert entry.description == "Caso archivado: CLOSED - cerrado"


def test_archive_missing_case_skips_procedure(gateway, procedures, seeded):
    calls = []
    procedures("archive_case", lambda db, **params: calls.append(params))

    result = gateway.archive_case("missing", seeded.alice.id)

    assert not result.success
    assert result.code == "PGRST116"
    assert calls == []


def test_failed_procedure_is_not_audited(gateway, procedures, db_session, seeded, case):
    def failing(db, **params):
        raise StoreError(StoreErrorKind.CHECK, "case already archived", code="P0001")

    procedures("archive_case", failing)
    before = len(_entries(db_session))

    result = gateway.archive_case(case.id, seeded.alice.id)

    assert not result.success
    assert result.code == "P0001"
    assert len(_entries(db_session)) == before


def test_restore_case_audits_insert(gateway, procedures, db_session, seeded):
    """Test: Restaurar cuenta como INSERT sobre el id original."""
    procedures(
        "restore_case",
        lambda db, **params: {"original_id": "case-1", "case_data": {"id": "case-1", "case_number": "C-9"}},
    )

    result = gateway.restore_case("arch-1", seeded.alice.id, restore_reason="Reabierto")

    assert result.success
    entry = _entries(db_session)[-1]
    assert entry.operation == "INSERT"
    assert entry.record_id == "case-1"
    assert entry.old_data == {"status": "ARCHIVED", "archived_id": "arch-1"}
    assert entry.new_data["status"] == "PENDIENTE"
    assert entry.new_data["case_number"] == "C-9"
    assert entry.description == "Caso restaurado desde archivo: Reabierto"


def test_bulk_archive_passes_ids(gateway, procedures, seeded):
    received = {}
    procedures("bulk_archive_cases", lambda db, **params: received.update(params) or {"archived": 2})

    result = gateway.bulk_archive_cases(["a", "b"], seeded.admin.id, retention_days=30)

    assert result.success
    assert received["p_case_ids"] == ["a", "b"]
    assert received["p_reason"] == "BULK_OPERATION"
    assert received["p_retention_days"] == 30


def test_missing_archive_module(gateway, seeded):
    """Test: Sin módulo de archivo, estadísticas a cero y permisos a False."""
    stats = gateway.get_archive_stats()

    assert stats.success
    assert stats.data == EMPTY_ARCHIVE_STATS
    assert stats.error == ARCHIVE_MODULE_MISSING
    assert stats.code == "PGRST202"

    assert gateway.check_archive_permissions(seeded.admin.id) == NO_ARCHIVE_PERMISSIONS
    assert gateway.check_archive_permissions(None) == NO_ARCHIVE_PERMISSIONS


def test_check_archive_permissions_reads_flags(gateway, procedures, seeded):
    procedures("check_archive_permissions", lambda db, p_user_id: {"can_archive": True, "can_view_stats": 1})

    flags = gateway.check_archive_permissions(seeded.admin.id)

    assert flags["can_archive"] is True
    assert flags["can_view_stats"] is True
    assert flags["can_delete"] is False


def test_search_archive_empty_result(gateway, procedures):
    procedures("search_archive", lambda db, **params: None)

    result = gateway.search_archive("C-1")

    assert result.success
    assert result.data == []
