"""
Tests del registro de auditoría: escritura best-effort, consulta,
estadísticas, exportación CSV y señal de resultado degradado.
"""
import io
from datetime import datetime, timedelta
from unittest.mock import patch

import pandas as pd
import pytest

from casetrack.core.exceptions import CaseTrackException
from casetrack.core.store import StoreError, StoreErrorKind
from casetrack.models.audit_log import AuditEntry, AuditImmutableError
from casetrack.repositories.cases import CaseRepository
from casetrack.services.audit_recorder import (
    DEGRADED_EMPTY,
    DEGRADED_QUERY_FAILED,
    EXPORT_COLUMNS,
    AuditRecorder,
    InlineAuditDispatcher,
    ThreadedAuditDispatcher,
    row_snapshot,
)


def _record(recorder, **overrides):
    params = dict(
        table_name="cases",
        operation="INSERT",
        record_id="c-1",
        actor_id=None,
        before=None,
        after={"case_number": "C-1"},
        description="Caso creado: C-1",
    )
    params.update(overrides)
    recorder.record(**params)


def test_record_writes_entry(recorder, db_session, seeded):
    _record(recorder, actor_id=seeded.alice.id, ip_address="10.0.0.1")

    entry = db_session.query(AuditEntry).one()
    assert entry.user_id == seeded.alice.id
    assert entry.ip_address == "10.0.0.1"
    assert entry.verify_integrity()


def test_record_failure_is_swallowed_and_logged():
    """Test: Un fallo al escribir queda en failures y no llega al llamador."""

    def broken_factory():
        raise RuntimeError("audit store down")

    recorder = AuditRecorder(session_factory=broken_factory, dispatcher=InlineAuditDispatcher())

    _record(recorder)

    assert len(recorder.failures) == 1
    assert recorder.failures[0].table_name == "cases"
    assert "audit store down" in recorder.failures[0].error


def test_threaded_dispatcher_runs_tasks():
    dispatcher = ThreadedAuditDispatcher(max_workers=2)
    results = []

    for i in range(5):
        dispatcher.submit(lambda i=i: results.append(i))
    dispatcher.wait(timeout=5)
    dispatcher.shutdown()

    assert sorted(results) == [0, 1, 2, 3, 4]


def test_entries_are_append_only(recorder, db_session, seeded):
    _record(recorder)
    entry = db_session.query(AuditEntry).one()

    entry.description = "manipulada"
    with pytest.raises(AuditImmutableError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(db_session.query(AuditEntry).one())
    with pytest.raises(AuditImmutableError):
        db_session.flush()
    db_session.rollback()


def test_row_snapshot_excludes_password(seeded):
    snapshot = row_snapshot(seeded.alice)

    assert snapshot["email"] == "alice@example.com"
    assert "hashed_password" not in snapshot
    assert isinstance(snapshot["created_at"], str)


# =========================================================
# CONSULTA
# =========================================================

def test_query_filters_and_orders(recorder, db_session, seeded, case_payload):
    repo = CaseRepository(db_session, recorder)
    first = repo.create(case_payload("C-1"), seeded.alice.id)
    repo.create(case_payload("C-2"), seeded.bob.id)
    repo.update(first.id, {"description": "nueva"}, seeded.alice_scope, seeded.alice.id)

    page = recorder.query()
    assert page.total_count == 3
    assert not page.degraded
    timestamps = [row["timestamp"] for row in page.rows]
    assert timestamps == sorted(timestamps, reverse=True)

    alice_page = recorder.query({"actor_id": seeded.alice.id})
    assert alice_page.total_count == 2
    assert {row["user_name"] for row in alice_page.rows} == {"Alice"}

    updates = recorder.query({"operation": "UPDATE", "record_id": first.id})
    assert updates.total_count == 1

    searched = recorder.query({"search": "creado: C-2"})
    assert searched.total_count == 1


def test_query_date_range(recorder, db_session, seeded):
    _record(recorder)

    future = recorder.query({"date_from": datetime.utcnow() + timedelta(days=1)})
    past = recorder.query({"date_to": datetime.utcnow() + timedelta(minutes=1)})

    assert future.total_count == 0
    # Con filtros un resultado vacío es legítimo
    assert not future.degraded
    assert past.total_count == 1


def test_empty_unfiltered_query_with_history_is_degraded(recorder, seeded):
    """Test: Hay actores pero ninguna entrada: no se presenta como 'sin actividad'."""
    page = recorder.query()

    assert page.total_count == 0
    assert page.degraded
    assert page.degraded_reason == DEGRADED_EMPTY

    with_placeholders = page.with_placeholders(2)
    assert len(with_placeholders.rows) == 2
    assert all(row["is_placeholder"] for row in with_placeholders.rows)
    assert with_placeholders.degraded


def test_empty_store_is_not_degraded(recorder):
    page = recorder.query()

    assert page.rows == []
    assert not page.degraded
    assert page.with_placeholders().rows == []


def test_failed_query_is_degraded(recorder, seeded):
    with patch(
        "casetrack.services.audit_recorder.StoreClient.count",
        side_effect=StoreError(StoreErrorKind.PERMISSION, "permission denied"),
    ):
        page = recorder.query()

    assert page.degraded
    assert page.degraded_reason == DEGRADED_QUERY_FAILED
    assert page.rows == []


# =========================================================
# ESTADÍSTICAS Y EXPORTACIÓN
# =========================================================

def test_stats(recorder, db_session, seeded, case_payload):
    repo = CaseRepository(db_session, recorder)
    case = repo.create(case_payload("C-1"), seeded.alice.id)
    repo.update(case.id, {"description": "x"}, seeded.alice_scope, seeded.alice.id)
    repo.create(case_payload("C-2"), seeded.bob.id)

    stats = recorder.stats()

    assert stats.total_actions == 3
    assert stats.total_actors == 2
    assert stats.actions_today == 3
    assert stats.actions_this_window == 3
    assert stats.top_actions[0] == ("INSERT", 2)
    assert stats.top_actors[0] == ("Alice", 2)
    assert stats.actions_by_table == {"cases": 3}
    assert stats.window_days == 7
    assert not stats.degraded


def test_stats_degraded_when_history_expected(recorder, seeded):
    stats = recorder.stats()

    assert stats.total_actions == 0
    assert stats.degraded
    assert stats.degraded_reason == DEGRADED_EMPTY


def test_export_csv_columns(recorder, db_session, seeded, case_payload):
    CaseRepository(db_session, recorder).create(case_payload("C-1"), seeded.alice.id)
    _record(recorder, actor_id="deleted-actor", description=None)

    content = recorder.export_csv()
    df = pd.read_csv(io.StringIO(content), keep_default_na=False)

    assert list(df.columns) == EXPORT_COLUMNS
    assert len(df) == 2
    assert set(df["Usuario"]) == {"Alice", "Desconocido"}
    assert set(df["Tabla"]) == {"cases"}


def test_export_csv_failure_raises(recorder):
    with patch(
        "casetrack.services.audit_recorder.StoreClient.aggregate",
        side_effect=StoreError(StoreErrorKind.OTHER, "boom"),
    ):
        with pytest.raises(CaseTrackException) as exc_info:
            recorder.export_csv()

    assert exc_info.value.code == "AUDIT_EXPORT_FAILED"
