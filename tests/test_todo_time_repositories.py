"""
Tests de tareas y registros de tiempo.
"""
from datetime import date, datetime, timedelta

import pytest

from casetrack.core.exceptions import (
    DependencyExistsException,
    InvalidReferenceException,
    NotAuthorizedException,
    ValidationException,
)
from casetrack.core.store import StoreClient, StoreError, StoreErrorKind
from casetrack.models.time_entry import TimeEntry
from casetrack.repositories.cases import CaseRepository
from casetrack.repositories.time_entries import MANUAL_ENTRY_START, TimeEntryRepository
from casetrack.repositories.todos import TodoRepository


@pytest.fixture
def todos(db_session, recorder):
    return TodoRepository(db_session, recorder)


@pytest.fixture
def times(db_session, recorder):
    return TimeEntryRepository(db_session, recorder)


@pytest.fixture
def alice_case(db_session, recorder, seeded, case_payload):
    return CaseRepository(db_session, recorder).create(case_payload("C-1"), seeded.alice.id)


# =========================================================
# TODOS
# =========================================================

def test_todo_visible_to_creator_and_assignee(todos, seeded):
    todo = todos.create(
        {"title": "Revisar logs", "priority_id": seeded.priority.id, "assigned_to": seeded.bob.id},
        seeded.alice.id,
    )

    assert todo.created_by == seeded.alice.id
    assert todos.get_by_id(todo.id, seeded.alice_scope).id == todo.id
    assert todos.get_by_id(todo.id, seeded.bob_scope).id == todo.id
    assert todos.get_all(seeded.bob_scope).total_count == 1
    assert [row.id for row in todos.get_by_user(seeded.bob.id)] == [todo.id]


def test_todo_hidden_from_other_actors(todos, db_session, seeded):
    todo = todos.create({"title": "Privada", "priority_id": seeded.priority.id}, seeded.alice.id)

    with pytest.raises(NotAuthorizedException):
        todos.get_by_id(todo.id, seeded.bob_scope)
    assert todos.get_all(seeded.bob_scope).rows == []


def test_todo_blank_case_id_is_ignored(todos, seeded):
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id, "case_id": ""}, seeded.alice.id)

    assert todo.case_id is None


def test_todo_invalid_priority(todos, seeded):
    with pytest.raises(InvalidReferenceException) as exc_info:
        todos.create({"title": "t", "priority_id": "missing"}, seeded.alice.id)

    assert exc_info.value.field == "priority_id"


def test_todo_invalid_assignee(todos, seeded):
    with pytest.raises(InvalidReferenceException) as exc_info:
        todos.create(
            {"title": "t", "priority_id": seeded.priority.id, "assigned_to": "ghost"}, seeded.alice.id
        )

    assert exc_info.value.field == "assigned_to"


def test_todo_completion_sets_timestamp(todos, seeded):
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.alice.id)

    done = todos.update_status(todo.id, "COMPLETED", seeded.alice_scope, seeded.alice.id)

    assert done.status == "COMPLETED"
    assert done.completed_at is not None


def test_todo_with_time_entries_cannot_be_deleted(todos, times, seeded):
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.alice.id)
    times.start_timer(seeded.alice.id, todo_id=todo.id)

    with pytest.raises(DependencyExistsException):
        todos.delete(todo.id, seeded.alice_scope, seeded.alice.id)


# =========================================================
# REGISTROS DE TIEMPO
# =========================================================

def test_timer_start_and_stop(times, seeded, alice_case):
    entry = times.start_timer(seeded.alice.id, case_id=alice_case.id, description="Análisis")

    assert entry.is_running
    assert [row.id for row in times.get_active_timers(seeded.alice.id)] == [entry.id]

    stopped = times.stop_timer(entry.id, seeded.alice_scope, seeded.alice.id)

    assert not stopped.is_running
    assert stopped.duration_seconds >= 0
    assert times.get_active_timers(seeded.alice.id) == []

    with pytest.raises(ValidationException):
        times.stop_timer(entry.id, seeded.alice_scope, seeded.alice.id)


def test_stop_all_active(times, todos, seeded, alice_case):
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.alice.id)
    times.start_timer(seeded.alice.id, case_id=alice_case.id)
    times.start_timer(seeded.alice.id, todo_id=todo.id)

    assert times.stop_all_active(seeded.alice.id) == 2
    assert times.get_active_timers(seeded.alice.id) == []


def test_time_entry_requires_exactly_one_parent(times, seeded, alice_case, todos):
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.alice.id)

    with pytest.raises(ValidationException):
        times.start_timer(seeded.alice.id)

    with pytest.raises(ValidationException):
        times.start_timer(seeded.alice.id, case_id=alice_case.id, todo_id=todo.id)


def test_store_check_constraint_rejects_two_parents(db_session, seeded, alice_case, todos):
    """Test: El CHECK de la tabla también exige un único padre."""
    todo = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.alice.id)

    with pytest.raises(StoreError) as exc_info:
        StoreClient(db_session).insert(
            TimeEntry(
                user_id=seeded.alice.id,
                case_id=alice_case.id,
                todo_id=todo.id,
                start_time=datetime.utcnow(),
            )
        )

    assert exc_info.value.kind == StoreErrorKind.CHECK


def test_add_manual_time(times, seeded, alice_case):
    entry = times.add_manual_time(
        seeded.alice.id, hours=1, minutes=30, case_id=alice_case.id, work_date=date(2026, 3, 2)
    )

    assert entry.start_time == datetime.combine(date(2026, 3, 2), MANUAL_ENTRY_START)
    assert entry.end_time - entry.start_time == timedelta(hours=1, minutes=30)
    assert entry.duration_seconds == 5400
    assert entry.description == "Tiempo manual"


def test_add_manual_time_rejects_zero_duration(times, seeded, alice_case):
    with pytest.raises(ValidationException):
        times.add_manual_time(seeded.alice.id, hours=0, minutes=0, case_id=alice_case.id)


def test_time_entries_by_parent_respect_scope(times, seeded, alice_case):
    times.add_manual_time(seeded.alice.id, hours=2, minutes=0, case_id=alice_case.id)

    assert len(times.get_by_parent(seeded.alice_scope, case_id=alice_case.id)) == 1
    assert times.get_by_parent(seeded.bob_scope, case_id=alice_case.id) == []
    assert len(times.get_by_parent(seeded.admin_scope, case_id=alice_case.id)) == 1

    with pytest.raises(ValidationException):
        times.get_by_parent(seeded.alice_scope)


# =========================================================
# PADRES FUERA DE ALCANCE
# =========================================================

def test_time_on_foreign_case_rejected(times, db_session, seeded, alice_case):
    """Test: bob no puede imputar tiempo a un caso de alice que no ve."""
    with pytest.raises(InvalidReferenceException) as exc_info:
        times.start_timer(seeded.bob.id, case_id=alice_case.id)

    assert exc_info.value.field == "case_id"
    with pytest.raises(InvalidReferenceException):
        times.add_manual_time(seeded.bob.id, hours=1, minutes=0, case_id=alice_case.id)
    assert db_session.query(TimeEntry).count() == 0


def test_time_on_foreign_todo_rejected(times, todos, seeded):
    private = todos.create({"title": "Privada", "priority_id": seeded.priority.id}, seeded.alice.id)

    with pytest.raises(InvalidReferenceException) as exc_info:
        times.start_timer(seeded.bob.id, todo_id=private.id)

    assert exc_info.value.field == "todo_id"


def test_assignee_can_log_time_on_todo(times, todos, seeded):
    assigned = todos.create(
        {"title": "Para bob", "priority_id": seeded.priority.id, "assigned_to": seeded.bob.id},
        seeded.alice.id,
    )

    entry = times.start_timer(seeded.bob.id, todo_id=assigned.id)

    assert entry.user_id == seeded.bob.id


def test_admin_can_log_time_on_any_case(times, seeded, alice_case):
    entry = times.start_timer(seeded.admin.id, case_id=alice_case.id)

    assert entry.case_id == alice_case.id


def test_todo_on_foreign_case_rejected(todos, db_session, seeded, alice_case):
    with pytest.raises(InvalidReferenceException) as exc_info:
        todos.create(
            {"title": "t", "priority_id": seeded.priority.id, "case_id": alice_case.id}, seeded.bob.id
        )

    assert exc_info.value.field == "case_id"

    own = todos.create({"title": "t", "priority_id": seeded.priority.id}, seeded.bob.id)
    with pytest.raises(InvalidReferenceException):
        todos.update(own.id, {"case_id": alice_case.id}, seeded.bob_scope, seeded.bob.id)


def test_todo_blank_assignee_on_update_unassigns(todos, seeded):
    todo = todos.create(
        {"title": "t", "priority_id": seeded.priority.id, "assigned_to": seeded.bob.id}, seeded.alice.id
    )

    updated = todos.update(todo.id, {"assigned_to": "  "}, seeded.alice_scope, seeded.alice.id)

    assert updated.assigned_to is None
