"""
Tests de resolución del alcance de visibilidad.
"""
from types import SimpleNamespace

import pytest

from casetrack.models.case import CaseRecord
from casetrack.models.todo import TodoRecord
from casetrack.services.scope import Scope, is_admin_actor, resolve_scope, resolve_scope_for_actor


def test_admin_gets_unrestricted_scope():
    """Test: Un administrador no tiene predicado de filtrado."""
    scope = resolve_scope("admin-1", is_admin=True)

    assert scope.is_unrestricted
    assert scope.predicate(CaseRecord, ("user_id",)) is None


def test_regular_actor_scope_is_owned():
    scope = resolve_scope("alice", is_admin=False)

    assert not scope.is_unrestricted
    assert scope.actor_id == "alice"
    assert scope.predicate(CaseRecord, ("user_id",)) is not None


def test_owned_scope_requires_actor():
    with pytest.raises(ValueError):
        Scope.owned_by("")


def test_tables_without_ownership_are_visible():
    """Test: Tablas sin columnas de propiedad no se filtran."""
    scope = Scope.owned_by("alice")

    assert scope.predicate(CaseRecord, ()) is None
    assert scope.allows(SimpleNamespace(id="x"), ())


def test_allows_checks_every_ownership_column():
    """Test: Una tarea es visible para el creador o el asignado."""
    scope = Scope.owned_by("alice")
    columns = ("assigned_to", "created_by")

    assert scope.allows(SimpleNamespace(assigned_to="alice", created_by="bob"), columns)
    assert scope.allows(SimpleNamespace(assigned_to=None, created_by="alice"), columns)
    assert not scope.allows(SimpleNamespace(assigned_to="bob", created_by="bob"), columns)


def test_predicate_combines_ownership_columns():
    scope = Scope.owned_by("alice")

    sql = str(scope.predicate(TodoRecord, ("assigned_to", "created_by")))

    assert "assigned_to" in sql
    assert "created_by" in sql
    assert " OR " in sql


def test_admin_detection_from_cached_record():
    """Test: El snapshot en caché basta para resolver el alcance."""
    assert is_admin_actor({"id": "a", "role_name": "admin"})
    assert is_admin_actor({"id": "a", "role_name": "Administrador"})
    assert not is_admin_actor({"id": "a", "role_name": "user"})
    assert not is_admin_actor({"id": "a"})

    scope = resolve_scope_for_actor({"id": "a", "role_name": "user"})
    assert scope == Scope.owned_by("a")
