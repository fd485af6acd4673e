"""Fixtures pytest: store SQLite en memoria, auditoría inline y datos sembrados."""
import os
import tempfile
from types import SimpleNamespace

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOGS_DIR"] = tempfile.mkdtemp(prefix="casetrack-logs-")
os.environ["AUDIT_ASYNC_ENABLED"] = "false"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"

import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402

from casetrack.core.auth import get_password_hash, reset_password_context  # noqa: E402
from casetrack.core.config import reload_settings  # noqa: E402
from casetrack.core.database import build_engine, build_session_factory, reset_engine  # noqa: E402
from casetrack.core.init_db import create_tables, seed_defaults  # noqa: E402
from casetrack.models.actor import Actor  # noqa: E402
from casetrack.models.reference import Application, Origin, Priority  # noqa: E402
from casetrack.models.role import Role  # noqa: E402
from casetrack.services.audit_recorder import AuditRecorder, InlineAuditDispatcher  # noqa: E402
from casetrack.services.scope import Scope  # noqa: E402

reload_settings()
reset_engine()
reset_password_context()

PASSWORD = "secret123"


@pytest.fixture(scope="function")
def engine():
    """Engine en memoria con todas las tablas."""
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def recorder(session_factory):
    """Recorder con despacho inline y su propia sesión por escritura."""
    return AuditRecorder(session_factory=session_factory, dispatcher=InlineAuditDispatcher())


@pytest.fixture
def seeded(db_session):
    """
    Roles base, tres actores (alice, bob, admin) y tablas de referencia.

    Se insertan directamente: no generan entradas de auditoría.
    """
    seed_defaults(db_session)
    db_session.commit()

    roles = {r.name: r for r in db_session.execute(select(Role)).scalars().all()}
    hashed = get_password_hash(PASSWORD)

    alice = Actor(name="Alice", email="alice@example.com", hashed_password=hashed, role_id=roles["user"].id)
    bob = Actor(name="Bob", email="bob@example.com", hashed_password=hashed, role_id=roles["user"].id)
    admin = Actor(name="Admin", email="admin@example.com", hashed_password=hashed, role_id=roles["admin"].id)

    app = Application(name="Portal Clientes")
    retired_app = Application(name="Legacy ERP", is_active=False)
    origin = Origin(name="Email")
    priority = Priority(name="Alta", level=1, color="#d32f2f")

    db_session.add_all([alice, bob, admin, app, retired_app, origin, priority])
    db_session.commit()

    return SimpleNamespace(
        alice=alice,
        bob=bob,
        admin=admin,
        roles=roles,
        app=app,
        retired_app=retired_app,
        origin=origin,
        priority=priority,
        alice_scope=Scope.owned_by(alice.id),
        bob_scope=Scope.owned_by(bob.id),
        admin_scope=Scope.unrestricted(admin.id),
    )


@pytest.fixture
def case_payload(seeded):
    """Payload mínimo válido para crear un caso."""

    def build(case_number="C-100", **overrides):
        payload = {
            "case_number": case_number,
            "description": "Incidencia de acceso",
            "application_id": seeded.app.id,
            "origin_id": seeded.origin.id,
            "priority_id": seeded.priority.id,
        }
        payload.update(overrides)
        return payload

    return build


class FakeSessionProvider:
    """Proveedor de sesión controlable para SafeExecutor."""

    def __init__(self, valid=True, actor_id="actor-1"):
        self.valid = valid
        self.actor_id = actor_id
        self.clear_calls = 0

    def validate(self):
        if isinstance(self.valid, Exception):
            raise self.valid
        return self.valid

    def clear(self):
        self.clear_calls += 1
        self.valid = False


@pytest.fixture
def fake_session():
    return FakeSessionProvider()
