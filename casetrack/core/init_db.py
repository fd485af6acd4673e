from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import select

from casetrack.core.database import Base, get_engine, get_session
from casetrack.models.actor import Actor  # noqa: F401, E402
from casetrack.models.audit_log import AuditEntry  # noqa: F401, E402
from casetrack.models.case import CaseRecord  # noqa: F401, E402
from casetrack.models.reference import Application, Origin, Priority  # noqa: F401, E402
from casetrack.models.role import Permission, Role, RolePermission
from casetrack.models.time_entry import TimeEntry  # noqa: F401, E402
from casetrack.models.todo import TodoRecord  # noqa: F401, E402

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")

# (module, action) concedidos al rol básico
DEFAULT_USER_CAPABILITIES = [
    ("cases", "read"),
    ("cases", "create"),
    ("cases", "update"),
    ("todos", "read"),
    ("todos", "create"),
    ("todos", "update"),
    ("time", "create"),
    ("reports", "read"),
]

DEFAULT_PERMISSION_MODULES = {
    "cases": ["read", "create", "update", "delete", "assign", "classification"],
    "todos": ["read", "create", "update", "delete", "assign"],
    "time": ["create"],
    "users": ["read", "create", "update", "delete"],
    "roles": ["read", "create", "update", "delete"],
    "permissions": ["read", "create", "update", "delete"],
    "applications": ["read", "create", "update", "delete"],
    "origins": ["read", "create", "update", "delete"],
    "priorities": ["read", "create", "update", "delete"],
    "reports": ["read", "export", "advanced"],
    "audit": ["read", "export"],
}


# =========================================================
# INIT DB
# =========================================================

def create_tables(engine=None) -> list:
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    return sorted(Base.metadata.tables.keys())


def seed_defaults(db) -> None:
    """
    Inserta el catálogo de permisos y los roles base si no existen.

    Idempotente: no toca filas ya presentes.
    """
    existing = {
        (p.module, p.action): p for p in db.execute(select(Permission)).scalars().all()
    }
    for module, actions in DEFAULT_PERMISSION_MODULES.items():
        for action in actions:
            if (module, action) not in existing:
                permission = Permission(name=f"{module}.{action}", module=module, action=action)
                db.add(permission)
                existing[(module, action)] = permission
    db.flush()

    roles = {r.name: r for r in db.execute(select(Role)).scalars().all()}
    if "admin" not in roles:
        db.add(Role(name="admin", description="Acceso completo"))
    if "user" not in roles:
        user_role = Role(name="user", description="Acceso a sus propios casos y tareas")
        db.add(user_role)
        db.flush()
        for capability in DEFAULT_USER_CAPABILITIES:
            db.add(RolePermission(role_id=user_role.id, permission_id=existing[capability].id))


def main():
    """
    Inicializa la base de datos:
    - Crea todas las tablas definidas en los modelos
    - Siembra permisos y roles base
    """
    tables = create_tables()

    with get_session() as db:
        seed_defaults(db)

    print("✅ Tablas creadas / registradas en SQLAlchemy:")
    for table in tables:
        print(f"   - {table}")

    print(f"\n📊 Total tablas: {len(tables)}")


if __name__ == "__main__":
    main()
