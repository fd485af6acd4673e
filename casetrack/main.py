from dotenv import load_dotenv
from fastapi import FastAPI
from sqlalchemy import text

from casetrack.api.audit import router as audit_router
from casetrack.api.cases import router as cases_router
from casetrack.api.reference import applications_router, origins_router, priorities_router
from casetrack.api.todos import router as todos_router
from casetrack.core.config import get_settings
from casetrack.core.database import get_engine


# =========================================================
# CARGA DE ENTORNO
# =========================================================

load_dotenv()


# =========================================================
# FASTAPI APP (ENTRYPOINT ASGI)
# =========================================================

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.include_router(cases_router)
app.include_router(todos_router)
app.include_router(applications_router)
app.include_router(origins_router)
app.include_router(priorities_router)
app.include_router(audit_router)


@app.get("/")
def root():
    return {"name": settings.app_name, "version": settings.app_version}


@app.get("/health")
def health():
    """Estado del servicio y conectividad con el store."""
    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
        database = "ok"
    except Exception:
        database = "unavailable"
    return {"status": "ok" if database == "ok" else "degraded", "database": database}


# =========================================================
# MAIN CLÁSICO (solo para tests manuales)
# =========================================================

def main():
    """
    Punto de entrada manual (NO usado por uvicorn).
    Sirve para comprobar que la conexión a base de datos funciona.
    """
    engine = get_engine()
    connection = engine.connect()
    print("✅ Conexión a la base de datos OK")
    connection.close()


if __name__ == "__main__":
    main()
