"""
Sistema de configuración con Pydantic Settings.

Centraliza la configuración de la capa de datos:
- Validación automática de tipos
- Valores por defecto seguros
- Separación por entornos (development/staging/production)
"""
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuración global de CaseTrack.

    Todas las variables se pueden sobrescribir con variables de entorno.
    """

    # =========================================================
    # ENTORNO Y DEPLOYMENT
    # =========================================================

    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Entorno de ejecución"
    )

    debug: bool = Field(default=False, description="Modo debug (solo para development)")

    app_name: str = Field(default="CaseTrack")

    app_version: str = Field(default="1.0.0")

    # =========================================================
    # DATABASE
    # =========================================================

    database_url: str = Field(
        default="sqlite:///./runtime/db/casetrack.db",
        description="URL de conexión a base de datos",
    )

    # =========================================================
    # SESIÓN LOCAL
    # =========================================================

    session_cache_path: Path = Field(
        default=Path("runtime/session/current_actor.json"),
        description="Fichero donde se persiste el actor actual entre arranques",
    )

    admin_role_names: List[str] = Field(
        default=["admin", "Administrador"],
        description="Nombres de rol con visibilidad sin restricciones",
    )

    min_password_length: int = Field(
        default=6, ge=1, le=128, description="Longitud mínima de contraseña en login"
    )

    password_hash_rounds: int = Field(
        default=12, ge=4, le=31, description="Rondas bcrypt (bajar solo en tests)"
    )

    # =========================================================
    # PAGINACIÓN
    # =========================================================

    default_page_size: int = Field(default=25, ge=1, le=500)

    max_page_size: int = Field(default=100, ge=1, le=10000)

    # =========================================================
    # AUDITORÍA
    # =========================================================

    audit_async_enabled: bool = Field(
        default=True,
        description="Despachar escrituras de auditoría en un hilo de fondo",
    )

    audit_max_workers: int = Field(default=1, ge=1, le=8)

    audit_stats_window_days: int = Field(default=7, ge=1, le=365)

    audit_export_max_rows: int = Field(
        default=10000, ge=1, description="Máximo de filas en una exportación CSV"
    )

    # =========================================================
    # ARCHIVO (procedimientos remotos)
    # =========================================================

    default_retention_days: int = Field(
        default=2555, ge=1, description="Retención por defecto al archivar (días)"
    )

    # =========================================================
    # OBSERVABILIDAD
    # =========================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    logs_dir: Optional[Path] = Field(
        default=Path("runtime/logs"), description="Directorio de logs (None = solo consola)"
    )

    # =========================================================
    # VALIDACIONES CUSTOM
    # =========================================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Valida formato de URL de base de datos."""
        if not v.startswith(("sqlite://", "postgresql://", "postgresql+psycopg2://")):
            raise ValueError(
                "database_url debe empezar con sqlite://, postgresql:// o postgresql+psycopg2://"
            )
        return v

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Debug debe estar deshabilitado en producción."""
        if self.environment == "production" and self.debug:
            raise ValueError("DEBUG debe estar deshabilitado en producción")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size no puede superar max_page_size")
        return self

    # =========================================================
    # PROPIEDADES COMPUTADAS
    # =========================================================

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def uses_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def clamp_page_size(self, page_size: Optional[int]) -> int:
        """Normaliza el tamaño de página al rango permitido."""
        if not page_size or page_size < 1:
            return self.default_page_size
        return min(page_size, self.max_page_size)

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )


# =========================================================
# INSTANCIA GLOBAL (SINGLETON)
# =========================================================

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Obtiene la instancia global de configuración (singleton)."""
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Recarga la configuración (útil para tests).

    Returns:
        Settings: Nueva instancia de configuración
    """
    global _settings
    _settings = None
    return get_settings()


def print_config() -> None:
    """Imprime configuración actual (sin secrets)."""
    config = get_settings()

    print("\n" + "=" * 60)
    print("CASETRACK - CONFIGURACIÓN")
    print("=" * 60)
    print(f"Environment:     {config.environment}")
    print(f"Debug:           {config.debug}")
    print(f"Version:         {config.app_version}")
    print(f"Database:        {config.database_url.split('/')[-1]}")
    print(f"Admin roles:     {', '.join(config.admin_role_names)}")
    print(f"Audit async:     {config.audit_async_enabled}")
    print(f"Log Level:       {config.log_level}")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    print_config()
