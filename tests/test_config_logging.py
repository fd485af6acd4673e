"""
Tests de configuración y logging estructurado.
"""
import json

import pytest
from pydantic import ValidationError

from casetrack.core.config import Settings, get_settings
from casetrack.core.database import get_engine, get_session_factory, reset_engine
from casetrack.core.logger import StructuredLogger, get_logger


@pytest.mark.smoke
def test_settings_load_smoke():
    settings = get_settings()

    assert settings is not None
    assert settings.environment == "test"
    assert settings.database_url == "sqlite:///:memory:"
    assert settings.audit_async_enabled is False


def test_clamp_page_size():
    """Test: Tamaño de página dentro del rango permitido."""
    settings = Settings(default_page_size=25, max_page_size=100)

    assert settings.clamp_page_size(None) == 25
    assert settings.clamp_page_size(0) == 25
    assert settings.clamp_page_size(10) == 10
    assert settings.clamp_page_size(5000) == 100


def test_invalid_database_url_rejected():
    """Test: URL de base de datos no soportada."""
    with pytest.raises(ValidationError):
        Settings(database_url="mysql://localhost/db")


def test_debug_forbidden_in_production():
    with pytest.raises(ValidationError):
        Settings(environment="production", debug=True)


def test_logger_creation():
    """Test: Crear logger estructurado."""
    logger = get_logger()

    assert isinstance(logger, StructuredLogger)


def test_info_logging(tmp_path):
    """Test: Log nivel INFO con actor y acción."""
    log_file = tmp_path / "test.log"
    logger = StructuredLogger("test.info", log_file)

    logger.info("Case created", actor_id="actor-1", action="cases.create", record_id="c-1")

    log_data = json.loads(log_file.read_text().strip())
    assert log_data["level"] == "INFO"
    assert log_data["message"] == "Case created"
    assert log_data["actor_id"] == "actor-1"
    assert log_data["action"] == "cases.create"
    assert log_data["record_id"] == "c-1"
    assert "timestamp" in log_data


def test_error_logging(tmp_path):
    """Test: Log nivel ERROR con excepción."""
    log_file = tmp_path / "test.log"
    logger = StructuredLogger("test.error", log_file)

    logger.error("Audit write failed", action="audit.record", error=ValueError("boom"))

    log_data = json.loads(log_file.read_text().strip())
    assert log_data["level"] == "ERROR"
    assert log_data["error_type"] == "ValueError"
    assert log_data["error_message"] == "boom"
    assert "actor_id" not in log_data


def test_reset_engine_discards_singletons():
    """Test: Tras reset_engine se construyen engine y factory nuevos."""
    engine = get_engine()
    factory = get_session_factory()

    reset_engine()

    assert get_engine() is not engine
    assert get_session_factory() is not factory
    assert str(get_engine().url) == get_settings().database_url
