import pytest

from config.base import _coerce_bool, _coerce_int, _parse_choice
from config.monitoring import MonitoringConfig
from config.validation import validate_and_exit, validate_environment


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, False),
        (True, True),
        ("1", True),
        (" YES ", True),
        ("on", True),
        ("0", False),
        ("off", False),
        ("maybe", False),
    ],
)
def test_coerce_bool(raw, expected):
    assert _coerce_bool(raw) is expected


def test_coerce_bool_default_for_unknown_values():
    assert _coerce_bool("maybe", default=True) is True
    assert _coerce_bool(None, default=True) is True


def test_coerce_int():
    assert _coerce_int("250", 500) == 250
    assert _coerce_int(" ", 500) == 500
    assert _coerce_int("lots", 500) == 500
    assert _coerce_int("0", 500, minimum=1) == 500
    assert _coerce_int(None, 7) == 7


def test_parse_choice():
    choices = ("contract", "department")
    assert _parse_choice("Contract", choices, "department") == "contract"
    assert _parse_choice("", choices, "department") == "department"
    assert _parse_choice("random", choices, "department") == "department"


def test_testing_app_uses_importer_defaults(app):
    assert app.config["IMPORTER_ENABLED"] is True
    assert app.config["IMPORTER_ORPHAN_SAMPLE_LIMIT"] == 10
    assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"


def test_validation_skipped_outside_production():
    assert validate_environment("development") == (True, [])


def test_validation_reports_production_problems(monkeypatch, tmp_path):
    monkeypatch.setenv("SECRET_KEY", "your-secret-key")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("IMPORTER_MANAGER_TIE_BREAK", "coin-flip")
    monkeypatch.setenv("IMPORTER_DEFAULT_MANAGER_RULE", "manual")
    monkeypatch.setenv("IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("IMPORTER_WORKER_ENABLED", "true")
    monkeypatch.delenv("CELERY_BROKER_URL", raising=False)

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    assert len(errors) == 6
    assert any("IMPORTER_MANAGER_TIE_BREAK" in error for error in errors)
    assert any("CELERY_BROKER_URL" in error for error in errors)


def test_validation_accepts_complete_production_env(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a" * 64)
    monkeypatch.setenv("DATABASE_URL", "postgresql://vault@localhost/vault")
    monkeypatch.setenv("IMPORTER_MANAGER_TIE_BREAK", "Contract")
    monkeypatch.delenv("IMPORTER_DEFAULT_MANAGER_RULE", raising=False)
    monkeypatch.delenv("IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH", raising=False)
    monkeypatch.setenv("IMPORTER_WORKER_ENABLED", "false")

    assert validate_environment("production") == (True, [])


def test_validate_and_exit_stops_on_errors(monkeypatch, capsys):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        validate_and_exit("production")

    assert excinfo.value.code == 1
    assert "ENVIRONMENT VALIDATION FAILED" in capsys.readouterr().err


def test_monitoring_config_carries_only_logging_keys():
    keys = {name for name in vars(MonitoringConfig) if name.isupper()}
    assert keys == {
        "LOG_LEVEL",
        "LOG_FORMAT",
        "LOG_DIR",
        "LOG_FILE_MAX_BYTES",
        "LOG_FILE_BACKUP_COUNT",
        "ENABLE_FILE_LOGGING",
        "ENABLE_CONSOLE_LOGGING",
    }
