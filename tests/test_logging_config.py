import json
import logging

from vault_app.utils.logging_config import JSONFormatter, TextFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord(
        name="vault.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=12,
        msg="Found %s orphaned reference(s)",
        args=(3,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_importer_fields():
    record = _record(importer_run_id=7, importer_orphan_kind="locations", unrelated="ignored")

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Found 3 orphaned reference(s)"
    assert payload["level"] == "WARNING"
    assert payload["importer_run_id"] == 7
    assert payload["importer_orphan_kind"] == "locations"
    assert "unrelated" not in payload


def test_json_formatter_serializes_unknown_values():
    record = _record(importer_path=object())
    payload = json.loads(JSONFormatter().format(record))
    assert payload["importer_path"].startswith("<object")


def test_text_formatter_appends_structured_fields():
    message = TextFormatter().format(_record(importer_stage="contracts", importer_run_id=3))
    assert message.endswith("| importer_run_id=3 importer_stage=contracts")


def test_setup_logging_does_not_duplicate_handlers(app, monkeypatch):
    monkeypatch.setitem(app.config, "LOG_FORMAT", "json")
    monkeypatch.setitem(app.config, "ENABLE_CONSOLE_LOGGING", True)

    setup_logging(app)
    setup_logging(app)

    managed = [handler for handler in app.logger.handlers if getattr(handler, "_vault_handler", False)]
    assert len(managed) == 1
    assert isinstance(managed[0].formatter, JSONFormatter)


def test_setup_logging_writes_file(app, tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setitem(app.config, "LOG_FORMAT", "text")
    monkeypatch.setitem(app.config, "ENABLE_CONSOLE_LOGGING", False)
    monkeypatch.setitem(app.config, "LOG_DIR", str(log_dir))
    app.config["ENABLE_FILE_LOGGING"] = True

    logger = setup_logging(app)
    logger.warning("Vault store cleared", extra={"importer_stage": "delete_store"})
    for handler in logger.handlers:
        handler.flush()

    assert "importer_stage=delete_store" in (log_dir / "vault.log").read_text(encoding="utf-8")
    app.config.update(ENABLE_FILE_LOGGING=False)
    setup_logging(app)
