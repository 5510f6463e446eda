# vault_app/utils/logging_config.py

"""
Logging setup for the vault application.

Structured fields passed through ``extra={...}`` (for example
``importer_run_id``) are carried into JSON output so import runs can be
followed across the CLI, the Celery worker and the orchestrator.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

STRUCTURED_PREFIXES = ("importer_",)

_HANDLER_MARKER = "_vault_handler"


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line"""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key.startswith(STRUCTURED_PREFIXES):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Readable single-line output with structured fields appended"""

    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    def format(self, record):
        message = super().format(record)
        structured = {
            key: value for key, value in record.__dict__.items() if key.startswith(STRUCTURED_PREFIXES)
        }
        if structured:
            details = " ".join(f"{key}={value}" for key, value in sorted(structured.items()))
            message = f"{message} | {details}"
        return message


def _build_formatter(log_format):
    if str(log_format).lower() == "json":
        return JSONFormatter()
    return TextFormatter()


def _remove_managed_handlers(logger):
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(app):
    """
    Configure the Flask app logger from the monitoring configuration.

    Safe to call repeatedly; handlers installed by an earlier call are
    replaced rather than duplicated.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app.config.get("LOG_FORMAT", "text"))

    logger = app.logger
    _remove_managed_handlers(logger)
    logger.setLevel(level)

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        setattr(console_handler, _HANDLER_MARKER, True)
        logger.addHandler(console_handler)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, "vault.log"),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled: unable to open %s (%s)", log_dir, exc)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            setattr(file_handler, _HANDLER_MARKER, True)
            logger.addHandler(file_handler)

    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logger
