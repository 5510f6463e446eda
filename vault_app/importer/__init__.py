"""
Vault importer feature package.

Registers the importer CLI and, when enabled, the Celery app used to run
imports on a worker.
"""

from __future__ import annotations

from flask import Flask

from vault_app.utils.importer import is_importer_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .metrics import record_worker_status
from .pipeline import ExistingDataDecision, ImportResult, PrimaryManagerRule, VaultImportService

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
    "ExistingDataDecision",
    "ImportResult",
    "PrimaryManagerRule",
    "VaultImportService",
]


def _ensure_extension_state(app: Flask) -> dict:
    state = app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "celery_app": None,
        },
    )
    return state


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Register the importer CLI and Celery app based on configuration.

    Records importer state inside ``app.extensions['importer']`` for reuse by
    the CLI and worker tasks.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    worker_enabled = bool(app.config.get("IMPORTER_WORKER_ENABLED", False))
    state.update({"enabled": enabled, "worker_enabled": worker_enabled})
    record_worker_status(enabled and worker_enabled)

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    ensure_celery_app(app, state)
    _set_cli(app, enabled=True)
    app.logger.info(
        "Vault importer enabled (worker %s, default manager rule %s)",
        "enabled" if worker_enabled else "disabled",
        app.config.get("IMPORTER_DEFAULT_MANAGER_RULE"),
    )
