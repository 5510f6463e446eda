"""
Importer Celery tasks.

``ingest_vault`` runs the same ``VaultImportService`` the inline CLI path uses,
so a queued import records its own ``ImportRun`` row and returns the result
payload to the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from celery import shared_task
from flask import current_app

from vault_app.importer.pipeline import VaultImportService
from vault_app.importer.utils import cleanup_upload


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
        "app_version": getattr(self.app, "user_options", {}).get("version"),
    }


@shared_task(name="importer.pipeline.ingest_vault", bind=True)
def ingest_vault(
    self,
    *,
    file_path: str,
    manager_rule: str | None = None,
    on_existing: str | None = None,
    company_only: bool = False,
    keep_file: bool = True,
) -> dict[str, Any]:
    """
    Import a vault file on the importer worker.
    """

    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Vault file not found: {file_path}")

    cleanup_target: Path | None = None if keep_file else path
    service = VaultImportService()
    try:
        if company_only:
            result = service.import_company_only(path, decision=on_existing)
        else:
            result = service.import_vault(path, manager_rule=manager_rule, decision=on_existing)
    finally:
        if cleanup_target is not None:
            cleanup_upload(cleanup_target)

    current_app.logger.info(
        "Vault import task finished",
        extra={
            "importer_task_id": self.request.id,
            "importer_run_id": result.run_id,
            "importer_success": result.success,
            "importer_created": result.created_counts,
            "importer_orphans": result.total_orphans,
        },
    )
    return result.as_dict()
