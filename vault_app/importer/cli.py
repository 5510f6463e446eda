"""
CLI commands for the vault importer.

``flask importer run`` imports a vault file either inline or by queueing the
``importer.pipeline.ingest_vault`` task on the importer worker.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo
from sqlalchemy.exc import SQLAlchemyError

from vault_app.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from vault_app.importer.pipeline import (
    ExistingDataDecision,
    ImportProgress,
    ImportResult,
    PrimaryManagerDetector,
    PrimaryManagerRule,
    PrimaryManagerService,
    VaultImportService,
    default_manager_rule,
)
from vault_app.importer.utils import cleanup_upload, resolve_upload_directory
from vault_app.models import db
from vault_app.utils.importer import is_importer_enabled

MANAGER_RULE_CHOICES = click.Choice([rule.value for rule in PrimaryManagerRule], case_sensitive=False)
DECISION_CHOICES = click.Choice([decision.value for decision in ExistingDataDecision], case_sensitive=False)


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Vault importer commands.

    Reports whether the store already holds data when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. " "Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        state = "contains data" if VaultImportService().has_data() else "is empty"
        click.echo(f"Vault store {state}.")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Optional[Celery]:
    """
    Retrieve the registered Celery instance, raising a helpful error if missing.
    """
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _echo_progress(progress: ImportProgress) -> None:
    click.echo(f"[{progress.percentage:3d}%] {progress.phase}", err=True)


def _format_summary(result: ImportResult) -> str:
    if result.success:
        status_value = "succeeded"
    elif result.aborted:
        status_value = "aborted"
    elif result.cancelled:
        status_value = "cancelled"
    else:
        status_value = "failed"
    created = result.created_counts
    created_display = ", ".join(f"{kind}={count}" for kind, count in sorted(created.items()) if count) or "none"
    orphans = result.orphaned_counts
    orphan_display = ", ".join(f"{kind}={count}" for kind, count in sorted(orphans.items()) if count) or "none"
    lines = [
        f"Vault import ({result.mode}) {status_value} in {result.duration_seconds:.2f}s (run_id={result.run_id}).",
        f"  created            : {created_display}",
        f"  orphans            : {orphan_display}",
        f"  empty_manager_guids: {result.empty_manager_guids_replaced}",
        f"  invalid_parents    : {result.invalid_department_parents}",
        f"  invalid_managers   : {result.invalid_manager_references}",
        f"  duplicate_persons  : {result.duplicate_persons_skipped}",
        f"  duplicate_contracts: {result.duplicate_contracts_skipped}",
        f"  custom_field_values: {result.custom_field_values}",
        f"  managers_updated   : {result.primary_managers_updated}",
    ]
    if result.detected_manager_rule:
        lines.append(f"  detected_rule      : {result.detected_manager_rule}")
    if result.backup_path:
        lines.append(f"  backup             : {result.backup_path}")
    return "\n".join(lines)


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option(
    "--pool",
    type=str,
    help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').",
)
@click.option(
    "--queues",
    default=DEFAULT_QUEUE_NAME,
    show_default=True,
    help="Comma-separated queue list to consume.",
)
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """
    Start the Celery worker in the current process.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)

    state = app.extensions.get("importer", {})
    if state is not None:
        state["worker_enabled"] = True

    argv = [
        "worker",
        "--loglevel",
        loglevel,
        "-Q",
        queues,
    ]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    pool_msg = f", pool: {pool}" if pool else ""
    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel}{pool_msg})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """
    Validate worker connectivity by executing the heartbeat task.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:  # pragma: no cover - surfacing unexpected errors
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    click.echo(json.dumps(payload, indent=2))


@importer_cli.command("run")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Path to the vault JSON file.",
)
@click.option(
    "--manager-rule",
    type=MANAGER_RULE_CHOICES,
    help="Primary manager rule. Defaults to the last detected rule, then IMPORTER_DEFAULT_MANAGER_RULE.",
)
@click.option(
    "--on-existing",
    type=DECISION_CHOICES,
    help="What to do when the store already holds data: abort, backup or overwrite.",
)
@click.option("--company-only", is_flag=True, help="Import reference data and departments only.")
@click.option(
    "--inline/--no-inline",
    default=True,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
@click.option("--progress", "show_progress", is_flag=True, help="Print stage progress to stderr (inline runs only).")
@click.option(
    "--summary-json",
    is_flag=True,
    help="Emit a machine-readable summary payload after completion (inline runs only).",
)
@click.pass_context
def importer_run(
    ctx,
    file_path: Path,
    manager_rule: Optional[str],
    on_existing: Optional[str],
    company_only: bool,
    inline: bool,
    show_progress: bool,
    summary_json: bool,
):
    """Import a vault file into the store."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException("Importer is disabled; enable it via IMPORTER_ENABLED before running.")

    if summary_json and not inline:
        raise click.ClickException("--summary-json is only available for --inline runs.")
    if company_only and manager_rule:
        raise click.ClickException("--manager-rule does not apply to --company-only imports.")

    vault_path = file_path.resolve()
    rule_value = manager_rule or (None if company_only else default_manager_rule().value)

    if not inline:
        celery_app = _resolve_celery(app)
        kwargs = {
            "file_path": str(vault_path),
            "manager_rule": rule_value,
            "on_existing": on_existing,
            "company_only": company_only,
        }
        try:
            async_result = celery_app.send_task("importer.pipeline.ingest_vault", kwargs=kwargs)
        except Exception as exc:  # pragma: no cover - broker failures
            raise click.ClickException(f"Failed to enqueue vault import: {exc}") from exc

        app.logger.info(
            "Vault import queued via CLI",
            extra={
                "importer_task_id": async_result.id,
                "importer_file": str(vault_path),
                "importer_company_only": company_only,
            },
        )
        click.echo(json.dumps({"task_id": async_result.id, "status": "queued", **kwargs}))
        return

    service = VaultImportService()
    progress = _echo_progress if show_progress else None
    if company_only:
        result = service.import_company_only(vault_path, decision=on_existing, progress=progress)
    else:
        result = service.import_vault(vault_path, manager_rule=rule_value, decision=on_existing, progress=progress)

    click.echo(_format_summary(result))
    if summary_json:
        click.echo(json.dumps(result.as_dict(), indent=2, sort_keys=True, default=str))
    if result.aborted:
        click.echo(result.error_message)
        return
    if not result.success:
        raise click.ClickException(result.error_message or "Vault import failed.")


@importer_cli.command("has-data")
@click.pass_context
def importer_has_data(ctx):
    """Exit with status 1 when the store is empty."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    if VaultImportService().has_data():
        click.echo("Vault store contains data.")
        return
    click.echo("Vault store is empty.")
    ctx.exit(1)


@importer_cli.command("detect-manager-rule")
@click.option("--sample-size", type=int, help="Persons to sample. Defaults to IMPORTER_DETECTION_SAMPLE_SIZE.")
@click.option("--no-remember", is_flag=True, help="Do not store the detected rule as the last used rule.")
@click.pass_context
def importer_detect_manager_rule(ctx, sample_size: Optional[int], no_remember: bool):
    """Guess which rule produced the stored primary managers."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    detector = PrimaryManagerDetector(sample_size=sample_size, remember=not no_remember)
    click.echo(json.dumps(detector.evaluate().as_dict(), indent=2))


@importer_cli.command("refresh-managers")
@click.option(
    "--rule",
    type=click.Choice(["contract", "department"], case_sensitive=False),
    help="Rule to apply. Defaults to the last detected rule, then IMPORTER_DEFAULT_MANAGER_RULE.",
)
@click.option("--department", "department_id", help="Only refresh persons with contracts in this department.")
@click.option("--source", help="Source of the department given with --department.")
@click.pass_context
def importer_refresh_managers(ctx, rule: Optional[str], department_id: Optional[str], source: Optional[str]):
    """Recompute stored primary managers with the given rule."""
    info = ctx.ensure_object(ScriptInfo)
    info.load_app()
    parsed = PrimaryManagerRule.parse(rule) if rule else default_manager_rule()
    if parsed is PrimaryManagerRule.FROM_JSON:
        raise click.ClickException(
            "No contract or department rule is remembered; pass --rule or run detect-manager-rule first."
        )
    service = PrimaryManagerService()
    try:
        if department_id:
            updated = service.refresh_for_department(department_id, source, parsed)
        else:
            updated = service.refresh_all(parsed)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise click.ClickException(f"Failed to refresh primary managers: {exc}") from exc
    click.echo(f"Updated primary manager for {updated} person(s) using the {parsed.value} rule.")
    click.echo(json.dumps(service.statistics(), indent=2))


@importer_cli.command("cleanup-uploads")
@click.option(
    "--max-age-hours",
    default=72,
    show_default=True,
    type=int,
    help="Remove importer uploads older than the specified number of hours.",
)
@click.pass_context
def importer_cleanup_uploads(ctx, max_age_hours: int):
    """
    Delete stale vault files from the configured upload directory.
    """

    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException("Importer is disabled; no uploads to clean up.")

    uploads_dir = resolve_upload_directory(app)
    cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
    removed = 0
    for path in uploads_dir.iterdir():
        if not path.is_file():
            continue
        try:
            modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
        except FileNotFoundError:  # pragma: no cover - race condition
            continue
        if modified < cutoff:
            cleanup_upload(path)
            removed += 1

    click.echo(f"Removed {removed} upload file(s) older than {max_age_hours} hours from {uploads_dir}.")
