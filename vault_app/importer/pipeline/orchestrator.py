"""
Vault import orchestration.

``VaultImportService`` runs the whole import for one document: it checks the
store for existing data and applies the caller's decision, loads every stage
in dependency order, validates contract references after load and finally
applies or detects the primary manager rule. Progress is reported at stage
boundaries and a cancel event is honoured between stages. Failures never
propagate; they end up on the returned ``ImportResult``.
"""

from __future__ import annotations

import enum
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

from flask import current_app

from config.primary_contract import load_profile
from vault_app.importer.metrics import record_import_run
from vault_app.models import ImportRun, ImportRunStatus, db

from .departments import sort_departments
from .document import VaultDocument, load_vault_document
from .errors import MissingPersonsSection, describe_import_error, log_import_exception
from .integrity import validate_contract_references
from .loader import LoadCounters, VaultLoader
from .managers import PrimaryManagerDetector, PrimaryManagerRule, PrimaryManagerService, default_manager_rule
from .mapping import ContractMappingContext
from .persistence import VaultPersistence
from .references import build_source_lookup, collect_reference_data, collect_source_systems
from .store import VaultStoreManager

IMPORT_SOURCE = "vault"
ABORTED_MESSAGE = "Import cancelled: existing data was kept."
CANCELLED_MESSAGE = "Import cancelled by user. Data written before the cancellation was kept."
DECISION_REQUIRED_MESSAGE = (
    "The vault store already contains data. Choose abort, backup or overwrite to continue."
)


class ExistingDataDecision(str, enum.Enum):
    ABORT = "abort"
    BACKUP_AND_OVERWRITE = "backup"
    OVERWRITE = "overwrite"

    @classmethod
    def parse(cls, value: "ExistingDataDecision | str | None") -> "ExistingDataDecision | None":
        if value is None or isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for decision in cls:
            if decision.value == normalized or decision.name.lower() == normalized:
                return decision
        raise ValueError(f"Unknown existing data decision {value!r}")


class CancelEvent(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class ImportProgress:
    percentage: int
    phase: str
    total_items: int = 0
    processed_items: int = 0


ProgressCallback = Callable[[ImportProgress], None]


@dataclass
class ImportResult:
    success: bool = False
    cancelled: bool = False
    aborted: bool = False
    error_message: str | None = None
    duration_seconds: float = 0.0
    run_id: int | None = None
    mode: str = "full"
    backup_path: str | None = None
    created_counts: dict[str, int] = field(default_factory=dict)
    orphaned_counts: dict[str, int] = field(default_factory=dict)
    orphan_samples: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    empty_manager_guids_replaced: int = 0
    invalid_department_parents: int = 0
    invalid_manager_references: int = 0
    duplicate_persons_skipped: int = 0
    duplicate_contracts_skipped: int = 0
    departments_skipped_no_source: int = 0
    custom_field_values: int = 0
    primary_managers_updated: int = 0
    detected_manager_rule: str | None = None
    manager_rule_tie_break_applied: bool = False
    stages_completed: list[str] = field(default_factory=list)

    @property
    def total_orphans(self) -> int:
        return sum(self.orphaned_counts.values())

    def apply_counters(self, counters: LoadCounters) -> None:
        self.created_counts = dict(counters.created)
        self.empty_manager_guids_replaced = counters.empty_manager_guids_replaced
        self.invalid_department_parents = counters.invalid_department_parents
        self.invalid_manager_references = counters.invalid_manager_references
        self.duplicate_persons_skipped = counters.duplicate_persons_skipped
        self.duplicate_contracts_skipped = counters.duplicate_contracts_skipped
        self.departments_skipped_no_source = counters.departments_skipped_no_source
        self.custom_field_values = counters.custom_field_values

    def quality_counters(self) -> dict[str, int]:
        return {
            "empty_manager_guids_replaced": self.empty_manager_guids_replaced,
            "invalid_department_parents": self.invalid_department_parents,
            "invalid_manager_references": self.invalid_manager_references,
            "duplicate_persons_skipped": self.duplicate_persons_skipped,
            "duplicate_contracts_skipped": self.duplicate_contracts_skipped,
            "departments_skipped_no_source": self.departments_skipped_no_source,
            "custom_field_values": self.custom_field_values,
            "primary_managers_updated": self.primary_managers_updated,
        }

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["total_orphans"] = self.total_orphans
        return payload


class _Cancelled(Exception):
    """Internal signal raised at a stage boundary when cancellation was requested."""


class _ProgressReporter:
    def __init__(self, callback: ProgressCallback | None, total_stages: int):
        self.callback = callback
        self.total_stages = total_stages
        self.processed = 0
        self.percentage = 0
        self.stage = "read_document"

    def begin(self, stage: str, percentage: int, phase: str) -> None:
        self.stage = stage
        self.report(percentage, phase)

    def report(self, percentage: int, phase: str) -> None:
        self.percentage = max(self.percentage, min(percentage, 100))
        if self.callback is None:
            return
        self.callback(
            ImportProgress(
                percentage=self.percentage,
                phase=phase,
                total_items=self.total_stages,
                processed_items=self.processed,
            )
        )


class VaultImportService:
    """Run vault imports against the configured store."""

    def __init__(self, session=None, *, store: VaultStoreManager | None = None):
        self.session = session if session is not None else db.session
        self.store = store or VaultStoreManager(self.session)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def has_data(self) -> bool:
        return self.store.has_data()

    def detect_primary_manager_rule(self) -> PrimaryManagerRule | None:
        return PrimaryManagerDetector(PrimaryManagerService(self.session)).detect()

    def import_vault(
        self,
        path: str | Path,
        manager_rule: PrimaryManagerRule | str | None = None,
        decision: ExistingDataDecision | str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> ImportResult:
        """Import persons, contracts and all reference data from a vault file."""

        return self._run(
            path,
            company_only=False,
            manager_rule=manager_rule,
            decision=decision,
            progress=progress,
            cancel_event=cancel_event,
        )

    def import_company_only(
        self,
        path: str | Path,
        decision: ExistingDataDecision | str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> ImportResult:
        """Import reference data and departments only; department managers are cleared."""

        return self._run(
            path,
            company_only=True,
            manager_rule=None,
            decision=decision,
            progress=progress,
            cancel_event=cancel_event,
        )

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _run(
        self,
        path: str | Path,
        *,
        company_only: bool,
        manager_rule: PrimaryManagerRule | str | None,
        decision: ExistingDataDecision | str | None,
        progress: ProgressCallback | None,
        cancel_event: CancelEvent | None,
    ) -> ImportResult:
        started = time.monotonic()
        mode = "company_only" if company_only else "full"
        result = ImportResult(mode=mode)
        reporter = _ProgressReporter(progress, total_stages=9 if company_only else 14)
        run: ImportRun | None = None

        try:
            decision = ExistingDataDecision.parse(decision)
            rule = None if company_only else self._resolve_rule(manager_rule)

            reporter.begin("read_document", 2, "Reading vault file")
            document = load_vault_document(path)
            if not company_only and (not document.has_persons_section or not document.persons):
                raise MissingPersonsSection()
            self._stage_done(result, reporter, cancel_event)

            reporter.begin("check_existing_data", 5, "Checking for existing data")
            if self.store.has_data():
                if decision is None:
                    result.error_message = DECISION_REQUIRED_MESSAGE
                    return self._finish(result, started)
                if decision is ExistingDataDecision.ABORT:
                    result.aborted = True
                    result.error_message = ABORTED_MESSAGE
                    current_app.logger.info(ABORTED_MESSAGE, extra={"importer_decision": decision.value})
                    return self._finish(result, started)
            else:
                decision = None
            self._stage_done(result, reporter, cancel_event)

            run = self._start_run(path, mode=mode, rule=rule, decision=decision)
            result.run_id = run.id

            if decision is ExistingDataDecision.BACKUP_AND_OVERWRITE:
                reporter.begin("backup", 8, "Backing up existing data")
                backup_path = self.store.backup_store()
                result.backup_path = str(backup_path)
                run.backup_path = str(backup_path)
                self.session.commit()
                self._stage_done(result, reporter, cancel_event)
            if decision is not None:
                reporter.begin("delete_existing_data", 10, "Removing existing data")
                self.store.delete_store()
                self._stage_done(result, reporter, cancel_event)

            self._load(document, run, result, reporter, cancel_event, company_only=company_only, rule=rule)

            result.success = True
            reporter.report(100, "Import completed")
            self._complete_run(run, result, ImportRunStatus.SUCCEEDED)
        except _Cancelled:
            result.cancelled = True
            result.error_message = CANCELLED_MESSAGE
            if run is not None:
                self._complete_run(run, result, ImportRunStatus.CANCELLED)
            current_app.logger.warning(
                "Vault import cancelled after %s",
                reporter.stage,
                extra={"importer_run_id": result.run_id, "importer_stages_completed": result.stages_completed},
            )
        except Exception as exc:
            self.session.rollback()
            result.error_message = describe_import_error(exc, reporter.stage)
            log_import_exception(exc, reporter.stage, context=str(path))
            self._fail_run(result)
        return self._finish(result, started)

    def _load(
        self,
        document: VaultDocument,
        run: ImportRun,
        result: ImportResult,
        reporter: _ProgressReporter,
        cancel_event: CancelEvent | None,
        *,
        company_only: bool,
        rule: PrimaryManagerRule | None,
    ) -> None:
        persistence = VaultPersistence(self.session)
        systems = collect_source_systems(document, company_only=company_only)
        source_lookup = build_source_lookup(systems)
        loader = VaultLoader(persistence, run_id=run.id, source_lookup=source_lookup)

        reporter.begin("source_systems", 15, "Importing source systems")
        loader.load_source_systems(systems)
        self._stage_done(result, reporter, cancel_event, loader)

        reporter.begin("reference_data", 25, "Importing reference data")
        reference_data = collect_reference_data(document, source_lookup)
        loader.load_references(reference_data)
        self._stage_done(result, reporter, cancel_event, loader)

        if not company_only:
            reporter.begin("persons", 35, "Importing persons")
            loader.load_persons(document)
            self._stage_done(result, reporter, cancel_event, loader)

        reporter.begin("departments", 45, "Importing departments")
        order = sort_departments(reference_data.departments)
        loader.record_skipped_departments(reference_data.departments_skipped_no_source)
        loader.load_departments(order, clear_managers=company_only)
        loader.auto_create_departments(document)
        self._stage_done(result, reporter, cancel_event, loader)

        mapping = ContractMappingContext(
            reference_data,
            sample_limit=current_app.config.get("IMPORTER_ORPHAN_SAMPLE_LIMIT", 10),
        )
        if not company_only:
            reporter.begin("contacts", 55, "Importing contacts")
            loader.load_contacts(document)
            self._stage_done(result, reporter, cancel_event, loader)

            reporter.begin("contracts", 65, "Importing contracts")
            loader.load_contracts(document, mapping)
            self._stage_done(result, reporter, cancel_event, loader)

        reporter.begin("validate_references", 75, "Validating references")
        self._validate(result, mapping)
        self._stage_done(result, reporter, cancel_event, loader)

        if company_only:
            return

        reporter.begin("primary_managers", 85, "Applying primary manager rule")
        self._apply_manager_rule(result, rule, persistence)
        self._stage_done(result, reporter, cancel_event, loader)

        reporter.begin("custom_fields", 92, "Importing custom fields")
        loader.load_custom_fields(document)
        self._stage_done(result, reporter, cancel_event, loader)

        reporter.begin("derived_cache", 97, "Refreshing contract summaries")
        loader.refresh_derived_cache(profile=load_profile(current_app.config))
        self._stage_done(result, reporter, cancel_event, loader)

    def _stage_done(
        self,
        result: ImportResult,
        reporter: _ProgressReporter,
        cancel_event: CancelEvent | None,
        loader: VaultLoader | None = None,
    ) -> None:
        result.stages_completed.append(reporter.stage)
        reporter.processed += 1
        if loader is not None:
            loader.persistence.commit_batch()
            result.apply_counters(loader.counters)
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _resolve_rule(self, manager_rule: PrimaryManagerRule | str | None) -> PrimaryManagerRule:
        if manager_rule is None:
            return default_manager_rule()
        return PrimaryManagerRule.parse(manager_rule)

    def _validate(self, result: ImportResult, mapping: ContractMappingContext) -> None:
        sample_limit = current_app.config.get("IMPORTER_ORPHAN_SAMPLE_LIMIT", 10)
        report = validate_contract_references(self.session, sample_limit=sample_limit)
        orphaned = dict(report.counts)
        samples = {kind: [sample.as_dict() for sample in rows] for kind, rows in report.samples.items()}
        for kind, count in mapping.unresolved_counts.items():
            orphaned[kind.counter_key] = orphaned.get(kind.counter_key, 0) + count
        for sample in mapping.unresolved_samples:
            bucket = samples.setdefault(sample.kind.counter_key, [])
            if len(bucket) < sample_limit:
                bucket.append(sample.as_dict())
        result.orphaned_counts = orphaned
        result.orphan_samples = samples

        for kind, count in orphaned.items():
            if not count:
                continue
            current_app.logger.warning(
                "Found %s orphaned %s reference(s) after load",
                count,
                kind,
                extra={
                    "importer_run_id": result.run_id,
                    "importer_orphan_kind": kind,
                    "importer_orphan_count": count,
                    "importer_orphan_samples": samples.get(kind, []),
                },
            )

    def _apply_manager_rule(
        self,
        result: ImportResult,
        rule: PrimaryManagerRule | None,
        persistence: VaultPersistence,
    ) -> None:
        service = PrimaryManagerService(self.session)
        if rule in (PrimaryManagerRule.CONTRACT_BASED, PrimaryManagerRule.DEPARTMENT_BASED):
            result.primary_managers_updated = service.refresh_all(rule)
            persistence.commit_batch()
            return

        # Loaded rows must survive a rollback of a failed detection.
        self.session.commit()
        try:
            detection = PrimaryManagerDetector(service).evaluate()
        except Exception as exc:
            self.session.rollback()
            current_app.logger.warning(
                "Primary manager rule detection failed: %s",
                exc,
                extra={"importer_run_id": result.run_id, "importer_stage": "primary_managers"},
            )
            return
        result.detected_manager_rule = detection.rule.value if detection.rule else None
        result.manager_rule_tie_break_applied = detection.tie_break_applied

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def _start_run(
        self,
        path: str | Path,
        *,
        mode: str,
        rule: PrimaryManagerRule | None,
        decision: ExistingDataDecision | None,
    ) -> ImportRun:
        run = ImportRun(
            source=IMPORT_SOURCE,
            mode=mode,
            status=ImportRunStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
            ingest_params_json={
                "file_path": str(path),
                "manager_rule": rule.value if rule else None,
                "on_existing": decision.value if decision else None,
                "company_only": mode == "company_only",
            },
        )
        self.session.add(run)
        self.session.commit()
        current_app.logger.info(
            "Vault import started",
            extra={"importer_run_id": run.id, "importer_mode": mode, "importer_file": str(path)},
        )
        return run

    def _complete_run(self, run: ImportRun, result: ImportResult, status: ImportRunStatus) -> None:
        run.status = status
        run.finished_at = datetime.now(timezone.utc)
        run.counts_json = dict(result.created_counts)
        run.metrics_json = result.quality_counters()
        run.anomaly_flags = {"orphaned_counts": dict(result.orphaned_counts)} if result.total_orphans else None
        if result.detected_manager_rule:
            run.notes = f"Detected primary manager rule: {result.detected_manager_rule}"
        self.session.commit()
        current_app.logger.info(
            "Vault import finished",
            extra={
                "importer_run_id": run.id,
                "importer_status": status.value,
                "importer_created": run.counts_json,
                "importer_orphans": result.total_orphans,
            },
        )

    def _fail_run(self, result: ImportResult) -> None:
        if result.run_id is None:
            return
        recovery_run = self.session.get(ImportRun, result.run_id)
        if recovery_run is None:
            return
        recovery_run.status = ImportRunStatus.FAILED
        recovery_run.error_summary = result.error_message
        recovery_run.finished_at = datetime.now(timezone.utc)
        recovery_run.counts_json = dict(result.created_counts)
        recovery_run.metrics_json = result.quality_counters()
        self.session.commit()

    def _finish(self, result: ImportResult, started: float) -> ImportResult:
        result.duration_seconds = round(time.monotonic() - started, 3)
        if result.success:
            status = ImportRunStatus.SUCCEEDED.value
        elif result.cancelled or result.aborted:
            status = ImportRunStatus.CANCELLED.value
        else:
            status = ImportRunStatus.FAILED.value
        record_import_run(
            status=status,
            mode=result.mode,
            duration_seconds=result.duration_seconds,
            created_counts=result.created_counts,
            orphaned_counts=result.orphaned_counts,
        )
        return result


__all__ = [
    "ABORTED_MESSAGE",
    "CANCELLED_MESSAGE",
    "DECISION_REQUIRED_MESSAGE",
    "ExistingDataDecision",
    "ImportProgress",
    "ImportResult",
    "VaultImportService",
]
