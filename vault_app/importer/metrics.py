"""Prometheus metrics helpers for the vault importer."""

from __future__ import annotations

from typing import Mapping

from prometheus_client import Counter, Gauge, Histogram

_worker_enabled_gauge = Gauge(
    "vault_importer_worker_enabled",
    "Whether the importer Celery worker is enabled (1) or disabled (0).",
)
_runs_counter = Counter(
    "vault_import_runs_total",
    "Vault import runs by final status.",
    ["status", "mode"],
)
_run_duration = Histogram(
    "vault_import_run_duration_seconds",
    "Duration of vault import runs in seconds.",
    ["mode"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
)
_entities_created = Counter(
    "vault_import_entities_created_total",
    "Rows created by vault imports per entity kind.",
    ["kind"],
)
_orphaned_references = Counter(
    "vault_import_orphaned_references_total",
    "Contract references without a master row after load, per kind.",
    ["kind"],
)


def record_worker_status(enabled: bool) -> None:
    _worker_enabled_gauge.set(1 if enabled else 0)


def record_import_run(
    *,
    status: str,
    mode: str,
    duration_seconds: float,
    created_counts: Mapping[str, int] | None = None,
    orphaned_counts: Mapping[str, int] | None = None,
) -> None:
    """Capture metrics for one finished vault import."""

    _runs_counter.labels(status=status, mode=mode).inc()
    _run_duration.labels(mode=mode).observe(max(duration_seconds, 0.0))
    for kind, count in (created_counts or {}).items():
        if count:
            _entities_created.labels(kind=kind).inc(count)
    for kind, count in (orphaned_counts or {}).items():
        if count:
            _orphaned_references.labels(kind=kind).inc(count)
