"""Post-load referential integrity checks for contract foreign keys."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import and_, exists, func, select

from vault_app.models import REFERENCE_MODELS, Contract, Department, db

from .references import ReferenceKind

DEPARTMENTS_KIND = "departments"
DEFAULT_SAMPLE_LIMIT = 10


@dataclass(frozen=True)
class OrphanSample:
    contract_external_id: str
    reference_external_id: str
    source: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "contract_external_id": self.contract_external_id,
            "reference_external_id": self.reference_external_id,
            "source": self.source,
        }


@dataclass
class IntegrityReport:
    counts: dict[str, int] = field(default_factory=dict)
    samples: dict[str, list[OrphanSample]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def is_clean(self) -> bool:
        return self.total == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "counts": dict(self.counts),
            "samples": {kind: [sample.as_dict() for sample in rows] for kind, rows in self.samples.items()},
        }


def _checks() -> Mapping[str, tuple[Any, Any, Any]]:
    """Kind label -> (master model, contract FK column, contract source column)."""

    checks: dict[str, tuple[Any, Any, Any]] = {}
    for kind in ReferenceKind:
        checks[kind.counter_key] = (
            REFERENCE_MODELS[kind.value],
            getattr(Contract, kind.fk_column),
            getattr(Contract, kind.source_column),
        )
    checks[DEPARTMENTS_KIND] = (Department, Contract.department_external_id, Contract.department_source)
    return checks


def validate_contract_references(session=None, *, sample_limit: int = DEFAULT_SAMPLE_LIMIT) -> IntegrityReport:
    """
    Count contract foreign keys with no master row under the same source.

    Only non-null keys are checked. Orphans are reported, never repaired.
    """

    session = session if session is not None else db.session
    report = IntegrityReport()
    for label, (model, fk_column, source_column) in _checks().items():
        orphaned = and_(
            fk_column.is_not(None),
            ~exists().where(model.external_id == fk_column, model.source.is_not_distinct_from(source_column)),
        )
        count = session.execute(select(func.count()).select_from(Contract).where(orphaned)).scalar_one()
        report.counts[label] = count
        if not count:
            continue
        rows = session.execute(
            select(Contract.external_id, fk_column, source_column)
            .where(orphaned)
            .order_by(Contract.contract_id)
            .limit(sample_limit)
        ).all()
        report.samples[label] = [
            OrphanSample(contract_external_id=row[0], reference_external_id=row[1], source=row[2]) for row in rows
        ]
    return report
