"""
SQLAlchemy models for the vault import audit trail.

An ``ImportRun`` row is written for every import that passes the existing
data check; ``ImportSkip`` rows keep the records the loader skipped or the
validator flagged so operators can review them after the run.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ImportRun(BaseModel):
    """Metadata describing a single vault import execution."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    mode: Mapped[str] = mapped_column(db.String(50), nullable=False, default="full")
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    metrics_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    anomaly_flags: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    ingest_params_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Stored parameters for retry support (file_path, manager_rule, on_existing, company_only)",
    )
    backup_path: Mapped[str | None] = mapped_column(db.String(1024), nullable=True)

    import_skips = relationship(
        "ImportSkip",
        back_populates="import_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_import_runs_source_status", "source", "status"),)


class ImportSkipType(str, enum.Enum):
    """Reasons a record was skipped, repaired or flagged during a vault import."""

    DUPLICATE_PERSON = "duplicate_person"
    DUPLICATE_CONTRACT = "duplicate_contract"
    MISSING_SOURCE = "missing_source"
    INVALID_DEPARTMENT_PARENT = "invalid_department_parent"
    INVALID_MANAGER = "invalid_manager"
    ORPHANED_REFERENCE = "orphaned_reference"


class ImportSkip(BaseModel):
    """A single record-level finding attached to an import run."""

    __tablename__ = "import_skips"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("import_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    skip_type: Mapped[ImportSkipType] = mapped_column(
        Enum(ImportSkipType, name="import_skip_type_enum"),
        nullable=False,
        index=True,
    )
    skip_reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    record_key: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    details_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    import_run = relationship("ImportRun", back_populates="import_skips")

    __table_args__ = (
        Index("idx_import_skips_run_type", "run_id", "skip_type"),
        Index("idx_import_skips_entity_type", "entity_type"),
    )
