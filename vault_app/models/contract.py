"""
Employment contracts with their resolved reference foreign keys.

Reference columns are soft references: the importer writes whatever the
mapping context resolved and the integrity validator reports rows whose
``(<kind>_external_id, source)`` pair has no master row.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class Contract(BaseModel):
    __tablename__ = "contracts"

    contract_id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(db.String(255), nullable=False, unique=True)
    person_id: Mapped[str] = mapped_column(
        ForeignKey("persons.person_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    type_code: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    type_description: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    fte: Mapped[float | None] = mapped_column(db.Float, nullable=True)
    hours_per_week: Mapped[float | None] = mapped_column(db.Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(db.Float, nullable=True)
    sequence: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    manager_person_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)

    location_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    location_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    cost_center_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    cost_center_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    cost_bearer_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    cost_bearer_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    employer_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    employer_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    team_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    team_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    division_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    division_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    title_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    title_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    organization_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    organization_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    department_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    department_source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)

    source: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    custom_fields: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    person = relationship("Person", back_populates="contracts")

    __table_args__ = (Index("idx_contracts_department_source", "department_external_id", "source"),)

    def __repr__(self):
        return f"<Contract {self.external_id} person={self.person_id}>"
