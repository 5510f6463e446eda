"""
Department hierarchy table.

Parent and manager references are stored as plain identifiers. A parent id
that does not match any department of the same source is kept as written and
reported by the importer instead of being rejected by the database.
"""

from __future__ import annotations

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


class Department(BaseModel):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    code: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    parent_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    manager_person_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    source: Mapped[str | None] = mapped_column(db.String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("external_id", "source", name="uq_departments_external_source"),
        Index("idx_departments_parent_source", "parent_external_id", "source"),
    )

    def __repr__(self):
        return f"<Department {self.external_id} {self.display_name!r}>"
