"""
Reference master tables populated from the deduplicated contract references.

Every kind shares the same shape: a generated or source-provided external id,
an optional code, a display name and the source system that contributed it.
Rows are unique per ``(external_id, source)`` so the same external id may
exist once for every source.
"""

from __future__ import annotations

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from .base import BaseModel, db


class ReferenceMixin:
    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    name: Mapped[str] = mapped_column(db.String(500), nullable=False)
    source: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)

    @declared_attr.directive
    def __table_args__(cls):
        return (UniqueConstraint("external_id", "source", name=f"uq_{cls.__tablename__}_external_source"),)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.external_id} {self.name!r} source={self.source}>"


class Organization(ReferenceMixin, BaseModel):
    __tablename__ = "organizations"


class Location(ReferenceMixin, BaseModel):
    __tablename__ = "locations"


class Employer(ReferenceMixin, BaseModel):
    __tablename__ = "employers"


class CostCenter(ReferenceMixin, BaseModel):
    __tablename__ = "cost_centers"


class CostBearer(ReferenceMixin, BaseModel):
    __tablename__ = "cost_bearers"


class Team(ReferenceMixin, BaseModel):
    __tablename__ = "teams"


class Division(ReferenceMixin, BaseModel):
    __tablename__ = "divisions"


class Title(ReferenceMixin, BaseModel):
    __tablename__ = "titles"


REFERENCE_MODELS = {
    "organization": Organization,
    "location": Location,
    "employer": Employer,
    "cost_center": CostCenter,
    "cost_bearer": CostBearer,
    "team": Team,
    "division": Division,
    "title": Title,
}
