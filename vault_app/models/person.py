"""
Person and contact tables loaded from the vault ``Persons`` section.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class PrimaryManagerSource(str, enum.Enum):
    """Where the stored primary manager of a person came from."""

    CONTRACT = "contract"
    DEPARTMENT = "department"
    IMPORT = "import"


class ContactType(str, enum.Enum):
    PERSONAL = "Personal"
    BUSINESS = "Business"


class Person(BaseModel):
    __tablename__ = "persons"

    person_id: Mapped[str] = mapped_column(db.String(255), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    user_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    gender: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    honorific_prefix: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    honorific_suffix: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    birth_locality: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    marital_status: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    initials: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    given_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    nick_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    family_name: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    family_name_prefix: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    family_name_partner: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    family_name_partner_prefix: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    convention: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    blocked: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    status_reason: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    excluded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    hr_excluded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    manual_excluded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    primary_manager_person_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    primary_manager_source: Mapped[PrimaryManagerSource | None] = mapped_column(
        Enum(PrimaryManagerSource, name="primary_manager_source_enum"),
        nullable=True,
    )
    primary_manager_updated_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    source: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    custom_fields: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    contacts = relationship("Contact", back_populates="person", cascade="all, delete-orphan", passive_deletes=True)
    contracts = relationship("Contract", back_populates="person", passive_deletes=True)

    def __repr__(self):
        return f"<Person {self.person_id} {self.display_name!r}>"


class Contact(BaseModel):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[str] = mapped_column(
        ForeignKey("persons.person_id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[ContactType] = mapped_column(Enum(ContactType, name="contact_type_enum"), nullable=False)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    phone_mobile: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    phone_fixed: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_street: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address_house_number: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_postal: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    address_locality: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address_country: Mapped[str | None] = mapped_column(db.String(100), nullable=True)

    person = relationship("Person", back_populates="contacts")

    __table_args__ = (Index("idx_contacts_person_type", "person_id", "type"),)


class PersonContractSummary(BaseModel):
    """
    Derived projection of a person's contracts.

    Rebuilt by ``VaultPersistence.refresh_derived_cache`` after contract or
    manager changes; never written by the loader directly.
    """

    __tablename__ = "person_contract_summaries"

    person_id: Mapped[str] = mapped_column(
        ForeignKey("persons.person_id", ondelete="CASCADE"),
        primary_key=True,
    )
    contract_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    active_contract_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    primary_contract_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    department_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    title_external_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    earliest_start_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    latest_end_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
