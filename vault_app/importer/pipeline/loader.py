"""
Stage-by-stage loading of a parsed vault document into the store.

``VaultLoader`` owns the data-quality counters of a run and writes an
``ImportSkip`` row for every record it skips or repairs. The orchestrator
decides the order of stages and checks for cancellation between them.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import select

from vault_app.models import (
    REFERENCE_MODELS,
    Contact,
    ContactType,
    Contract,
    CustomFieldSchema,
    Department,
    ImportSkip,
    ImportSkipType,
    Person,
    PrimaryManagerSource,
    SourceSystem,
)

from .custom_fields import CONTRACTS_TABLE, PERSONS_TABLE, discover_custom_fields, iter_custom_values
from .departments import DepartmentOrder
from .document import VaultDocument
from .mapping import ContractMappingContext, map_contact, map_person
from .persistence import VaultPersistence
from .references import (
    DepartmentRecord,
    ReferenceDataContext,
    ReferenceKind,
    SourceSystemRecord,
    resolve_source,
)


@dataclass
class LoadCounters:
    created: Counter = field(default_factory=Counter)
    empty_manager_guids_replaced: int = 0
    invalid_department_parents: int = 0
    invalid_manager_references: int = 0
    duplicate_persons_skipped: int = 0
    duplicate_contracts_skipped: int = 0
    departments_skipped_no_source: int = 0
    custom_field_values: int = 0


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class VaultLoader:
    def __init__(
        self,
        persistence: VaultPersistence,
        *,
        run_id: int | None = None,
        source_lookup: dict[str, str] | None = None,
        counters: LoadCounters | None = None,
    ):
        self.persistence = persistence
        self.source_lookup = dict(source_lookup or {})
        self.session = persistence.session
        self.run_id = run_id
        self.counters = counters or LoadCounters()
        self.loaded_person_ids: set[str] = set()
        self.loaded_contract_ids: set[str] = set()

    # ------------------------------------------------------------------
    # Audit helpers
    # ------------------------------------------------------------------

    def _skip(
        self,
        entity_type: str,
        skip_type: ImportSkipType,
        reason: str,
        *,
        record_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        current_app.logger.warning(
            reason,
            extra={
                "importer_run_id": self.run_id,
                "importer_entity_type": entity_type,
                "importer_skip_type": skip_type.value,
                "importer_record_key": record_key,
            },
        )
        if self.run_id is None:
            return
        self.session.add(
            ImportSkip(
                run_id=self.run_id,
                entity_type=entity_type,
                skip_type=skip_type,
                skip_reason=reason,
                record_key=record_key,
                details_json=details,
            )
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def load_source_systems(self, systems: Iterable[SourceSystemRecord]) -> int:
        created = self.persistence.insert_or_ignore(SourceSystem, [system.as_row() for system in systems])
        self.counters.created["source_systems"] += created
        return created

    def load_references(self, context: ReferenceDataContext) -> dict[str, int]:
        created: dict[str, int] = {}
        for kind in ReferenceKind:
            model = REFERENCE_MODELS[kind.value]
            count = self.persistence.insert_or_ignore(model, context.references[kind].rows())
            created[kind.counter_key] = count
            self.counters.created[kind.counter_key] += count
        return created

    def load_persons(self, document: VaultDocument) -> int:
        """
        Insert persons in document order.

        The first record of a ``PersonId`` wins. Recorded primary managers
        that do not point at a person in the document are cleared.
        """

        valid_ids = {person.person_id for person in document.persons if not _blank(person.person_id)}
        source_lookup = self.source_lookup
        rows: list[dict[str, Any]] = []
        for person in document.persons:
            if _blank(person.person_id):
                continue
            if person.person_id in self.loaded_person_ids:
                self.counters.duplicate_persons_skipped += 1
                self._skip(
                    "person",
                    ImportSkipType.DUPLICATE_PERSON,
                    f"Duplicate person {person.person_id} skipped; the first record was kept.",
                    record_key=person.person_id,
                )
                continue
            row = map_person(person, source_lookup)
            manager_id = row["primary_manager_person_id"]
            if manager_id is not None and manager_id not in valid_ids:
                self.counters.invalid_manager_references += 1
                self._skip(
                    "person",
                    ImportSkipType.INVALID_MANAGER,
                    f"Person {person.person_id} references unknown manager {manager_id}; manager cleared.",
                    record_key=person.person_id,
                    details={"manager_person_id": manager_id},
                )
                row["primary_manager_person_id"] = None
            row["primary_manager_source"] = (
                PrimaryManagerSource.IMPORT if row["primary_manager_person_id"] is not None else None
            )
            self.loaded_person_ids.add(person.person_id)
            rows.append(row)

        created = self.persistence.bulk_insert(Person, rows)
        self.counters.created["persons"] += created
        return created

    def load_departments(self, order: DepartmentOrder, *, clear_managers: bool = False) -> int:
        dangling = {department.external_id for department in order.dangling_parents}
        rows: list[dict[str, Any]] = []
        for department in order.departments:
            row = department.as_row()
            if department.external_id in dangling:
                self.counters.invalid_department_parents += 1
                self._skip(
                    "department",
                    ImportSkipType.INVALID_DEPARTMENT_PARENT,
                    f"Department {department.external_id} references unknown parent "
                    f"{department.parent_external_id}; treated as a root.",
                    record_key=department.external_id,
                    details={"parent_external_id": department.parent_external_id},
                )
            manager_id = row["manager_person_id"]
            if clear_managers:
                row["manager_person_id"] = None
            elif manager_id is not None and manager_id not in self.loaded_person_ids:
                self.counters.invalid_manager_references += 1
                self._skip(
                    "department",
                    ImportSkipType.INVALID_MANAGER,
                    f"Department {department.external_id} references unknown manager {manager_id}; manager cleared.",
                    record_key=department.external_id,
                    details={"manager_person_id": manager_id},
                )
                row["manager_person_id"] = None
            rows.append(row)

        created = self.persistence.insert_or_ignore(Department, rows)
        self.counters.created["departments"] += created
        return created

    def record_skipped_departments(self, count: int) -> None:
        self.counters.departments_skipped_no_source += count
        if count:
            self._skip(
                "department",
                ImportSkipType.MISSING_SOURCE,
                f"{count} department(s) skipped because their source system is unknown.",
                details={"count": count},
            )

    def auto_create_departments(self, document: VaultDocument) -> int:
        """Create departments that contracts reference but the store lacks."""

        existing = {
            (external_id, source)
            for external_id, source in self.session.execute(select(Department.external_id, Department.source)).all()
        }
        source_lookup = self.source_lookup
        rows: list[dict[str, Any]] = []
        for _, contract in document.iter_contracts():
            department = contract.department
            if department is None or _blank(department.external_id):
                continue
            source = resolve_source(contract.source, source_lookup)
            if source is None:
                continue
            key = (department.external_id, source)
            if key in existing:
                continue
            existing.add(key)
            rows.append(
                DepartmentRecord(
                    external_id=department.external_id,
                    display_name=department.display_name or "",
                    code=None,
                    parent_external_id=None,
                    manager_person_id=None,
                    source=source,
                ).as_row()
            )

        created = self.persistence.insert_or_ignore(Department, rows)
        self.counters.created["departments_auto_created"] += created
        if created:
            current_app.logger.info(
                "Auto-created %s department(s) referenced only by contracts",
                created,
                extra={"importer_run_id": self.run_id, "importer_departments_auto_created": created},
            )
        return created

    def load_contacts(self, document: VaultDocument) -> int:
        rows: list[dict[str, Any]] = []
        emitted: set[str] = set()
        for person in document.persons:
            if person.person_id not in self.loaded_person_ids or person.person_id in emitted:
                continue
            emitted.add(person.person_id)
            for contact_type, contact in (
                (ContactType.PERSONAL, person.personal_contact),
                (ContactType.BUSINESS, person.business_contact),
            ):
                row = map_contact(person.person_id, contact_type, contact)
                if row is not None:
                    rows.append(row)

        created = self.persistence.bulk_insert(Contact, rows)
        self.counters.created["contacts"] += created
        return created

    def load_contracts(self, document: VaultDocument, mapping: ContractMappingContext) -> int:
        rows: list[dict[str, Any]] = []
        for person, contract in document.iter_contracts():
            if person.person_id not in self.loaded_person_ids:
                continue
            if _blank(contract.external_id):
                continue
            if contract.external_id in self.loaded_contract_ids:
                self.counters.duplicate_contracts_skipped += 1
                self._skip(
                    "contract",
                    ImportSkipType.DUPLICATE_CONTRACT,
                    f"Duplicate contract {contract.external_id} skipped; the first record was kept.",
                    record_key=contract.external_id,
                    details={"person_id": person.person_id},
                )
                continue
            self.loaded_contract_ids.add(contract.external_id)
            rows.append(mapping.map_contract(person.person_id, contract))

        self.counters.empty_manager_guids_replaced = mapping.empty_manager_guids_replaced
        created = self.persistence.bulk_insert(Contract, rows)
        self.counters.created["contracts"] += created
        return created

    def load_custom_fields(self, document: VaultDocument) -> int:
        definitions = discover_custom_fields(document)
        for table_name in (PERSONS_TABLE, CONTRACTS_TABLE):
            rows = [definition.as_row() for definition in definitions if definition.table_name == table_name]
            created = self.persistence.insert_or_ignore(CustomFieldSchema, rows)
            self.counters.created[f"custom_field_schemas_{table_name}"] += created

        written = 0
        seen_persons: set[str] = set()
        seen_contracts: set[str] = set()
        for person in document.persons:
            if person.person_id in self.loaded_person_ids and person.person_id not in seen_persons:
                seen_persons.add(person.person_id)
                written += self._merge_values(PERSONS_TABLE, person.person_id, person)
            for contract in person.contracts:
                if contract.external_id not in self.loaded_contract_ids or contract.external_id in seen_contracts:
                    continue
                seen_contracts.add(contract.external_id)
                written += self._merge_values(CONTRACTS_TABLE, contract.external_id, contract)
        self.persistence.commit_batch()
        self.counters.custom_field_values += written
        return written

    def _merge_values(self, table: str, entity_id: str, record) -> int:
        if not record.custom:
            return 0
        return self.persistence.merge_custom_fields(table, entity_id, dict(iter_custom_values(record.custom)))

    def refresh_derived_cache(self, *, profile=None) -> int:
        refreshed = 0
        for person_id in sorted(self.loaded_person_ids):
            self.persistence.refresh_derived_cache(person_id, profile=profile)
            refreshed += 1
        self.persistence.commit_batch()
        return refreshed

