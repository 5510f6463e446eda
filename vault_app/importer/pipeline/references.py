"""
Reference data collection and deduplication.

Contracts repeat the same locations, employers, titles and so on thousands of
times. This module walks the document once, collapses those sightings into
canonical entities keyed by ``name|source`` and seals the result into a
read-only ``ReferenceDataContext`` that the contract mapper consumes.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping
from uuid import uuid4

from flask import current_app, has_app_context

from .document import EMPTY_GUID, DepartmentRef, ReferenceRef, SourceRef, VaultDocument

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TOKEN = "default"


class ReferenceKind(str, enum.Enum):
    """The eight contract reference kinds backed by a master table."""

    ORGANIZATION = "organization"
    LOCATION = "location"
    EMPLOYER = "employer"
    COST_CENTER = "cost_center"
    COST_BEARER = "cost_bearer"
    TEAM = "team"
    DIVISION = "division"
    TITLE = "title"

    @property
    def table_name(self) -> str:
        return _TABLE_NAMES[self]

    @property
    def fk_column(self) -> str:
        """Contract column holding the resolved external id."""
        return f"{self.value}_external_id"

    @property
    def source_column(self) -> str:
        return f"{self.value}_source"

    @property
    def counter_key(self) -> str:
        return self.table_name


_TABLE_NAMES = {
    ReferenceKind.ORGANIZATION: "organizations",
    ReferenceKind.LOCATION: "locations",
    ReferenceKind.EMPLOYER: "employers",
    ReferenceKind.COST_CENTER: "cost_centers",
    ReferenceKind.COST_BEARER: "cost_bearers",
    ReferenceKind.TEAM: "teams",
    ReferenceKind.DIVISION: "divisions",
    ReferenceKind.TITLE: "titles",
}


def _logger():
    return current_app.logger if has_app_context() else logger


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def composite_key(name: str, source: str | None) -> str:
    """Key used by the seen maps; a missing source falls back to ``default``."""

    source_token = source if not _blank(source) else DEFAULT_SOURCE_TOKEN
    return f"{name}|{source_token}"


@dataclass(frozen=True, eq=False)
class ReferenceEntity:
    """
    A canonical reference entity.

    Identity is ``(external_id, name)``; ``code`` and ``source`` ride along
    but never take part in equality.
    """

    external_id: str
    name: str
    code: str | None = None
    source: str | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReferenceEntity):
            return NotImplemented
        return (self.external_id, self.name) == (other.external_id, other.name)

    def __hash__(self) -> int:
        return hash((self.external_id, self.name))

    def as_row(self) -> dict[str, str | None]:
        return {
            "external_id": self.external_id,
            "code": self.code,
            "name": self.name,
            "source": self.source,
        }


@dataclass(frozen=True)
class DeduplicationResult:
    entities: tuple[ReferenceEntity, ...]
    seen: Mapping[str, ReferenceEntity]

    def rows(self) -> list[dict[str, str | None]]:
        """
        Master-table rows, one per ``(external_id, source)`` pair.

        Entities that compare equal but were sighted under different sources
        still need a row per source so contracts of both sources resolve.
        """
        rows: list[dict[str, str | None]] = []
        emitted: set[tuple[str, str | None]] = set()
        for entity in self.seen.values():
            row_key = (entity.external_id, entity.source)
            if row_key in emitted:
                continue
            emitted.add(row_key)
            rows.append(entity.as_row())
        return rows


def _new_identifier() -> str:
    return str(uuid4())


def deduplicate_references(
    sightings: Iterable[tuple[ReferenceRef | None, str | None]],
    *,
    id_factory: Callable[[], str] = _new_identifier,
) -> DeduplicationResult:
    """
    Collapse reference sightings of one kind into canonical entities.

    ``sightings`` yields ``(reference, source)`` pairs in document order. The
    first sighting of a ``name|source`` key wins; blank names are dropped.
    """

    canonical: dict[ReferenceEntity, ReferenceEntity] = {}
    seen: dict[str, ReferenceEntity] = {}
    for reference, source in sightings:
        if reference is None or _blank(reference.name):
            continue
        key = composite_key(reference.name, source)
        if key in seen:
            continue
        external_id = reference.external_id if not _blank(reference.external_id) else id_factory()
        entity = ReferenceEntity(
            external_id=external_id,
            name=reference.name,
            code=reference.code,
            source=source if not _blank(source) else None,
        )
        seen[key] = entity
        canonical.setdefault(entity, entity)
    return DeduplicationResult(entities=tuple(canonical), seen=MappingProxyType(seen))


# ---------------------------------------------------------------------------
# Source systems
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceSystemRecord:
    system_id: str
    display_name: str
    identification_key: str

    def as_row(self) -> dict[str, str]:
        return {
            "system_id": self.system_id,
            "display_name": self.display_name,
            "identification_key": self.identification_key,
        }


def collect_source_systems(document: VaultDocument, *, company_only: bool = False) -> tuple[SourceSystemRecord, ...]:
    """
    Collect declared source systems, first sighting per ``system_id`` wins.

    Persons are only considered for full imports; contracts and root
    departments are always walked.
    """

    collected: dict[str, SourceSystemRecord] = {}

    def _add(source: SourceRef | None) -> None:
        if source is None or _blank(source.system_id) or source.system_id in collected:
            return
        collected[source.system_id] = SourceSystemRecord(
            system_id=source.system_id,
            display_name=source.display_name if source.display_name is not None else "Unknown",
            identification_key=(
                source.identification_key if source.identification_key is not None else source.system_id
            ),
        )

    if not company_only:
        for person in document.persons:
            _add(person.source)
    for _, contract in document.iter_contracts():
        _add(contract.source)
    for department in document.departments:
        _add(department.source)
    return tuple(collected.values())


def build_source_lookup(systems: Iterable[SourceSystemRecord]) -> dict[str, str]:
    """Map each source system id to the label used in composite keys."""

    return {system.system_id: system.system_id for system in systems}


def resolve_source(source: SourceRef | None, source_lookup: Mapping[str, str]) -> str | None:
    if source is None:
        return None
    return source_lookup.get(source.system_id)


def normalize_manager_id(person_id: str | None) -> str | None:
    """Return None for blank ids and the all-zero GUID placeholder."""

    if _blank(person_id) or person_id.strip() == EMPTY_GUID:
        return None
    return person_id


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DepartmentRecord:
    external_id: str
    display_name: str
    code: str | None
    parent_external_id: str | None
    manager_person_id: str | None
    source: str

    def as_row(self) -> dict[str, str | None]:
        return {
            "external_id": self.external_id,
            "display_name": self.display_name,
            "code": self.code,
            "parent_external_id": self.parent_external_id,
            "manager_person_id": self.manager_person_id,
            "source": self.source,
        }


def _map_department(department: DepartmentRef, source: str) -> DepartmentRecord:
    parent = department.parent_external_id if not _blank(department.parent_external_id) else None
    return DepartmentRecord(
        external_id=department.external_id,
        display_name=department.display_name or "",
        code=department.code,
        parent_external_id=parent,
        manager_person_id=normalize_manager_id(department.manager_person_id),
        source=source,
    )


def collect_departments(
    document: VaultDocument,
    source_lookup: Mapping[str, str],
) -> tuple[tuple[DepartmentRecord, ...], int]:
    """
    Collect departments deduplicated by external id.

    Returns the departments and the number skipped because their source
    system is unknown. Without a root ``Departments`` section, department
    references carried by contracts are used instead.
    """

    if document.has_departments_section:
        candidates: Iterable[DepartmentRef] = document.departments
    else:
        _logger().warning(
            "No root-level Departments section found; deriving departments from contract references",
            extra={"importer_stage": "collect_departments"},
        )
        candidates = [contract.department for _, contract in document.iter_contracts() if contract.department]

    departments: dict[str, DepartmentRecord] = {}
    skipped = 0
    for department in candidates:
        if _blank(department.external_id):
            continue
        source = resolve_source(department.source, source_lookup)
        if source is None:
            skipped += 1
            _logger().warning(
                "Skipping department '%s' (%s): no valid source found",
                department.display_name,
                department.external_id,
                extra={"importer_department": department.external_id},
            )
            continue
        if department.external_id in departments:
            continue
        departments[department.external_id] = _map_department(department, source)
    return tuple(departments.values()), skipped


# ---------------------------------------------------------------------------
# Sealed context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceDataContext:
    """Read-only reference data shared by every contract mapping of a run."""

    references: Mapping[ReferenceKind, DeduplicationResult]
    departments: tuple[DepartmentRecord, ...] = ()
    source_lookup: Mapping[str, str] = field(default_factory=dict)
    departments_skipped_no_source: int = 0

    def seen(self, kind: ReferenceKind) -> Mapping[str, ReferenceEntity]:
        return self.references[kind].seen

    def entities(self, kind: ReferenceKind) -> tuple[ReferenceEntity, ...]:
        return self.references[kind].entities


def _contract_reference(contract, kind: ReferenceKind) -> ReferenceRef | None:
    return getattr(contract, kind.value)


def collect_reference_data(
    document: VaultDocument,
    source_lookup: Mapping[str, str],
    *,
    id_factory: Callable[[], str] = _new_identifier,
) -> ReferenceDataContext:
    """Walk every contract once per kind and seal the deduplicated result."""

    contracts = [contract for _, contract in document.iter_contracts()]
    contract_sources = [resolve_source(contract.source, source_lookup) for contract in contracts]

    references: dict[ReferenceKind, DeduplicationResult] = {}
    for kind in ReferenceKind:
        sightings = (
            (_contract_reference(contract, kind), source) for contract, source in zip(contracts, contract_sources)
        )
        references[kind] = deduplicate_references(sightings, id_factory=id_factory)

    departments, skipped = collect_departments(document, source_lookup)
    return ReferenceDataContext(
        references=MappingProxyType(references),
        departments=departments,
        source_lookup=MappingProxyType(dict(source_lookup)),
        departments_skipped_no_source=skipped,
    )
