"""
Vault export document model.

The export is a single JSON object with a ``Persons`` list (each person
carrying nested contracts) and an optional root ``Departments`` list. Key
lookup is case-insensitive. Everything is materialized in memory as frozen
dataclasses before the pipeline starts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import VaultDocumentError

EMPTY_GUID = "00000000-0000-0000-0000-000000000000"


@dataclass(frozen=True)
class SourceRef:
    system_id: str
    display_name: str | None = None
    identification_key: str | None = None


@dataclass(frozen=True)
class ReferenceRef:
    """A contract reference in the ``{ExternalId?, Code?, Name}`` shape."""

    external_id: str | None = None
    code: str | None = None
    name: str | None = None

    @property
    def has_identity(self) -> bool:
        return any(_is_present(value) for value in (self.external_id, self.code, self.name))


@dataclass(frozen=True)
class DepartmentRef:
    external_id: str | None
    display_name: str | None = None
    code: str | None = None
    parent_external_id: str | None = None
    manager_person_id: str | None = None
    source: SourceRef | None = None


@dataclass(frozen=True)
class ContactInfo:
    email: str | None = None
    phone_mobile: str | None = None
    phone_fixed: str | None = None
    address_street: str | None = None
    address_house_number: str | None = None
    address_postal: str | None = None
    address_locality: str | None = None
    address_country: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any(_is_present(getattr(self, name)) for name in self.__dataclass_fields__)


@dataclass(frozen=True)
class ContractRecord:
    external_id: str | None
    start_date: date | None = None
    end_date: date | None = None
    type_code: str | None = None
    type_description: str | None = None
    fte: float | None = None
    hours_per_week: float | None = None
    percentage: float | None = None
    sequence: int | None = None
    location: ReferenceRef | None = None
    cost_center: ReferenceRef | None = None
    cost_bearer: ReferenceRef | None = None
    employer: ReferenceRef | None = None
    team: ReferenceRef | None = None
    division: ReferenceRef | None = None
    title: ReferenceRef | None = None
    organization: ReferenceRef | None = None
    department: DepartmentRef | None = None
    has_manager: bool = False
    manager_person_id: str | None = None
    source: SourceRef | None = None
    custom: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PersonRecord:
    person_id: str | None
    display_name: str | None = None
    external_id: str | None = None
    user_name: str | None = None
    gender: str | None = None
    honorific_prefix: str | None = None
    honorific_suffix: str | None = None
    birth_date: date | None = None
    birth_locality: str | None = None
    marital_status: str | None = None
    initials: str | None = None
    given_name: str | None = None
    nick_name: str | None = None
    family_name: str | None = None
    family_name_prefix: str | None = None
    family_name_partner: str | None = None
    family_name_partner_prefix: str | None = None
    convention: str | None = None
    blocked: bool = False
    status_reason: str | None = None
    excluded: bool = False
    hr_excluded: bool = False
    manual_excluded: bool = False
    primary_manager_person_id: str | None = None
    source: SourceRef | None = None
    personal_contact: ContactInfo | None = None
    business_contact: ContactInfo | None = None
    contracts: tuple[ContractRecord, ...] = ()
    custom: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VaultDocument:
    persons: tuple[PersonRecord, ...]
    departments: tuple[DepartmentRef, ...]
    has_persons_section: bool = True
    has_departments_section: bool = False

    def iter_contracts(self):
        for person in self.persons:
            for contract in person.contracts:
                yield person, contract


# ---------------------------------------------------------------------------
# Primitive coercion
# ---------------------------------------------------------------------------


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _get(payload: Mapping[str, Any] | None, key: str) -> Any:
    if not payload:
        return None
    if key in payload:
        return payload[key]
    lowered = key.lower()
    for candidate, value in payload.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return None


def _mapping(value: Any) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    raise VaultDocumentError(f"Expected a text value, got {type(value).__name__}.")


def _number(value: Any, *, label: str) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise VaultDocumentError(f"{label} must be numeric, got a boolean.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise VaultDocumentError(f"{label} must be numeric, got {value!r}.") from exc


def _integer(value: Any, *, label: str) -> int | None:
    number = _number(value, label=label)
    return int(number) if number is not None else None


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _date(value: Any, *, label: str) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise VaultDocumentError(f"{label} must be an ISO date string, got {value!r}.")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise VaultDocumentError(f"{label} has an invalid date value {value!r}.") from exc


def _custom(value: Any) -> dict[str, Any]:
    payload = _mapping(value)
    if not payload:
        return {}
    return {str(key): inner for key, inner in payload.items()}


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _parse_source(raw: Any) -> SourceRef | None:
    payload = _mapping(raw)
    if not payload:
        return None
    system_id = _text(_get(payload, "SystemId"))
    if not _is_present(system_id):
        return None
    return SourceRef(
        system_id=system_id.strip(),
        display_name=_text(_get(payload, "DisplayName")),
        identification_key=_text(_get(payload, "IdentificationKey")),
    )


def _parse_reference(raw: Any) -> ReferenceRef | None:
    payload = _mapping(raw)
    if payload is None:
        return None
    return ReferenceRef(
        external_id=_text(_get(payload, "ExternalId")),
        code=_text(_get(payload, "Code")),
        name=_text(_get(payload, "Name")),
    )


def _manager_id(raw: Any) -> tuple[bool, str | None]:
    payload = _mapping(raw)
    if payload is None:
        return False, None
    return True, _text(_get(payload, "PersonId"))


def _parse_department(raw: Any) -> DepartmentRef | None:
    payload = _mapping(raw)
    if payload is None:
        return None
    _, manager_id = _manager_id(_get(payload, "Manager"))
    return DepartmentRef(
        external_id=_text(_get(payload, "ExternalId")),
        display_name=_text(_get(payload, "DisplayName")),
        code=_text(_get(payload, "Code")),
        parent_external_id=_text(_get(payload, "ParentExternalId")),
        manager_person_id=manager_id,
        source=_parse_source(_get(payload, "Source")),
    )


def _parse_contact(raw: Any) -> ContactInfo | None:
    payload = _mapping(raw)
    if payload is None:
        return None
    address = _mapping(_get(payload, "Address")) or {}
    phone = _mapping(_get(payload, "Phone")) or {}
    return ContactInfo(
        email=_text(_get(payload, "Email")),
        phone_mobile=_text(_get(phone, "Mobile")),
        phone_fixed=_text(_get(phone, "Fixed")),
        address_street=_text(_get(address, "Street")),
        address_house_number=_text(_get(address, "HouseNumber")),
        address_postal=_text(_get(address, "PostalCode")),
        address_locality=_text(_get(address, "Locality")),
        address_country=_text(_get(address, "Country")),
    )


def _parse_contract(raw: Any, *, person_label: str) -> ContractRecord:
    payload = _mapping(raw)
    if payload is None:
        raise VaultDocumentError(f"Person {person_label} has a contract that is not an object.")
    external_id = _text(_get(payload, "ExternalId"))
    label = f"Contract {external_id or '<unknown>'} of person {person_label}"
    details = _mapping(_get(payload, "Details")) or {}
    contract_type = _mapping(_get(payload, "Type")) or {}
    has_manager, manager_id = _manager_id(_get(payload, "Manager"))
    return ContractRecord(
        external_id=external_id,
        start_date=_date(_get(payload, "StartDate"), label=f"{label} StartDate"),
        end_date=_date(_get(payload, "EndDate"), label=f"{label} EndDate"),
        type_code=_text(_get(contract_type, "Code")),
        type_description=_text(_get(contract_type, "Description")),
        fte=_number(_get(details, "Fte"), label=f"{label} Fte"),
        hours_per_week=_number(_get(details, "HoursPerWeek"), label=f"{label} HoursPerWeek"),
        percentage=_number(_get(details, "Percentage"), label=f"{label} Percentage"),
        sequence=_integer(_get(details, "Sequence"), label=f"{label} Sequence"),
        location=_parse_reference(_get(payload, "Location")),
        cost_center=_parse_reference(_get(payload, "CostCenter")),
        cost_bearer=_parse_reference(_get(payload, "CostBearer")),
        employer=_parse_reference(_get(payload, "Employer")),
        team=_parse_reference(_get(payload, "Team")),
        division=_parse_reference(_get(payload, "Division")),
        title=_parse_reference(_get(payload, "Title")),
        organization=_parse_reference(_get(payload, "Organization")),
        department=_parse_department(_get(payload, "Department")),
        has_manager=has_manager,
        manager_person_id=manager_id,
        source=_parse_source(_get(payload, "Source")),
        custom=_custom(_get(payload, "Custom")),
    )


def _parse_person(raw: Any, position: int) -> PersonRecord:
    payload = _mapping(raw)
    if payload is None:
        raise VaultDocumentError(f"Person at position {position} is not an object.")
    person_id = _text(_get(payload, "PersonId"))
    person_label = person_id or f"#{position}"
    details = _mapping(_get(payload, "Details")) or {}
    name = _mapping(_get(payload, "Name")) or {}
    status = _mapping(_get(payload, "Status")) or {}
    exclusion = _mapping(_get(payload, "ExclusionDetails")) or {}
    contact = _mapping(_get(payload, "Contact")) or {}
    _, primary_manager_id = _manager_id(_get(payload, "PrimaryManager"))

    raw_contracts = _get(payload, "Contracts") or []
    if not isinstance(raw_contracts, Sequence) or isinstance(raw_contracts, (str, bytes)):
        raise VaultDocumentError(f"Person {person_label} has a Contracts value that is not a list.")

    return PersonRecord(
        person_id=person_id,
        display_name=_text(_get(payload, "DisplayName")),
        external_id=_text(_get(payload, "ExternalId")),
        user_name=_text(_get(payload, "UserName")),
        gender=_text(_get(details, "Gender")),
        honorific_prefix=_text(_get(details, "HonorificPrefix")),
        honorific_suffix=_text(_get(details, "HonorificSuffix")),
        birth_date=_date(_get(details, "BirthDate"), label=f"Person {person_label} BirthDate"),
        birth_locality=_text(_get(details, "BirthLocality")),
        marital_status=_text(_get(details, "MaritalStatus")),
        initials=_text(_get(name, "Initials")),
        given_name=_text(_get(name, "GivenName")),
        nick_name=_text(_get(name, "NickName")),
        family_name=_text(_get(name, "FamilyName")),
        family_name_prefix=_text(_get(name, "FamilyNamePrefix")),
        family_name_partner=_text(_get(name, "FamilyNamePartner")),
        family_name_partner_prefix=_text(_get(name, "FamilyNamePartnerPrefix")),
        convention=_text(_get(name, "Convention")),
        blocked=_flag(_get(status, "Blocked")),
        status_reason=_text(_get(status, "Reason")),
        excluded=_flag(_get(payload, "Excluded")),
        hr_excluded=_flag(_get(exclusion, "Hr")),
        manual_excluded=_flag(_get(exclusion, "Manual")),
        primary_manager_person_id=primary_manager_id,
        source=_parse_source(_get(payload, "Source")),
        personal_contact=_parse_contact(_get(contact, "Personal")),
        business_contact=_parse_contact(_get(contact, "Business")),
        contracts=tuple(_parse_contract(item, person_label=person_label) for item in raw_contracts),
        custom=_custom(_get(payload, "Custom")),
    )


def parse_vault_document(payload: Any) -> VaultDocument:
    """Build a ``VaultDocument`` from already-decoded JSON."""

    root = _mapping(payload)
    if root is None:
        raise VaultDocumentError("Vault document root must be a JSON object.")

    raw_persons = _get(root, "Persons")
    has_persons = isinstance(raw_persons, list)
    persons = tuple(_parse_person(item, position) for position, item in enumerate(raw_persons or [], start=1)) if has_persons else ()

    raw_departments = _get(root, "Departments")
    has_departments = isinstance(raw_departments, list) and bool(raw_departments)
    departments: list[DepartmentRef] = []
    if has_departments:
        for item in raw_departments:
            department = _parse_department(item)
            if department is None:
                raise VaultDocumentError("Every entry of Departments must be an object.")
            departments.append(department)

    return VaultDocument(
        persons=persons,
        departments=tuple(departments),
        has_persons_section=has_persons,
        has_departments_section=has_departments,
    )


def load_vault_document(path: str | Path) -> VaultDocument:
    """Read and parse a vault export file from disk."""

    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8-sig") as handle:
            payload = json.load(handle)
    except FileNotFoundError as exc:
        raise VaultDocumentError(f"Vault file not found: {file_path}") from exc
    except json.JSONDecodeError as exc:
        raise VaultDocumentError(
            f"Vault file {file_path} is not valid JSON (line {exc.lineno}, column {exc.colno}): {exc.msg}"
        ) from exc
    except OSError as exc:
        raise VaultDocumentError(f"Unable to read vault file {file_path}: {exc}") from exc
    return parse_vault_document(payload)
