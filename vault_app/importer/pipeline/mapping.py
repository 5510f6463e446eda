"""
Row mapping from vault document records to store rows.

``ContractMappingContext`` resolves the reference fields of each contract
against the sealed ``ReferenceDataContext``. Misses are not errors: the
foreign key stays null and the miss is tallied so the orchestrator can fold it
into the orphan report.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .document import ContactInfo, ContractRecord, PersonRecord
from .references import (
    ReferenceDataContext,
    ReferenceKind,
    composite_key,
    normalize_manager_id,
    resolve_source,
)

ContractRow = dict[str, Any]


@dataclass(frozen=True)
class UnresolvedReference:
    kind: ReferenceKind
    contract_external_id: str
    name: str | None
    external_id: str | None
    source: str | None

    def as_dict(self) -> dict[str, str | None]:
        return {
            "contract_external_id": self.contract_external_id,
            "reference_name": self.name,
            "reference_external_id": self.external_id,
            "source": self.source,
        }


@dataclass
class ContractMappingContext:
    """Resolve contract reference fields for one import run."""

    reference_data: ReferenceDataContext
    empty_manager_guids_replaced: int = 0
    unresolved_counts: Counter = field(default_factory=Counter)
    unresolved_samples: list[UnresolvedReference] = field(default_factory=list)
    sample_limit: int = 10

    @property
    def source_lookup(self):
        return self.reference_data.source_lookup

    def resolve(self, kind: ReferenceKind, contract: ContractRecord, source: str | None) -> str | None:
        reference = getattr(contract, kind.value)
        if reference is None:
            return None
        name = reference.name
        if name is not None and name.strip():
            entity = self.reference_data.seen(kind).get(composite_key(name, source))
            if entity is not None:
                return entity.external_id
        if reference.has_identity:
            self._record_unresolved(kind, contract, reference.name, reference.external_id, source)
        return None

    def _record_unresolved(self, kind, contract, name, external_id, source) -> None:
        self.unresolved_counts[kind] += 1
        if sum(1 for sample in self.unresolved_samples if sample.kind is kind) < self.sample_limit:
            self.unresolved_samples.append(
                UnresolvedReference(
                    kind=kind,
                    contract_external_id=contract.external_id or "",
                    name=name,
                    external_id=external_id,
                    source=source,
                )
            )

    def map_contract(self, person_id: str, contract: ContractRecord) -> ContractRow:
        source = resolve_source(contract.source, self.source_lookup)

        row: ContractRow = {
            "external_id": contract.external_id,
            "person_id": person_id,
            "start_date": contract.start_date,
            "end_date": contract.end_date,
            "type_code": contract.type_code,
            "type_description": contract.type_description,
            "fte": contract.fte,
            "hours_per_week": contract.hours_per_week,
            "percentage": contract.percentage,
            "sequence": contract.sequence,
            "source": source,
        }

        for kind in ReferenceKind:
            row[kind.fk_column] = self.resolve(kind, contract, source)
            row[kind.source_column] = source

        department_id = contract.department.external_id if contract.department else None
        if department_id is not None and department_id.strip() and source is not None:
            row["department_external_id"] = department_id
        else:
            row["department_external_id"] = None
        row["department_source"] = source

        manager_id = normalize_manager_id(contract.manager_person_id)
        if contract.has_manager and manager_id is None:
            self.empty_manager_guids_replaced += 1
        row["manager_person_external_id"] = manager_id
        return row


def map_person(person: PersonRecord, source_lookup) -> dict[str, Any]:
    return {
        "person_id": person.person_id,
        "display_name": person.display_name,
        "external_id": person.external_id,
        "user_name": person.user_name,
        "gender": person.gender,
        "honorific_prefix": person.honorific_prefix,
        "honorific_suffix": person.honorific_suffix,
        "birth_date": person.birth_date,
        "birth_locality": person.birth_locality,
        "marital_status": person.marital_status,
        "initials": person.initials,
        "given_name": person.given_name,
        "nick_name": person.nick_name,
        "family_name": person.family_name,
        "family_name_prefix": person.family_name_prefix,
        "family_name_partner": person.family_name_partner,
        "family_name_partner_prefix": person.family_name_partner_prefix,
        "convention": person.convention,
        "blocked": person.blocked,
        "status_reason": person.status_reason,
        "excluded": person.excluded,
        "hr_excluded": person.hr_excluded,
        "manual_excluded": person.manual_excluded,
        "primary_manager_person_id": normalize_manager_id(person.primary_manager_person_id),
        "source": resolve_source(person.source, source_lookup),
    }


def map_contact(person_id: str, contact_type, contact: ContactInfo | None) -> dict[str, Any] | None:
    """Return a contact row, or None when the contact block carries nothing."""

    if contact is None or contact.is_empty:
        return None
    return {
        "person_id": person_id,
        "type": contact_type,
        "email": contact.email,
        "phone_mobile": contact.phone_mobile,
        "phone_fixed": contact.phone_fixed,
        "address_street": contact.address_street,
        "address_house_number": contact.address_house_number,
        "address_postal": contact.address_postal,
        "address_locality": contact.address_locality,
        "address_country": contact.address_country,
    }
