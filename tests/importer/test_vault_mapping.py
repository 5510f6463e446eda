from __future__ import annotations

from vault_builders import make_contract, make_person

from vault_app.importer.pipeline import ContractMappingContext, ReferenceKind, collect_reference_data, parse_vault_document
from vault_app.importer.pipeline.mapping import map_contact, map_person
from vault_app.importer.pipeline.references import build_source_lookup, collect_source_systems
from vault_app.models import ContactType


def _context(document):
    lookup = build_source_lookup(collect_source_systems(document))
    return ContractMappingContext(collect_reference_data(document, lookup))


def _contract(**kwargs):
    document = parse_vault_document({"Persons": [make_person("P1", contracts=[make_contract("C9", **kwargs)])]})
    return document.persons[0].contracts[0]


def test_contract_resolves_reference_under_its_own_source(two_hq_document):
    document = parse_vault_document(two_hq_document)
    context = _context(document)
    first, second = document.persons[0].contracts

    sap_row = context.map_contract("P1", first)
    workday_row = context.map_contract("P1", second)

    assert sap_row["location_external_id"] is not None
    assert workday_row["location_external_id"] is not None
    assert sap_row["location_external_id"] != workday_row["location_external_id"]
    assert sap_row["location_source"] == "SAP"
    assert workday_row["location_source"] == "Workday"
    assert sap_row["department_external_id"] == "D1"
    assert sap_row["department_source"] == "SAP"
    assert workday_row["department_external_id"] is None


def test_unsighted_reference_is_counted_and_left_null(two_hq_document):
    context = _context(parse_vault_document(two_hq_document))
    ghost = _contract(Location={"Name": "Ghost"})

    row = context.map_contract("P1", ghost)

    assert row["location_external_id"] is None
    assert context.unresolved_counts[ReferenceKind.LOCATION] == 1
    sample = context.unresolved_samples[0]
    assert sample.kind is ReferenceKind.LOCATION
    assert sample.as_dict()["reference_name"] == "Ghost"
    assert sample.contract_external_id == "C9"


def test_absent_reference_is_not_an_orphan(two_hq_document):
    context = _context(parse_vault_document(two_hq_document))
    row = context.map_contract("P1", _contract(Location={}))

    assert row["location_external_id"] is None
    assert sum(context.unresolved_counts.values()) == 0


def test_sample_list_is_capped(two_hq_document):
    context = _context(parse_vault_document(two_hq_document))
    context.sample_limit = 2
    for index in range(5):
        context.map_contract("P1", _contract(Team={"Name": f"Team {index}"}))

    assert context.unresolved_counts[ReferenceKind.TEAM] == 5
    assert len(context.unresolved_samples) == 2


def test_empty_guid_manager_is_replaced_and_counted(two_hq_document):
    context = _context(parse_vault_document(two_hq_document))

    row = context.map_contract("P1", _contract(manager="00000000-0000-0000-0000-000000000000"))
    assert row["manager_person_external_id"] is None
    assert context.empty_manager_guids_replaced == 1

    row = context.map_contract("P1", _contract(manager="M1"))
    assert row["manager_person_external_id"] == "M1"
    row = context.map_contract("P1", _contract())
    assert row["manager_person_external_id"] is None
    assert context.empty_manager_guids_replaced == 1


def test_contract_without_known_source_has_no_department(two_hq_document):
    context = _context(parse_vault_document(two_hq_document))
    row = context.map_contract("P1", _contract(source=None, department={"ExternalId": "D1"}))

    assert row["source"] is None
    assert row["department_external_id"] is None


def test_map_person_and_contact():
    document = parse_vault_document(
        {"Persons": [make_person("P1", primary_manager="00000000-0000-0000-0000-000000000000", email="p1@example.org")]}
    )
    person = document.persons[0]

    row = map_person(person, {"SAP": "SAP"})
    assert row["person_id"] == "P1"
    assert row["source"] == "SAP"
    assert row["primary_manager_person_id"] is None

    business = map_contact("P1", ContactType.BUSINESS, person.business_contact)
    assert business["email"] == "p1@example.org"
    assert business["type"] is ContactType.BUSINESS
    assert map_contact("P1", ContactType.PERSONAL, person.personal_contact) is None
