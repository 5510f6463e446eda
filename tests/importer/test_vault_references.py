from __future__ import annotations

import itertools

from vault_builders import make_contract, make_department, make_person

from vault_app.importer.pipeline import (
    ReferenceEntity,
    ReferenceKind,
    collect_reference_data,
    composite_key,
    deduplicate_references,
    parse_vault_document,
)
from vault_app.importer.pipeline.document import ReferenceRef
from vault_app.importer.pipeline.references import (
    build_source_lookup,
    collect_departments,
    collect_source_systems,
    normalize_manager_id,
)


def _ids():
    counter = itertools.count(1)
    return lambda: f"generated-{next(counter)}"


def test_composite_key_uses_default_for_missing_source():
    assert composite_key("HQ", "SAP") == "HQ|SAP"
    assert composite_key("HQ", None) == "HQ|default"
    assert composite_key("HQ", "  ") == "HQ|default"


def test_reference_entity_equality_ignores_code_and_source():
    first = ReferenceEntity(external_id="L1", name="HQ", code="A", source="SAP")
    second = ReferenceEntity(external_id="L1", name="HQ", code="B", source="Workday")
    assert first == second
    assert len({first, second}) == 1
    assert first != ReferenceEntity(external_id="L2", name="HQ")


def test_deduplicate_is_idempotent_and_first_sighting_wins():
    first = ReferenceRef(external_id="L1", code="HQ-01", name="HQ")
    repeat = ReferenceRef(external_id="L1", code="HQ-99", name="HQ")

    once = deduplicate_references([(first, "SAP")])
    twice = deduplicate_references([(first, "SAP"), (first, "SAP"), (repeat, "SAP")])

    assert len(twice.entities) <= len(once.entities)
    entity = twice.seen["HQ|SAP"]
    assert entity.code == "HQ-01"
    assert entity.external_id == "L1"


def test_deduplicate_is_source_sensitive():
    reference = ReferenceRef(name="HQ")
    result = deduplicate_references([(reference, "SAP"), (reference, "Workday")], id_factory=_ids())

    sap = result.seen["HQ|SAP"]
    workday = result.seen["HQ|Workday"]
    assert sap.external_id != workday.external_id
    assert {row["source"] for row in result.rows()} == {"SAP", "Workday"}


def test_deduplicate_generates_identifier_when_missing():
    result = deduplicate_references([(ReferenceRef(name="HQ", external_id="  "), "SAP")], id_factory=_ids())
    assert result.seen["HQ|SAP"].external_id == "generated-1"


def test_deduplicate_skips_blank_names_and_missing_references():
    result = deduplicate_references(
        [(None, "SAP"), (ReferenceRef(external_id="L1", name=""), "SAP"), (ReferenceRef(name="   "), None)]
    )
    assert result.entities == ()
    assert dict(result.seen) == {}


def test_rows_emit_one_row_per_source_for_shared_identifier():
    reference = ReferenceRef(external_id="L1", name="HQ")
    result = deduplicate_references([(reference, "SAP"), (reference, "Workday")])

    assert len(result.entities) == 1
    rows = result.rows()
    assert len(rows) == 2
    assert {(row["external_id"], row["source"]) for row in rows} == {("L1", "SAP"), ("L1", "Workday")}


def test_collect_source_systems_defaults_and_company_only():
    document = parse_vault_document(
        {
            "Persons": [
                {
                    "PersonId": "P1",
                    "Source": {"SystemId": "HR"},
                    "Contracts": [make_contract("C1", source="SAP")],
                }
            ],
            "Departments": [make_department("D1", source="Workday")],
        }
    )

    systems = {system.system_id: system for system in collect_source_systems(document)}
    assert set(systems) == {"HR", "SAP", "Workday"}
    assert systems["HR"].display_name == "Unknown"
    assert systems["HR"].identification_key == "HR"

    company_systems = {system.system_id for system in collect_source_systems(document, company_only=True)}
    assert company_systems == {"SAP", "Workday"}


def test_collect_departments_skips_unknown_sources_and_duplicates():
    document = parse_vault_document(
        {
            "Persons": [],
            "Departments": [
                make_department("D1", display_name="First"),
                make_department("D1", display_name="Second"),
                make_department("D2", source="Unknown"),
                make_department("D3", source=None),
            ],
        }
    )
    departments, skipped = collect_departments(document, {"SAP": "SAP"})

    assert [department.external_id for department in departments] == ["D1"]
    assert departments[0].display_name == "First"
    assert skipped == 2


def test_collect_departments_falls_back_to_contract_references():
    document = parse_vault_document(
        {
            "Persons": [
                make_person(
                    "P1",
                    contracts=[make_contract("C1", department=make_department("D9", parent="D1"))],
                )
            ]
        }
    )
    lookup = build_source_lookup(collect_source_systems(document))
    departments, skipped = collect_departments(document, lookup)

    assert skipped == 0
    assert [department.external_id for department in departments] == ["D9"]
    assert departments[0].parent_external_id == "D1"


def test_collect_reference_data_seals_every_kind(two_hq_document):
    document = parse_vault_document(two_hq_document)
    lookup = build_source_lookup(collect_source_systems(document))
    context = collect_reference_data(document, lookup, id_factory=_ids())

    assert set(context.references) == set(ReferenceKind)
    assert set(context.seen(ReferenceKind.LOCATION)) == {"HQ|SAP", "HQ|Workday"}
    assert context.entities(ReferenceKind.TITLE) == ()
    assert [department.external_id for department in context.departments] == ["D1"]


def test_normalize_manager_id():
    assert normalize_manager_id("00000000-0000-0000-0000-000000000000") is None
    assert normalize_manager_id("") is None
    assert normalize_manager_id(None) is None
    assert normalize_manager_id("M1") == "M1"


def test_reference_kind_columns():
    assert ReferenceKind.COST_CENTER.table_name == "cost_centers"
    assert ReferenceKind.COST_CENTER.fk_column == "cost_center_external_id"
    assert ReferenceKind.COST_CENTER.source_column == "cost_center_source"
