from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from vault_builders import make_contract, make_person

from vault_app.importer.pipeline import (
    DepartmentCycleError,
    MissingPersonsSection,
    VaultDocumentError,
    describe_import_error,
    format_display_name,
    load_vault_document,
    parse_vault_document,
)
from vault_app.importer.pipeline.custom_fields import (
    CONTRACTS_TABLE,
    PERSONS_TABLE,
    discover_custom_fields,
    normalize_custom_value,
)


class _DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def test_keys_are_case_insensitive():
    document = parse_vault_document(
        {
            "persons": [
                {
                    "personid": "P1",
                    "DISPLAYNAME": "Ada",
                    "contracts": [{"externalId": "C1", "startdate": "2021-02-03T00:00:00Z", "details": {"FTE": "0.8"}}],
                }
            ]
        }
    )

    person = document.persons[0]
    assert person.person_id == "P1"
    assert person.display_name == "Ada"
    contract = person.contracts[0]
    assert contract.start_date == date(2021, 2, 3)
    assert contract.fte == pytest.approx(0.8)
    assert document.has_persons_section is True
    assert document.has_departments_section is False


def test_missing_persons_section_is_recorded():
    document = parse_vault_document({"Departments": [{"ExternalId": "D1"}]})
    assert document.has_persons_section is False
    assert document.persons == ()
    assert document.has_departments_section is True


def test_contract_manager_presence_is_tracked():
    document = parse_vault_document(
        {"Persons": [make_person("P1", contracts=[make_contract("C1", manager=""), make_contract("C2")])]}
    )
    with_manager, without_manager = document.persons[0].contracts
    assert with_manager.has_manager is True
    assert without_manager.has_manager is False


@pytest.mark.parametrize(
    "payload, message",
    [
        ([], "root must be a JSON object"),
        ({"Persons": ["not-an-object"]}, "is not an object"),
        ({"Persons": [{"PersonId": "P1", "Contracts": "C1"}]}, "not a list"),
        ({"Persons": [make_person("P1", contracts=[make_contract("C1", start="31-12-2020")])]}, "invalid date"),
        ({"Persons": [{"PersonId": "P1", "Contracts": [{"ExternalId": "C1", "Details": {"Fte": "lots"}}]}]}, "numeric"),
    ],
)
def test_malformed_documents_raise(payload, message):
    with pytest.raises(VaultDocumentError) as excinfo:
        parse_vault_document(payload)
    assert message in str(excinfo.value)


def test_load_reports_invalid_json(write_vault):
    path = write_vault('{"Persons": [}')
    with pytest.raises(VaultDocumentError) as excinfo:
        load_vault_document(path)
    assert "not valid JSON" in str(excinfo.value)


def test_load_reports_missing_file(tmp_path):
    with pytest.raises(VaultDocumentError):
        load_vault_document(tmp_path / "missing.json")


def test_load_accepts_utf8_bom(tmp_path):
    path = tmp_path / "bom.json"
    path.write_bytes(b"\xef\xbb\xbf" + b'{"Persons": []}')
    assert load_vault_document(path).persons == ()


@pytest.mark.parametrize(
    "key, expected",
    [
        ("ip_phone_number", "Ip Phone Number"),
        ("mobilePhoneNumber", "Mobile Phone Number"),
        ("cost-center_code", "Cost Center Code"),
        ("x_axis", "X Axis"),
        ("", ""),
        (None, ""),
    ],
)
def test_format_display_name(key, expected):
    assert format_display_name(key) == expected


def test_null_token_becomes_none():
    assert normalize_custom_value("null") is None
    assert normalize_custom_value(" NULL ") is None
    assert normalize_custom_value("nullable") == "nullable"
    assert normalize_custom_value(0) == 0


def test_custom_fields_discovered_in_document_order():
    document = parse_vault_document(
        {
            "Persons": [
                make_person(
                    "P1",
                    custom={"badge_id": "B1", "shoeSize": 42},
                    contracts=[make_contract("C1", custom={"union_member": "yes"})],
                ),
                make_person("P2", custom={"badge_id": "B2", "parking_spot": "null"}),
            ]
        }
    )

    definitions = discover_custom_fields(document)
    assert [(item.table_name, item.field_key, item.sort_order) for item in definitions] == [
        (PERSONS_TABLE, "badge_id", 1),
        (PERSONS_TABLE, "shoeSize", 2),
        (CONTRACTS_TABLE, "union_member", 3),
        (PERSONS_TABLE, "parking_spot", 4),
    ]
    assert definitions[1].display_name == "Shoe Size"
    assert {item.data_type for item in definitions} == {"text"}


def test_structural_errors_keep_their_message():
    assert describe_import_error(MissingPersonsSection(), "read_document") == (
        "Invalid vault.json file or no persons found."
    )
    message = describe_import_error(DepartmentCycleError("D1", "Sales"), "departments")
    assert "D1 (Sales)" in message


def test_known_sqlstate_gets_friendly_message():
    exc = IntegrityError("INSERT INTO persons", {}, _DriverError("duplicate key value", pgcode="23505"))
    message = describe_import_error(exc, "persons")
    assert message.startswith("Import failed: A duplicate key constraint was violated.")
    assert "duplicate key value" in message


def test_unknown_sqlstate_is_reported():
    exc = OperationalError("SELECT 1", {}, _DriverError("odd failure", pgcode="XX000"))
    assert describe_import_error(exc, "persons") == "Import failed: odd failure\n\nSQL State: XX000"


def test_generic_error_names_the_operation():
    message = describe_import_error(RuntimeError("disk full"), "contracts")
    assert message == "Import failed: disk full\n\nOperation: contracts"
