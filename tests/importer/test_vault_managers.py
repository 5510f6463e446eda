from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest

from config.primary_contract import (
    DEFAULT_PROFILE,
    OrderingRule,
    PrimaryContractConfigError,
    PrimaryContractProfile,
    load_profile,
)
from vault_app.importer.pipeline import (
    PrimaryManagerDetector,
    PrimaryManagerRule,
    PrimaryManagerService,
    default_manager_rule,
)
from vault_app.importer.pipeline.managers import ContractStatus, contract_status, select_primary_contract
from vault_app.models import LAST_PRIMARY_MANAGER_LOGIC, Contract, Department, Person, PrimaryManagerSource, UserPreference, db

TODAY = date(2024, 6, 1)


def _contract_stub(external_id, **fields):
    defaults = {
        "external_id": external_id,
        "contract_id": None,
        "fte": None,
        "hours_per_week": None,
        "sequence": None,
        "start_date": date(2020, 1, 1),
        "end_date": None,
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


@pytest.fixture
def staffed_store(app):
    """Two employees whose contracts name M1 while their department is managed by M2."""

    for person_id in ("M1", "M2", "E1", "E2"):
        db.session.add(Person(person_id=person_id, display_name=person_id))
    db.session.add(Department(external_id="D1", display_name="Sales", manager_person_id="M2", source="SAP"))
    for person_id in ("E1", "E2"):
        db.session.add(
            Contract(
                external_id=f"C-{person_id}",
                person_id=person_id,
                start_date=date(2020, 1, 1),
                fte=1.0,
                manager_person_external_id="M1",
                department_external_id="D1",
                department_source="SAP",
                source="SAP",
            )
        )
    db.session.flush()
    return db.session


def _record(person_id: str, manager_id: str | None):
    db.session.get(Person, person_id).primary_manager_person_id = manager_id
    db.session.flush()


def test_contract_status():
    assert contract_status(_contract_stub("a", start_date=None), TODAY) is ContractStatus.NO_DATES
    assert contract_status(_contract_stub("b", start_date=date(2030, 1, 1)), TODAY) is ContractStatus.FUTURE
    assert contract_status(_contract_stub("c", end_date=date(2021, 1, 1)), TODAY) is ContractStatus.PAST
    assert contract_status(_contract_stub("d", end_date=TODAY), TODAY) is ContractStatus.ACTIVE
    assert ContractStatus.NO_DATES.label == "No Dates"


def test_primary_contract_prefers_status_then_profile_order():
    past_full_time = _contract_stub("past", fte=1.0, end_date=date(2021, 1, 1))
    active_part_time = _contract_stub("active-part", fte=0.4)
    active_full_time = _contract_stub("active-full", fte=0.8)
    undated = _contract_stub("undated", fte=1.0, start_date=None)

    primary = select_primary_contract(
        [past_full_time, undated, active_part_time, active_full_time], profile=DEFAULT_PROFILE, today=TODAY
    )
    assert primary.external_id == "active-full"
    assert select_primary_contract([], today=TODAY) is None


def test_primary_contract_open_end_date_sorts_as_latest():
    ends_soon = _contract_stub("ends-soon", fte=1.0, end_date=date(2030, 1, 1))
    open_ended = _contract_stub("open", fte=1.0)

    assert select_primary_contract([ends_soon, open_ended], today=TODAY).external_id == "open"


def test_primary_contract_uses_custom_profile():
    profile = PrimaryContractProfile(
        key="earliest",
        label="Earliest start",
        description="",
        rules=(OrderingRule("start_date", descending=False, priority=1),),
    )
    older = _contract_stub("older", fte=0.1, start_date=date(2001, 1, 1))
    newer = _contract_stub("newer", fte=1.0, start_date=date(2019, 1, 1))

    assert select_primary_contract([newer, older], profile=profile, today=TODAY).external_id == "older"


def test_profile_loaded_from_yaml(tmp_path):
    path = tmp_path / "profile.yaml"
    path.write_text(
        "key: hours\n"
        "label: Hours first\n"
        "fields:\n"
        "  - field_name: HoursPerWeek\n"
        "    sort_order: desc\n"
        "    priority: 1\n"
        "  - field_name: start_date\n"
        "    sort_order: ASC\n"
        "    priority: 2\n"
        "    active: false\n",
        encoding="utf-8",
    )

    profile = load_profile({"IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH": str(path)})

    assert profile.key == "hours"
    assert [rule.field_name for rule in profile.active_rules()] == ["hours_per_week"]
    assert profile.rules[1].sort_order == "ASC"
    assert load_profile({}) is DEFAULT_PROFILE


def test_profile_rejects_unknown_field(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text('{"fields": [{"field_name": "salary"}]}', encoding="utf-8")

    with pytest.raises(PrimaryContractConfigError):
        load_profile({"IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH": str(path)})


def test_compute_by_rule(staffed_store):
    service = PrimaryManagerService(today=TODAY)

    assert service.compute("E1", PrimaryManagerRule.CONTRACT_BASED) == "M1"
    assert service.compute("E1", PrimaryManagerRule.DEPARTMENT_BASED) == "M2"
    assert service.compute("M1", PrimaryManagerRule.CONTRACT_BASED) is None
    with pytest.raises(ValueError):
        service.compute("E1", PrimaryManagerRule.FROM_JSON)


def test_refresh_all_and_statistics(staffed_store):
    service = PrimaryManagerService(today=TODAY)

    assert service.refresh_all(PrimaryManagerRule.DEPARTMENT_BASED) == 4
    assert db.session.get(Person, "E1").primary_manager_person_id == "M2"
    assert db.session.get(Person, "E1").primary_manager_source is PrimaryManagerSource.DEPARTMENT
    assert db.session.get(Person, "M1").primary_manager_person_id is None

    stats = service.statistics()
    assert stats["total_persons"] == 4
    assert stats["persons_with_manager"] == 2
    assert stats["persons_without_manager"] == 2
    assert stats["department_based"] == 4
    assert stats["contract_based"] == 0


def test_refresh_for_department(staffed_store):
    service = PrimaryManagerService(today=TODAY)

    assert service.refresh_for_department("D1", "SAP", PrimaryManagerRule.CONTRACT_BASED) == 2
    assert db.session.get(Person, "E2").primary_manager_person_id == "M1"
    assert service.refresh_for_department("D1", "Workday", PrimaryManagerRule.CONTRACT_BASED) == 0


def test_detector_picks_contract_based(staffed_store):
    _record("E1", "M1")
    _record("E2", "M1")

    result = PrimaryManagerDetector(PrimaryManagerService(today=TODAY)).evaluate()

    assert result.rule is PrimaryManagerRule.CONTRACT_BASED
    assert result.contract_matches == 2
    assert result.department_matches == 0
    assert result.tie_break_applied is False
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) == "contract"


def test_detector_undetermined_when_nothing_matches(staffed_store):
    _record("E1", "M9")

    detector = PrimaryManagerDetector(PrimaryManagerService(today=TODAY))
    assert detector.detect() is None
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) is None


def test_detector_undetermined_for_empty_sample(staffed_store):
    result = PrimaryManagerDetector(PrimaryManagerService(today=TODAY)).evaluate()
    assert result.rule is None
    assert result.sample_size == 0


def test_detector_tie_defaults_to_department(staffed_store):
    _record("E1", "M1")
    _record("E2", "M2")

    result = PrimaryManagerDetector(PrimaryManagerService(today=TODAY)).evaluate()

    assert result.rule is PrimaryManagerRule.DEPARTMENT_BASED
    assert result.tie_break_applied is True


def test_detector_tie_break_is_configurable(app, staffed_store):
    _record("E1", "M1")
    _record("E2", "M2")
    app.config["IMPORTER_MANAGER_TIE_BREAK"] = "contract"

    detector = PrimaryManagerDetector(PrimaryManagerService(today=TODAY), remember=False)
    assert detector.detect() is PrimaryManagerRule.CONTRACT_BASED
    assert UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC) is None


def test_detector_respects_sample_size(staffed_store):
    _record("E1", "M1")
    _record("E2", "M1")

    result = PrimaryManagerDetector(PrimaryManagerService(today=TODAY), sample_size=1).evaluate()
    assert result.sample_size == 1
    assert result.contract_matches == 1


def test_rule_parsing():
    assert PrimaryManagerRule.parse("Contract") is PrimaryManagerRule.CONTRACT_BASED
    assert PrimaryManagerRule.parse("department_based") is PrimaryManagerRule.DEPARTMENT_BASED
    assert PrimaryManagerRule.parse(None) is None
    with pytest.raises(ValueError):
        PrimaryManagerRule.parse("manual")


def test_default_rule_falls_back_to_config(app, monkeypatch):
    assert default_manager_rule() is PrimaryManagerRule.FROM_JSON

    monkeypatch.setitem(app.config, "IMPORTER_DEFAULT_MANAGER_RULE", "department")
    assert default_manager_rule() is PrimaryManagerRule.DEPARTMENT_BASED


def test_detected_rule_becomes_the_default(staffed_store):
    _record("E1", "M1")
    _record("E2", "M1")

    assert PrimaryManagerDetector(PrimaryManagerService(today=TODAY)).detect() is PrimaryManagerRule.CONTRACT_BASED
    assert default_manager_rule() is PrimaryManagerRule.CONTRACT_BASED


def test_unreadable_stored_rule_is_ignored(app):
    UserPreference.set(LAST_PRIMARY_MANAGER_LOGIC, "round-robin")
    assert default_manager_rule() is PrimaryManagerRule.FROM_JSON
