from __future__ import annotations

import pytest

from vault_app.importer.pipeline import DepartmentCycleError, sort_departments
from vault_app.importer.pipeline.references import DepartmentRecord


def _department(external_id: str, parent: str | None = None) -> DepartmentRecord:
    return DepartmentRecord(
        external_id=external_id,
        display_name=f"Department {external_id}",
        code=None,
        parent_external_id=parent,
        manager_person_id=None,
        source="SAP",
    )


def _assert_parents_first(ordered):
    positions = {department.external_id: index for index, department in enumerate(ordered)}
    for department in ordered:
        if department.parent_external_id in positions:
            assert positions[department.parent_external_id] < positions[department.external_id]


def test_children_listed_before_parents_are_reordered():
    departments = [
        _department("GRANDCHILD", parent="CHILD"),
        _department("CHILD", parent="ROOT"),
        _department("ROOT"),
        _department("SIBLING", parent="ROOT"),
    ]
    order = sort_departments(departments)

    assert len(order.departments) == 4
    assert {department.external_id for department in order.departments} == {
        "GRANDCHILD",
        "CHILD",
        "ROOT",
        "SIBLING",
    }
    _assert_parents_first(order.departments)
    assert order.dangling_parents == ()


def test_deep_chain_does_not_hit_recursion_limit():
    depth = 5000
    departments = [_department(f"D{index}", parent=f"D{index - 1}" if index else None) for index in range(depth)]
    order = sort_departments(reversed(departments))

    assert len(order.departments) == depth
    _assert_parents_first(order.departments)


def test_cycle_raises_with_offending_department():
    departments = [_department("A", parent="B"), _department("B", parent="A"), _department("C")]

    with pytest.raises(DepartmentCycleError) as excinfo:
        sort_departments(departments)

    assert excinfo.value.external_id in {"A", "B"}
    assert "Circular department reference" in str(excinfo.value)


def test_self_reference_is_a_cycle():
    with pytest.raises(DepartmentCycleError):
        sort_departments([_department("A", parent="A")])


def test_dangling_parent_is_treated_as_root():
    order = sort_departments([_department("CHILD", parent="MISSING"), _department("OTHER")])

    assert [department.external_id for department in order.dangling_parents] == ["CHILD"]
    assert len(order.departments) == 2


def test_duplicate_identifiers_keep_first():
    first = _department("A")
    order = sort_departments([first, _department("A", parent="B"), _department("B")])

    assert len(order.departments) == 2
    assert order.departments[0] is first or order.departments[1] is first
