"""Parent-before-child ordering for the department hierarchy."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from .errors import DepartmentCycleError
from .references import DepartmentRecord


class VisitState(enum.Enum):
    UNVISITED = "unvisited"
    VISITING = "visiting"
    DONE = "done"


@dataclass(frozen=True)
class DepartmentOrder:
    departments: tuple[DepartmentRecord, ...]
    dangling_parents: tuple[DepartmentRecord, ...]


def sort_departments(departments: Iterable[DepartmentRecord]) -> DepartmentOrder:
    """
    Order departments so every parent precedes its children.

    Only parent edges whose target is part of ``departments`` are followed; a
    department pointing at an unknown parent is treated as a root and
    reported in ``dangling_parents``. A cycle raises ``DepartmentCycleError``
    and no partial ordering is returned.

    The walk uses an explicit stack so deep hierarchies never hit the
    interpreter recursion limit.
    """

    by_id: dict[str, DepartmentRecord] = {}
    for department in departments:
        by_id.setdefault(department.external_id, department)

    state = {external_id: VisitState.UNVISITED for external_id in by_id}
    ordered: list[DepartmentRecord] = []
    dangling: list[DepartmentRecord] = []

    for department in by_id.values():
        parent_id = department.parent_external_id
        if parent_id is not None and parent_id not in by_id:
            dangling.append(department)

    for start in by_id:
        if state[start] is not VisitState.UNVISITED:
            continue
        # Walk up the parent chain, then emit on the way back down.
        chain: list[str] = []
        current: str | None = start
        while current is not None and current in by_id:
            current_state = state[current]
            if current_state is VisitState.DONE:
                break
            if current_state is VisitState.VISITING:
                offender = by_id[current]
                raise DepartmentCycleError(offender.external_id, offender.display_name)
            state[current] = VisitState.VISITING
            chain.append(current)
            current = by_id[current].parent_external_id

        while chain:
            node = chain.pop()
            state[node] = VisitState.DONE
            ordered.append(by_id[node])

    return DepartmentOrder(departments=tuple(ordered), dangling_parents=tuple(dangling))

