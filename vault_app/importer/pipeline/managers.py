"""
Primary manager computation and rule detection.

A person's primary manager is derived from their primary contract, either
from the manager recorded on the contract itself (contract based) or from the
manager of the contract's department (department based). Vault exports also
carry the manager the upstream system already chose; ``PrimaryManagerDetector``
compares that value against both rules to infer which one produced it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Sequence

from flask import current_app, has_app_context
from sqlalchemy import func, select

from config.primary_contract import DEFAULT_PROFILE, PrimaryContractProfile, load_profile
from vault_app.models import (
    LAST_PRIMARY_MANAGER_LOGIC,
    Contract,
    Department,
    Person,
    PrimaryManagerSource,
    UserPreference,
    db,
)
from vault_app.models.base import utc_now

FAR_FUTURE = date(2999, 1, 1)
DEFAULT_SAMPLE_SIZE = 100
DEFAULT_TIE_BREAK = "department"


class PrimaryManagerRule(str, enum.Enum):
    CONTRACT_BASED = "contract"
    DEPARTMENT_BASED = "department"
    FROM_JSON = "json"

    @classmethod
    def parse(cls, value: "PrimaryManagerRule | str | None") -> "PrimaryManagerRule | None":
        if value is None or isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for rule in cls:
            if rule.value == normalized or rule.name.lower() == normalized:
                return rule
        raise ValueError(f"Unknown primary manager rule {value!r}")

    @property
    def manager_source(self) -> PrimaryManagerSource:
        return {
            PrimaryManagerRule.CONTRACT_BASED: PrimaryManagerSource.CONTRACT,
            PrimaryManagerRule.DEPARTMENT_BASED: PrimaryManagerSource.DEPARTMENT,
            PrimaryManagerRule.FROM_JSON: PrimaryManagerSource.IMPORT,
        }[self]


class ContractStatus(enum.Enum):
    ACTIVE = 1
    FUTURE = 2
    PAST = 3
    NO_DATES = 4

    @property
    def label(self) -> str:
        return "No Dates" if self is ContractStatus.NO_DATES else self.name.title()


def contract_status(contract: Any, today: date | None = None) -> ContractStatus:
    today = today or date.today()
    start_date = getattr(contract, "start_date", None)
    end_date = getattr(contract, "end_date", None)
    if start_date is None:
        return ContractStatus.NO_DATES
    if start_date > today:
        return ContractStatus.FUTURE
    if end_date is not None and end_date < today:
        return ContractStatus.PAST
    return ContractStatus.ACTIVE


def _rule_value(contract: Any, field_name: str):
    value = getattr(contract, field_name, None)
    if field_name == "end_date" and value is None:
        value = FAR_FUTURE
    # Missing values sort below any present value.
    return (value is not None, value)


def select_primary_contract(
    contracts: Iterable[Any],
    *,
    profile: PrimaryContractProfile | None = None,
    today: date | None = None,
):
    """Return the primary contract: status rank first, then the profile rules."""

    ordered = list(contracts)
    if not ordered:
        return None
    profile = profile or DEFAULT_PROFILE
    today = today or date.today()

    for rule in reversed(profile.active_rules()):
        ordered.sort(key=lambda contract, name=rule.field_name: _rule_value(contract, name), reverse=rule.descending)
    ordered.sort(key=lambda contract: contract_status(contract, today).value)
    return ordered[0]


def _configured_profile() -> PrimaryContractProfile:
    if has_app_context():
        return load_profile(current_app.config)
    return DEFAULT_PROFILE


class PrimaryManagerService:
    """Compute and store primary managers for persons in the vault store."""

    def __init__(self, session=None, *, profile: PrimaryContractProfile | None = None, today: date | None = None):
        self.session = session if session is not None else db.session
        self.profile = profile or _configured_profile()
        self.today = today

    def _contracts_for(self, person_id: str) -> Sequence[Contract]:
        return self.session.execute(select(Contract).filter_by(person_id=person_id)).scalars().all()

    def primary_contract(self, person_id: str) -> Contract | None:
        return select_primary_contract(self._contracts_for(person_id), profile=self.profile, today=self.today)

    def _department_manager(self, contract: Contract) -> str | None:
        if contract.department_external_id is None:
            return None
        stmt = select(Department.manager_person_id).where(
            Department.external_id == contract.department_external_id,
            Department.source == contract.department_source,
        )
        manager = self.session.execute(stmt).scalars().first()
        return manager or None

    def compute(self, person_id: str, rule: PrimaryManagerRule) -> str | None:
        """Manager of ``person_id`` under ``rule``; None when the person has no contracts."""

        rule = PrimaryManagerRule.parse(rule)
        primary = self.primary_contract(person_id)
        if primary is None:
            return None
        if rule is PrimaryManagerRule.CONTRACT_BASED:
            return primary.manager_person_external_id or None
        if rule is PrimaryManagerRule.DEPARTMENT_BASED:
            return self._department_manager(primary)
        raise ValueError("Managers recorded in the vault document cannot be recomputed.")

    def update_person(self, person_id: str, rule: PrimaryManagerRule) -> bool:
        person = self.session.get(Person, person_id)
        if person is None:
            return False
        rule = PrimaryManagerRule.parse(rule)
        person.primary_manager_person_id = self.compute(person_id, rule)
        person.primary_manager_source = rule.manager_source
        person.primary_manager_updated_at = utc_now()
        return True

    def refresh_all(self, rule: PrimaryManagerRule) -> int:
        person_ids = self.session.execute(select(Person.person_id).order_by(Person.person_id)).scalars().all()
        for person_id in person_ids:
            self.update_person(person_id, rule)
        self.session.flush()
        return len(person_ids)

    def refresh_for_department(self, department_external_id: str, source: str | None, rule: PrimaryManagerRule) -> int:
        """Refresh persons holding a contract in one department."""

        stmt = (
            select(Contract.person_id)
            .where(Contract.department_external_id == department_external_id, Contract.source == source)
            .distinct()
        )
        person_ids = self.session.execute(stmt).scalars().all()
        for person_id in person_ids:
            self.update_person(person_id, rule)
        self.session.flush()
        return len(person_ids)

    def statistics(self) -> dict[str, int]:
        def _count(*criteria) -> int:
            return self.session.execute(select(func.count()).select_from(Person).where(*criteria)).scalar_one()

        total = _count()
        with_manager = _count(Person.primary_manager_person_id.is_not(None))
        return {
            "total_persons": total,
            "persons_with_manager": with_manager,
            "persons_without_manager": total - with_manager,
            "contract_based": _count(Person.primary_manager_source == PrimaryManagerSource.CONTRACT),
            "department_based": _count(Person.primary_manager_source == PrimaryManagerSource.DEPARTMENT),
            "from_json": _count(Person.primary_manager_source == PrimaryManagerSource.IMPORT),
        }


def default_manager_rule() -> PrimaryManagerRule:
    """
    Rule used when the caller names none.

    The last determinate detection wins over ``IMPORTER_DEFAULT_MANAGER_RULE``.
    An unreadable stored value is logged and ignored.
    """

    remembered = UserPreference.get(LAST_PRIMARY_MANAGER_LOGIC)
    if remembered:
        try:
            return PrimaryManagerRule.parse(remembered)
        except ValueError:
            current_app.logger.warning(
                "Ignoring stored primary manager rule %r",
                remembered,
                extra={"importer_stage": "primary_managers"},
            )
    return PrimaryManagerRule.parse(
        current_app.config.get("IMPORTER_DEFAULT_MANAGER_RULE") or PrimaryManagerRule.FROM_JSON.value
    )


@dataclass(frozen=True)
class DetectionResult:
    rule: PrimaryManagerRule | None
    contract_matches: int
    department_matches: int
    sample_size: int
    tie_break_applied: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule.value if self.rule else None,
            "contract_matches": self.contract_matches,
            "department_matches": self.department_matches,
            "sample_size": self.sample_size,
            "tie_break_applied": self.tie_break_applied,
        }


def _configured_tie_break() -> PrimaryManagerRule:
    value = DEFAULT_TIE_BREAK
    if has_app_context():
        value = current_app.config.get("IMPORTER_MANAGER_TIE_BREAK", DEFAULT_TIE_BREAK)
    return PrimaryManagerRule.parse(value)


class PrimaryManagerDetector:
    """
    Infer which rule produced the managers recorded in the store.

    Read-only with respect to persons and contracts. A determinate result is
    remembered as the ``last_primary_manager_logic`` preference.
    """

    def __init__(
        self,
        service: PrimaryManagerService | None = None,
        *,
        sample_size: int | None = None,
        tie_break: PrimaryManagerRule | str | None = None,
        remember: bool = True,
    ):
        self.service = service or PrimaryManagerService()
        if sample_size is None and has_app_context():
            sample_size = current_app.config.get("IMPORTER_DETECTION_SAMPLE_SIZE")
        self.sample_size = int(sample_size or DEFAULT_SAMPLE_SIZE)
        self.tie_break = PrimaryManagerRule.parse(tie_break) if tie_break else _configured_tie_break()
        self.remember = remember

    def _sample(self) -> Sequence[tuple[str, str]]:
        stmt = (
            select(Person.person_id, Person.primary_manager_person_id)
            .where(Person.primary_manager_person_id.is_not(None))
            .order_by(Person.person_id)
            .limit(self.sample_size)
        )
        return self.service.session.execute(stmt).all()

    def evaluate(self) -> DetectionResult:
        sample = self._sample()
        contract_matches = 0
        department_matches = 0
        for person_id, recorded in sample:
            if self.service.compute(person_id, PrimaryManagerRule.CONTRACT_BASED) == recorded:
                contract_matches += 1
            if self.service.compute(person_id, PrimaryManagerRule.DEPARTMENT_BASED) == recorded:
                department_matches += 1

        tie_break_applied = False
        if contract_matches > department_matches:
            rule = PrimaryManagerRule.CONTRACT_BASED
        elif department_matches > contract_matches:
            rule = PrimaryManagerRule.DEPARTMENT_BASED
        elif contract_matches == 0:
            rule = None
        else:
            rule = self.tie_break
            tie_break_applied = True

        result = DetectionResult(
            rule=rule,
            contract_matches=contract_matches,
            department_matches=department_matches,
            sample_size=len(sample),
            tie_break_applied=tie_break_applied,
        )
        if has_app_context():
            current_app.logger.info(
                "Primary manager detection: contract=%s department=%s sample=%s result=%s",
                contract_matches,
                department_matches,
                len(sample),
                rule.value if rule else "undetermined",
                extra={"importer_detection": result.as_dict()},
            )
        if rule is not None and self.remember:
            UserPreference.set(LAST_PRIMARY_MANAGER_LOGIC, rule.value)
        return result

    def detect(self) -> PrimaryManagerRule | None:
        return self.evaluate().rule
