"""
Primary contract ordering configuration.

The primary manager service picks one "primary" contract per person before it
derives a manager from it. Contracts are first ranked by status (active,
future, past, undated) and then by the ordered field rules of the active
profile defined here.

Configuration is file-backed so we do not require database tables or migrations.
Operators can override the defaults by providing a JSON or YAML file path
through the ``IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH`` setting::

    key: fte-first
    label: FTE first
    fields:
      - field_name: fte
        sort_order: DESC
        priority: 1
      - field_name: start_date
        sort_order: ASC
        priority: 2
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Sequence

import yaml

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

SUPPORTED_FIELDS: tuple[str, ...] = (
    "fte",
    "hours_per_week",
    "sequence",
    "start_date",
    "end_date",
    "contract_id",
)

_FIELD_ALIASES = {
    "hoursperweek": "hours_per_week",
    "startdate": "start_date",
    "enddate": "end_date",
    "contractid": "contract_id",
}


@dataclass(frozen=True)
class OrderingRule:
    """
    One field in the primary contract ordering.

    Attributes:
        field_name: Contract attribute compared by this rule.
        descending: Sort highest values first when true.
        priority: Lower numbers are applied first.
        active: Inactive rules are kept for display but skipped when ranking.
    """

    field_name: str
    descending: bool = True
    priority: int = 0
    active: bool = True

    @property
    def sort_order(self) -> str:
        return "DESC" if self.descending else "ASC"


@dataclass(frozen=True)
class PrimaryContractProfile:
    key: str
    label: str
    description: str
    rules: Sequence[OrderingRule]

    def active_rules(self) -> tuple[OrderingRule, ...]:
        return tuple(sorted((rule for rule in self.rules if rule.active), key=lambda rule: rule.priority))


# ---------------------------------------------------------------------------
# Default profile
# ---------------------------------------------------------------------------

DEFAULT_RULES: tuple[OrderingRule, ...] = (
    OrderingRule("fte", descending=True, priority=1),
    OrderingRule("hours_per_week", descending=True, priority=2),
    OrderingRule("sequence", descending=True, priority=3),
    OrderingRule("end_date", descending=True, priority=4),
    OrderingRule("start_date", descending=False, priority=5),
    OrderingRule("contract_id", descending=False, priority=6),
)

DEFAULT_PROFILE = PrimaryContractProfile(
    key="default",
    label="Default primary contract",
    description="Highest FTE wins, then hours per week, sequence and the latest end date; "
    "ties go to the earliest start date and finally the lowest contract id.",
    rules=DEFAULT_RULES,
)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


class PrimaryContractConfigError(RuntimeError):
    """Raised when a profile override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise PrimaryContractConfigError(f"Primary contract profile {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise PrimaryContractConfigError(f"Unable to read primary contract profile {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise PrimaryContractConfigError(f"Primary contract profile {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise PrimaryContractConfigError("Primary contract profile must be a JSON/YAML object.")
    return dict(data)


def _normalize_field_name(raw: object) -> str:
    name = str(raw or "").strip()
    if not name:
        raise PrimaryContractConfigError("Each ordering rule requires a non-empty field_name.")
    lowered = name.lower()
    normalized = _FIELD_ALIASES.get(lowered, lowered)
    if normalized not in SUPPORTED_FIELDS:
        raise PrimaryContractConfigError(
            f"Unsupported ordering field {name!r}; expected one of {', '.join(SUPPORTED_FIELDS)}."
        )
    return normalized


def _coerce_rule(raw: Mapping[str, object], position: int) -> OrderingRule:
    field_name = _normalize_field_name(raw.get("field_name"))
    sort_order = str(raw.get("sort_order") or "DESC").strip().upper()
    if sort_order not in {"ASC", "DESC"}:
        raise PrimaryContractConfigError(f"{field_name}.sort_order must be ASC or DESC, got {sort_order!r}.")
    try:
        priority = int(raw.get("priority", position))
    except (TypeError, ValueError) as exc:
        raise PrimaryContractConfigError(f"{field_name}.priority must be an integer.") from exc
    return OrderingRule(
        field_name=field_name,
        descending=sort_order == "DESC",
        priority=priority,
        active=bool(raw.get("active", True)),
    )


def _coerce_profile(raw: Mapping[str, object]) -> PrimaryContractProfile:
    key = str(raw.get("key") or DEFAULT_PROFILE.key).strip() or DEFAULT_PROFILE.key
    label = str(raw.get("label") or DEFAULT_PROFILE.label).strip() or DEFAULT_PROFILE.label
    description = str(raw.get("description") or DEFAULT_PROFILE.description).strip() or DEFAULT_PROFILE.description
    raw_fields = raw.get("fields") or ()
    if isinstance(raw_fields, (str, bytes)) or not isinstance(raw_fields, Iterable):
        raise PrimaryContractConfigError("fields must be a sequence.")
    rules = []
    for position, item in enumerate(raw_fields, start=1):
        if not isinstance(item, Mapping):
            raise PrimaryContractConfigError("Each ordering rule must be an object.")
        rules.append(_coerce_rule(item, position))
    if not rules:
        rules = list(DEFAULT_RULES)
    return PrimaryContractProfile(key=key, label=label, description=description, rules=tuple(rules))


def load_profile(env: Mapping[str, str] | None = None) -> PrimaryContractProfile:
    """
    Load the active primary contract profile.

    ``env`` is any mapping holding ``IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH``
    (``os.environ`` or a Flask config). Without it the defaults are used.
    """

    env_map = env or {}
    override_path = env_map.get("IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH")
    if not override_path:
        return DEFAULT_PROFILE
    raw = _load_override(Path(override_path))
    return _coerce_profile(raw)


__all__ = [
    "OrderingRule",
    "PrimaryContractConfigError",
    "PrimaryContractProfile",
    "DEFAULT_PROFILE",
    "SUPPORTED_FIELDS",
    "load_profile",
]
