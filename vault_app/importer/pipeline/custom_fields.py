"""Custom field schema discovery for persons and contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .document import VaultDocument

PERSONS_TABLE = "persons"
CONTRACTS_TABLE = "contracts"
NULL_TOKEN = "null"


@dataclass(frozen=True)
class CustomFieldDefinition:
    table_name: str
    field_key: str
    display_name: str
    sort_order: int
    data_type: str = "text"

    def as_row(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "field_key": self.field_key,
            "display_name": self.display_name,
            "data_type": self.data_type,
            "sort_order": self.sort_order,
        }


def format_display_name(field_key: str | None) -> str:
    """
    Turn a snake_case, kebab-case or camelCase key into a title.

    >>> format_display_name("ip_phone_number")
    'Ip Phone Number'
    >>> format_display_name("mobilePhoneNumber")
    'Mobile Phone Number'
    """

    if field_key is None or not field_key.strip():
        return ""

    words: list[str] = []
    current = ""
    for char in field_key:
        if char in "_-":
            if current:
                words.append(current)
                current = ""
        elif char.isupper() and current:
            words.append(current)
            current = char
        else:
            current += char
    if current:
        words.append(current)

    return " ".join(word.upper() if len(word) == 1 else word[0].upper() + word[1:].lower() for word in words)


def normalize_custom_value(value: Any) -> Any:
    """The literal ``"null"`` token is stored as JSON null."""

    if isinstance(value, str) and value.strip().lower() == NULL_TOKEN:
        return None
    return value


def discover_custom_fields(document: VaultDocument) -> tuple[CustomFieldDefinition, ...]:
    """Collect one schema entry per ``(table, key)`` in document order."""

    seen: dict[tuple[str, str], None] = {}

    def _collect(table_name: str, custom: Mapping[str, Any]) -> None:
        for key in custom:
            seen.setdefault((table_name, key), None)

    for person in document.persons:
        _collect(PERSONS_TABLE, person.custom)
        for contract in person.contracts:
            _collect(CONTRACTS_TABLE, contract.custom)

    return tuple(
        CustomFieldDefinition(
            table_name=table_name,
            field_key=field_key,
            display_name=format_display_name(field_key),
            sort_order=position,
        )
        for position, (table_name, field_key) in enumerate(seen, start=1)
    )


def iter_custom_values(custom: Mapping[str, Any]) -> Iterable[tuple[str, Any]]:
    for key, value in custom.items():
        yield key, normalize_custom_value(value)
