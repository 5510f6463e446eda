"""
Store writes for the vault importer.

``VaultPersistence`` wraps the SQLAlchemy session with the handful of write
primitives the loader needs: idempotent inserts, JSON custom field merges and
the person contract summary cache. Dialect specifics (``ON CONFLICT DO
NOTHING``) stay in this module.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Iterable, Iterator, Mapping, Sequence

from flask import current_app, has_app_context
from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection

from vault_app.models import Contract, Person, PersonContractSummary, SourceSystem, db

from .custom_fields import CONTRACTS_TABLE, PERSONS_TABLE, normalize_custom_value
from .managers import ContractStatus, contract_status, select_primary_contract

DEFAULT_BATCH_SIZE = 500


def _configured_batch_size() -> int:
    if has_app_context():
        return int(current_app.config.get("IMPORTER_BATCH_SIZE", DEFAULT_BATCH_SIZE))
    return DEFAULT_BATCH_SIZE


def _chunks(rows: Sequence[Mapping[str, Any]], size: int) -> Iterator[Sequence[Mapping[str, Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class VaultPersistence:
    """Write primitives bound to one session."""

    def __init__(self, session=None, *, batch_size: int | None = None):
        self.session = session if session is not None else db.session
        self.batch_size = batch_size or _configured_batch_size()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def commit_batch(self) -> None:
        if has_app_context() and current_app.config.get("TESTING"):
            self.session.flush()
        else:
            self.session.commit()

    @contextmanager
    def scoped_connection(self) -> Iterator[Connection]:
        """Yield a connection inside its own transaction; always released."""

        connection = self.session.get_bind().connect()
        transaction = connection.begin()
        try:
            yield connection
            transaction.commit()
        except Exception:
            transaction.rollback()
            raise
        finally:
            connection.close()

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def _insert_ignore(self, model):
        dialect = self.dialect_name
        if dialect == "sqlite":
            return sqlite.insert(model).on_conflict_do_nothing()
        if dialect == "postgresql":
            return postgresql.insert(model).on_conflict_do_nothing()
        raise NotImplementedError(f"insert-or-ignore is not supported for the {dialect} dialect")

    def insert_or_ignore(self, model, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert rows, skipping those that collide with a unique key. Returns rows inserted."""

        rows = list(rows)
        inserted = 0
        for batch in _chunks(rows, self.batch_size):
            for row in batch:
                result = self.session.execute(self._insert_ignore(model).values(**row))
                inserted += max(result.rowcount or 0, 0)
            self.commit_batch()
        return inserted

    def insert_or_ignore_source_system(
        self,
        system_id: str,
        display_name: str | None = None,
        identification_key: str | None = None,
    ) -> int:
        return self.insert_or_ignore(
            SourceSystem,
            [
                {
                    "system_id": system_id,
                    "display_name": display_name if display_name is not None else "Unknown",
                    "identification_key": identification_key if identification_key is not None else system_id,
                }
            ],
        )

    def bulk_insert(self, model, rows: Sequence[Mapping[str, Any]]) -> int:
        """Plain batched insert for rows already known to be unique."""

        for batch in _chunks(rows, self.batch_size):
            self.session.execute(insert(model), list(batch))
            self.commit_batch()
        return len(rows)

    # ------------------------------------------------------------------
    # Custom fields
    # ------------------------------------------------------------------

    def _custom_field_owner(self, table: str, entity_id: str):
        if table == PERSONS_TABLE:
            return self.session.get(Person, entity_id)
        if table == CONTRACTS_TABLE:
            return self.session.execute(select(Contract).filter_by(external_id=entity_id)).scalar_one_or_none()
        raise ValueError(f"Custom fields are not supported for table {table!r}")

    def _custom_field_model(self, table: str):
        if table == PERSONS_TABLE:
            return Person
        if table == CONTRACTS_TABLE:
            return Contract
        raise ValueError(f"Custom fields are not supported for table {table!r}")

    def upsert_custom_field_value(self, table: str, entity_id: str, field_key: str, value: Any) -> bool:
        """
        Set one custom field key on a person or contract.

        Sibling keys are preserved. Returns False when the entity does not
        exist.
        """

        owner = self._custom_field_owner(table, entity_id)
        if owner is None:
            return False
        merged = dict(owner.custom_fields or {})
        merged[field_key] = normalize_custom_value(value)
        owner.custom_fields = merged
        return True

    def merge_custom_fields(self, table: str, entity_id: str, values: Mapping[str, Any]) -> int:
        written = 0
        for key, value in values.items():
            if self.upsert_custom_field_value(table, entity_id, key, value):
                written += 1
        return written

    def backfill_custom_field(self, table: str, field_key: str, default: Any = None) -> int:
        """Add ``field_key`` to every row of ``table`` that lacks it."""

        model = self._custom_field_model(table)
        updated = 0
        for owner in self.session.execute(select(model)).scalars():
            current = owner.custom_fields or {}
            if field_key in current:
                continue
            merged = dict(current)
            merged[field_key] = normalize_custom_value(default)
            owner.custom_fields = merged
            updated += 1
        self.commit_batch()
        return updated

    # ------------------------------------------------------------------
    # Derived cache
    # ------------------------------------------------------------------

    def refresh_derived_cache(self, person_id: str, *, today: date | None = None, profile=None) -> PersonContractSummary | None:
        """Rebuild the contract summary row of one person. Safe to repeat."""

        today = today or date.today()
        person = self.session.get(Person, person_id)
        summary = self.session.get(PersonContractSummary, person_id)
        if person is None:
            if summary is not None:
                self.session.delete(summary)
            return None

        contracts = list(
            self.session.execute(select(Contract).filter_by(person_id=person_id)).scalars()
        )
        if summary is None:
            summary = PersonContractSummary(person_id=person_id)
            self.session.add(summary)
            self.session.flush()

        primary = select_primary_contract(contracts, profile=profile, today=today)
        start_dates = [contract.start_date for contract in contracts if contract.start_date is not None]
        end_dates = [contract.end_date for contract in contracts if contract.end_date is not None]

        summary.contract_count = len(contracts)
        summary.active_contract_count = sum(
            1 for contract in contracts if contract_status(contract, today) is ContractStatus.ACTIVE
        )
        summary.primary_contract_external_id = primary.external_id if primary else None
        summary.department_external_id = primary.department_external_id if primary else None
        summary.title_external_id = primary.title_external_id if primary else None
        summary.earliest_start_date = min(start_dates) if start_dates else None
        summary.latest_end_date = max(end_dates) if end_dates else None
        return summary
