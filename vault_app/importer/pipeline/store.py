"""
Existing-data checks, backups and resets for the vault store.

Only the vault data set tables (``VAULT_MODELS``) are touched; the import run
audit trail and user preferences survive an overwrite.
"""

from __future__ import annotations

import json
import shutil
from datetime import date, datetime
from pathlib import Path

from flask import current_app
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from vault_app.models import (
    REFERENCE_MODELS,
    VAULT_MODELS,
    Contact,
    Contract,
    CustomFieldSchema,
    Department,
    Person,
    SourceSystem,
    db,
)

from .persistence import VaultPersistence

BACKUP_PREFIX = "vault_backup_"
# Company-only imports leave source systems and reference rows behind without persons.
_DATA_MODELS = (Person, Contract, Department, Contact, CustomFieldSchema, SourceSystem, *REFERENCE_MODELS.values())


def _json_default(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


class VaultStoreManager:
    def __init__(self, session=None, *, backup_dir: str | Path | None = None):
        self.session = session if session is not None else db.session
        self._backup_dir = backup_dir

    @property
    def backup_dir(self) -> Path:
        configured = self._backup_dir or current_app.config.get("IMPORTER_BACKUP_DIR")
        path = Path(configured) if configured else Path(current_app.instance_path) / "backups"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def has_data(self) -> bool:
        """True when any vault data table holds rows. Query failures read as empty."""

        try:
            for model in _DATA_MODELS:
                count = self.session.execute(select(func.count()).select_from(model)).scalar_one()
                if count:
                    return True
            return False
        except SQLAlchemyError as exc:
            current_app.logger.error(
                "Unable to check the vault store for existing data: %s",
                exc,
                extra={"importer_stage": "has_data"},
            )
            return False

    def _sqlite_database_path(self) -> Path | None:
        url = self.session.get_bind().url
        if url.get_backend_name() != "sqlite":
            return None
        database = url.database
        if not database or database == ":memory:" or database.startswith("file::memory:"):
            return None
        return Path(database)

    def backup_store(self) -> Path:
        """
        Copy the current store aside and return the backup path.

        File-backed SQLite databases are copied together with their WAL and
        shared-memory files. Any other backend is dumped to JSON.
        """

        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        database_path = self._sqlite_database_path()
        if database_path is not None and database_path.exists():
            self.session.commit()
            target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.db"
            shutil.copy2(database_path, target)
            for suffix in ("-wal", "-shm"):
                companion = Path(f"{database_path}{suffix}")
                if companion.exists():
                    shutil.copy2(companion, Path(f"{target}{suffix}"))
        else:
            target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.json"
            payload = self._dump_tables()
            target.write_text(json.dumps(payload, default=_json_default, indent=2), encoding="utf-8")

        current_app.logger.info(
            "Vault store backed up to %s",
            target,
            extra={"importer_backup_path": str(target)},
        )
        return target

    def _dump_tables(self) -> dict[str, list[dict]]:
        self.session.commit()
        payload: dict[str, list[dict]] = {}
        with VaultPersistence(self.session).scoped_connection() as connection:
            for model in VAULT_MODELS:
                table = model.__table__
                rows = connection.execute(select(table)).mappings().all()
                payload[table.name] = [dict(row) for row in rows]
        return payload

    def delete_store(self) -> None:
        """Remove every row of the vault tables, children first."""

        for model in reversed(VAULT_MODELS):
            self.session.execute(delete(model))
        VaultPersistence(self.session).commit_batch()
        current_app.logger.info("Vault store cleared", extra={"importer_stage": "delete_store"})
