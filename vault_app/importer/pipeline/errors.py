"""
Error types and user-facing messages for vault imports.

Structural errors (a malformed document, a department cycle, a missing
``Persons`` section) subclass ``VaultImportError`` and already carry a
message that names the offending identifier. Persistence failures surface as
SQLAlchemy exceptions and are translated by ``describe_import_error``.
"""

from __future__ import annotations

import logging
import traceback

from flask import current_app, has_app_context
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

NO_PERSONS_MESSAGE = "Invalid vault.json file or no persons found."

_SQLSTATE_MESSAGES = {
    "42883": "Import failed: {message}\n\nThis is likely a database compatibility issue. Please check the logs for details.",
    "23505": "Import failed: A duplicate key constraint was violated.\n\n{message}",
    "23503": "Import failed: A foreign key constraint was violated.\n\n{message}",
    "22008": "Import failed: Invalid date/time format.\n\n{message}",
    "08001": "Import failed: Cannot connect to database server.\n\n{message}",
    "3D000": "Import failed: Invalid catalog name in connection string.\n\n{message}",
}


class VaultImportError(ValueError):
    """Base class for structural import failures."""


class VaultDocumentError(VaultImportError):
    """Raised when the vault document cannot be read or parsed."""


class MissingPersonsSection(VaultImportError):
    """Raised when a full import is requested for a document without persons."""

    def __init__(self, message: str = NO_PERSONS_MESSAGE) -> None:
        super().__init__(message)


class DepartmentCycleError(VaultImportError):
    """Raised when the department parent chain loops back on itself."""

    def __init__(self, external_id: str, display_name: str | None = None) -> None:
        self.external_id = external_id
        self.display_name = display_name or ""
        label = f"{external_id} ({self.display_name})" if self.display_name else external_id
        super().__init__(f"Circular department reference detected involving department {label}.")


def _logger():
    return current_app.logger if has_app_context() else logger


def sqlstate_of(exc: BaseException) -> str | None:
    """Return the SQLSTATE code of a wrapped DBAPI error, when the driver exposes one."""

    original = exc.orig if isinstance(exc, DBAPIError) else exc
    code = getattr(original, "pgcode", None) or getattr(original, "sqlstate", None)
    return str(code) if code else None


def _driver_message(exc: BaseException) -> str:
    original = exc.orig if isinstance(exc, DBAPIError) else exc
    message = str(original).strip()
    return message or exc.__class__.__name__


def describe_import_error(exc: BaseException, operation: str) -> str:
    """Build the message shown to operators for a failed import stage."""

    if isinstance(exc, VaultImportError):
        return str(exc)

    code = sqlstate_of(exc)
    if code is not None:
        message = _driver_message(exc)
        template = _SQLSTATE_MESSAGES.get(code)
        if template is not None:
            return template.format(message=message)
        return f"Import failed: {message}\n\nSQL State: {code}"

    return f"Import failed: {_driver_message(exc)}\n\nOperation: {operation}"


def log_import_exception(exc: BaseException, operation: str, context: str | None = None) -> None:
    """Write diagnostic detail for a failed import stage to the application log."""

    original = exc.orig if isinstance(exc, DBAPIError) else None
    stack = traceback.format_tb(exc.__traceback__)[-5:] if exc.__traceback__ else []
    _logger().error(
        "Vault import failed during %s: %s",
        operation,
        exc,
        extra={
            "importer_operation": operation,
            "importer_context": context,
            "importer_exception_type": exc.__class__.__name__,
            "importer_sqlstate": sqlstate_of(exc),
            "importer_db_hint": getattr(getattr(original, "diag", None), "message_hint", None),
            "importer_stack": [line.strip() for line in stack],
            "importer_cause": str(exc.__cause__) if exc.__cause__ else None,
        },
    )
