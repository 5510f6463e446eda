"""Vault import pipeline."""

from __future__ import annotations

from .custom_fields import format_display_name
from .departments import DepartmentOrder, sort_departments
from .document import VaultDocument, load_vault_document, parse_vault_document
from .errors import (
    DepartmentCycleError,
    MissingPersonsSection,
    VaultDocumentError,
    VaultImportError,
    describe_import_error,
)
from .integrity import IntegrityReport, validate_contract_references
from .managers import (
    DetectionResult,
    PrimaryManagerDetector,
    PrimaryManagerRule,
    PrimaryManagerService,
    default_manager_rule,
)
from .mapping import ContractMappingContext
from .orchestrator import (
    ABORTED_MESSAGE,
    CANCELLED_MESSAGE,
    DECISION_REQUIRED_MESSAGE,
    ExistingDataDecision,
    ImportProgress,
    ImportResult,
    VaultImportService,
)
from .persistence import VaultPersistence
from .references import (
    ReferenceDataContext,
    ReferenceEntity,
    ReferenceKind,
    collect_reference_data,
    composite_key,
    deduplicate_references,
)
from .store import VaultStoreManager

__all__ = [
    "ABORTED_MESSAGE",
    "CANCELLED_MESSAGE",
    "DECISION_REQUIRED_MESSAGE",
    "ContractMappingContext",
    "DepartmentCycleError",
    "DepartmentOrder",
    "DetectionResult",
    "ExistingDataDecision",
    "ImportProgress",
    "ImportResult",
    "IntegrityReport",
    "MissingPersonsSection",
    "PrimaryManagerDetector",
    "PrimaryManagerRule",
    "PrimaryManagerService",
    "ReferenceDataContext",
    "ReferenceEntity",
    "ReferenceKind",
    "VaultDocument",
    "VaultDocumentError",
    "VaultImportError",
    "VaultImportService",
    "VaultPersistence",
    "VaultStoreManager",
    "collect_reference_data",
    "composite_key",
    "deduplicate_references",
    "default_manager_rule",
    "describe_import_error",
    "format_display_name",
    "load_vault_document",
    "parse_vault_document",
    "sort_departments",
    "validate_contract_references",
]
