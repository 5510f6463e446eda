# vault_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .contract import Contract
from .custom_field import CustomFieldSchema
from .department import Department
from .importer import ImportRun, ImportRunStatus, ImportSkip, ImportSkipType
from .person import Contact, ContactType, Person, PersonContractSummary, PrimaryManagerSource
from .preference import LAST_PRIMARY_MANAGER_LOGIC, UserPreference
from .reference import (
    REFERENCE_MODELS,
    CostBearer,
    CostCenter,
    Division,
    Employer,
    Location,
    Organization,
    Team,
    Title,
)
from .source_system import SourceSystem

# Tables owned by the vault data set; removed on overwrite and backed up before it.
VAULT_MODELS = (
    SourceSystem,
    Organization,
    Location,
    Employer,
    CostCenter,
    CostBearer,
    Team,
    Division,
    Title,
    Person,
    Department,
    Contact,
    Contract,
    PersonContractSummary,
    CustomFieldSchema,
)

__all__ = [
    "db",
    "BaseModel",
    "SourceSystem",
    "Organization",
    "Location",
    "Employer",
    "CostCenter",
    "CostBearer",
    "Team",
    "Division",
    "Title",
    "REFERENCE_MODELS",
    "Department",
    "Person",
    "Contact",
    "ContactType",
    "PrimaryManagerSource",
    "PersonContractSummary",
    "Contract",
    "CustomFieldSchema",
    "UserPreference",
    "LAST_PRIMARY_MANAGER_LOGIC",
    "ImportRun",
    "ImportRunStatus",
    "ImportSkip",
    "ImportSkipType",
    "VAULT_MODELS",
]
