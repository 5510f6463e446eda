"""
Importer-specific SQLAlchemy models: run metadata and per-record skips.
"""

from .schema import ImportRun, ImportRunStatus, ImportSkip, ImportSkipType

__all__ = [
    "ImportRun",
    "ImportRunStatus",
    "ImportSkip",
    "ImportSkipType",
]
