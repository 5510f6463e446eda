from __future__ import annotations

from typing import Any

import pytest
from vault_builders import make_contract, make_department, make_person

from vault_app.importer.pipeline import VaultImportService


@pytest.fixture
def two_hq_document() -> dict[str, Any]:
    """One department and the HQ location sighted under two sources."""

    return {
        "Departments": [make_department("D1")],
        "Persons": [
            make_person(
                "P1",
                contracts=[
                    make_contract("C1", Location={"Name": "HQ"}, department={"ExternalId": "D1"}),
                    make_contract("C2", source="Workday", Location={"Name": "HQ"}),
                ],
            )
        ],
    }


@pytest.fixture
def import_service(app) -> VaultImportService:
    return VaultImportService()
