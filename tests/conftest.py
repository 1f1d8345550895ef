"""
Shared fixtures.
"""

import os

os.environ.setdefault("ENV", "test")

import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient

from reference_data import ReferenceTables


@pytest.fixture
def tables():
    return ReferenceTables()


@pytest.fixture
def sample_mrs():
    """A small spread of MRs across branches, departments and types."""
    return [
        {
            "name": "MR-001",
            "status": "Draft",
            "transaction_date": "2025-01-10",
            "required_by": "2025-02-01",
            "cost_center": "JKT-001 - IDS",
            "items": [
                {"item_code": "MID-1", "item_name": "Bearing", "qty": 10, "qty_total_po": 0,
                 "project": "SO-2025-001", "department": "SERVICE BLOWER - IDS", "cost_center": "JKT-001 - IDS"},
                {"item_code": "MID-2", "item_name": "Belt", "qty": 4, "qty_total_po": 0,
                 "project": "SO-2025-001", "department": "UNIT BLOWER - IDS", "cost_center": "JKT-001 - IDS"},
            ],
        },
        {
            "name": "MR-002",
            "status": "Partially Ordered",
            "transaction_date": "2025-01-15T09:30:00",
            "required_by": "2025-01-20",
            "cost_center": "SBY-PG - IDS",
            "items": [
                {"item_code": "MID-1", "item_name": "Bearing", "qty": 6, "qty_total_po": 2, "received_qty": 1,
                 "project": "OPERATIONAL SBY", "department": "REWINDING - IDS", "cost_center": "SBY-PG - IDS"},
            ],
        },
        {
            "name": "MR-003",
            "status": "Pending",
            "transaction_date": "2025-02-03",
            "required_by": None,
            "cost_center": "",
            "items": [
                {"item_code": "MID-3", "item_name": "Seal", "qty": 2, "qty_total_po": 2,
                 "project": "STOCK", "department": "SPARE PART COMPRESSOR - IDS", "cost_center": ""},
            ],
        },
        {
            "name": "MR-004",
            "status": "draft",
            "transaction_date": "not a date",
            "required_by": "2025-03-01",
            "cost_center": "XYZ-1",
            "items": [
                {"item_code": "MID-4", "item_name": "Gasket", "qty": 1,
                 "project": "", "department": "", "cost_center": "XYZ-1"},
            ],
        },
    ]


@pytest.fixture
def collections():
    """One MagicMock per collection name, handed out by main.collection."""
    mocks = {}

    def get(name):
        if name not in mocks:
            mocks[name] = MagicMock(name=name)
        return mocks[name]

    with patch("main.collection", side_effect=get):
        yield get


@pytest.fixture
def client(collections):
    import main
    return TestClient(main.app)
