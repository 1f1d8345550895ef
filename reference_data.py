"""
Lookup tables used by the material-request dashboard.

The defaults mirror the ERP's cost-center and department naming. A JSON file
with the same keys (REFERENCE_DATA_PATH) replaces any table it names.
"""
import json
import re
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from config import get_config
from logging_setup import setup_logging

logger = setup_logging(__name__)
config = get_config()

UNASSIGNED = "Unassigned"
MISC_TYPE = "Lain-lain"

DEFAULT_BRANCHES: Dict[str, str] = {
    "JKT": "JAKARTA",
    "SBY": "SURABAYA",
    "BDG": "BANDUNG",
    "SMG": "SEMARANG",
    "MLG": "MALANG",
    "JBR": "JEMBER",
    "BWI": "BANYUWANGI",
    "BDW": "BONDOWOSO",
    "LMJ": "LUMAJANG",
    "PBL": "PROBOLINGGO",
}

DEFAULT_BRANCH_OVERRIDES: Dict[str, str] = {
    "SBY-PG": "SURABAYA-PG",
}

DEFAULT_DEPARTMENTS: Dict[str, str] = {
    "CONDITION BASE MONITORING - IDS": "CONDITION BASE MONITORING",
    "ELECTRICAL PANEL - IDS": "ELECTRICAL PANEL",
    "FABRIKASI INDUSTRIAL BLOWER - IDS": "BLOWER",
    "FABRIKASI INDUSTRIAL COMPRESSOR - IDS": "COMPRESSOR",
    "FABRIKASI INDUSTRIAL VACUUM - IDS": "VACUUM",
    "GENERAL FABRIKASI INDUSTRIAL - IDS": "GENERAL INDUSTRI",
    "GENERAL INDUSTRI - IDS": "GENERAL INDUSTRI",
    "INDUSTRIAL REPAIR - IDS": "INDUSTRIAL REPAIR",
    "OTOMOTIF BANYUWANGI - IDS": "OTOMOTIF",
    "OTOMOTIF BONDOWOSO - IDS": "OTOMOTIF",
    "OTOMOTIF JEMBER - IDS": "OTOMOTIF",
    "OTOMOTIF LUMAJANG - IDS": "OTOMOTIF",
    "OTOMOTIF PROBOLINGGO - IDS": "OTOMOTIF",
    "REWINDING - IDS": "REWINDING",
    "SERVICE BLOWER - IDS": "BLOWER",
    "SERVICE COMPRESSOR - IDS": "COMPRESSOR",
    "SERVICE VACUUM - IDS": "VACUUM",
    "SPARE PART BLOWER - IDS": "BLOWER",
    "SPARE PART COMPRESSOR - IDS": "COMPRESSOR",
    "SPARE PART VACUUM - IDS": "VACUUM",
    "UNIT BLOWER - IDS": "BLOWER",
    "UNIT COMPRESSOR - IDS": "COMPRESSOR",
    "UNIT VACUUM - IDS": "VACUUM",
}

# Ordered by priority: the first type any item matches wins.
DEFAULT_TYPE_RULES: List[Tuple[str, str]] = [
    ("Project", r"^(SO-|SOW-|PK/|PPM/|PP/)"),
    ("Operational", r"^OPERATIONAL"),
    ("Stock", r"^STOCK$"),
]

DEFAULT_PALETTE: List[str] = [
    "#2563eb", "#f59e0b", "#10b981", "#ef4444",
    "#7c3aed", "#06b6d4", "#f97316", "#0891b2",
]


class ReferenceTables(BaseModel):
    """Branch, department and project-type tables passed to the MR engine."""

    branches: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_BRANCHES))
    branch_overrides: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_BRANCH_OVERRIDES))
    departments: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_DEPARTMENTS))
    type_rules: List[Tuple[str, str]] = Field(default_factory=lambda: list(DEFAULT_TYPE_RULES))
    palette: List[str] = Field(default_factory=lambda: list(DEFAULT_PALETTE))

    def known_branches(self) -> List[str]:
        names: List[str] = []
        for name in list(self.branches.values()) + list(self.branch_overrides.values()):
            if name not in names:
                names.append(name)
        return names

    def type_names(self) -> List[str]:
        return [name for name, _ in self.type_rules] + [MISC_TYPE]

    def compiled_rules(self) -> List[Tuple[str, "re.Pattern[str]"]]:
        return _compile_rules(tuple(self.type_rules))


@lru_cache(maxsize=32)
def _compile_rules(rules: Tuple[Tuple[str, str], ...]):
    return [(name, re.compile(pattern, re.IGNORECASE)) for name, pattern in rules]


def load_reference_tables(path: Optional[str] = None) -> ReferenceTables:
    """Load tables from a JSON file, falling back to the defaults."""
    path = path if path is not None else config.REFERENCE_DATA_PATH
    if not path:
        return ReferenceTables()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    tables = ReferenceTables.model_validate(data)
    logger.info(f"Loaded reference tables from {path}")
    return tables
