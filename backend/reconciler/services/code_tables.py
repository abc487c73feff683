"""Static code mapping tables.

Loads the bundled LOINC, RxNorm and ICD-10 mapping fixtures once per process
and exposes them as read-only mappings. Entries are keyed by source code
(standard or proprietary) and carry the canonical code, a display name and a
category:

    loinc.json   {"HBA1C": {"name": ..., "loinc": "4548-4", "category": ...}}
    rxnorm.json  {"<rxcui or NDC>": {"name": ..., "rxnorm": ..., "category": ...}}
    icd10.json   {"E11.9": {"name": ..., "icd10": "E11.9", "category": ...},
                  "_snomed_mappings": {"44054006": {"icd10": "E11.9", "name": ...}}}

This module uses a singleton pattern so the fixtures are parsed only once and
shared by every normalizer.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"

SNOMED_MAPPINGS_KEY = "_snomed_mappings"

# Singleton instance and lock for thread-safe initialization
_code_tables: "CodeTables | None" = None
_code_tables_lock = Lock()


@dataclass(frozen=True)
class CodeTables:
    """Read-only code mapping tables."""

    loinc: Mapping[str, Mapping[str, Any]]
    rxnorm: Mapping[str, Mapping[str, Any]]
    icd10: Mapping[str, Mapping[str, Any]]
    snomed_to_icd10: Mapping[str, Mapping[str, Any]]

    def table_for(self, system: str | None) -> Mapping[str, Mapping[str, Any]]:
        """Return the table keyed by codes of a short system tag."""
        return {
            "loinc": self.loinc,
            "rxnorm": self.rxnorm,
            "ndc": self.rxnorm,
            "icd10": self.icd10,
            "snomed": self.snomed_to_icd10,
        }.get(system or "", MappingProxyType({}))

    def get_stats(self) -> dict[str, int]:
        """Get table sizes."""
        return {
            "loinc": len(self.loinc),
            "rxnorm": len(self.rxnorm),
            "icd10": len(self.icd10),
            "snomed_to_icd10": len(self.snomed_to_icd10),
        }


def _freeze(table: dict[str, Any]) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType(
        {code: MappingProxyType(dict(entry)) for code, entry in table.items() if isinstance(entry, dict)}
    )


def _load_fixture(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.warning(f"Code table fixture not found: {path}")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info(f"Loaded {len(data)} entries from {path.name}")
    return data


def load_code_tables(fixtures_dir: Path = FIXTURES_DIR) -> CodeTables:
    """Load the mapping fixtures from a directory.

    Args:
        fixtures_dir: Directory holding loinc.json, rxnorm.json and icd10.json.

    Returns:
        Frozen CodeTables.
    """
    loinc = _load_fixture(fixtures_dir / "loinc.json")
    rxnorm = _load_fixture(fixtures_dir / "rxnorm.json")
    icd10 = _load_fixture(fixtures_dir / "icd10.json")
    snomed = icd10.pop(SNOMED_MAPPINGS_KEY, {})

    return CodeTables(
        loinc=_freeze(loinc),
        rxnorm=_freeze(rxnorm),
        icd10=_freeze(icd10),
        snomed_to_icd10=_freeze(snomed),
    )


def get_code_tables() -> CodeTables:
    """Get the process-wide CodeTables instance, loading it on first use."""
    global _code_tables

    if _code_tables is None:
        with _code_tables_lock:
            if _code_tables is None:
                logger.info("Loading static code tables")
                _code_tables = load_code_tables()

    return _code_tables


def reset_code_tables() -> None:
    """Reset the singleton instance (for testing)."""
    global _code_tables
    with _code_tables_lock:
        _code_tables = None
