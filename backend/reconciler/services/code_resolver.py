"""Code Resolver.

Maps source-specific codes to canonical code systems (LOINC, RxNorm, ICD-10)
using the static code tables first and an optional external lookup as
best-effort enrichment.

The enrichment path is a port: anything implementing ``CodeLookup`` can be
injected (the httpx-based TerminologyClient in production, a stub in tests).
Without one, resolution is local-only.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from reconciler.core.audit import log_enrichment_failure
from reconciler.services.code_tables import CodeTables, get_code_tables

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeInfo:
    """Display name and category returned by a code lookup."""

    name: str | None = None
    category: str | None = None


class CodeLookup(ABC):
    """Port for external code lookups."""

    @abstractmethod
    async def lookup(self, code: str, system: str) -> CodeInfo | None:
        """Look up a code.

        Args:
            code: Code value.
            system: Short system tag (loinc, rxnorm, icd10, snomed).

        Returns:
            CodeInfo, or None when the code is unknown to the service.
            Implementations may also raise; callers treat that as no result.
        """


def normalize_code_system(system: str | None) -> str | None:
    """Normalize a code system URI or name to a short tag.

    >>> normalize_code_system("http://loinc.org")
    'loinc'
    >>> normalize_code_system("http://hl7.org/fhir/sid/icd-10-cm")
    'icd10'
    """
    if not system:
        return None

    system_lower = system.lower()

    if "loinc" in system_lower:
        return "loinc"
    if "rxnorm" in system_lower:
        return "rxnorm"
    if "icd-10" in system_lower or "icd10" in system_lower:
        return "icd10"
    if "snomed" in system_lower or "sct" in system_lower:
        return "snomed"
    if "cpt" in system_lower:
        return "cpt"
    if "ndc" in system_lower:
        return "ndc"

    return system_lower


def find_coding(codings: Any, system_fragment: str) -> dict[str, Any] | None:
    """Find the first coding with a code whose system contains a fragment.

    Matching is a case-insensitive substring test on the ``system`` value.
    """
    if not isinstance(codings, list):
        return None

    fragment = system_fragment.lower()
    for coding in codings:
        if not isinstance(coding, dict) or not coding.get("code"):
            continue
        system = coding.get("system")
        if isinstance(system, str) and fragment in system.lower():
            return coding
    return None


def extract_code(codings: Any, preferred_system: str | None = None) -> str | None:
    """Extract a code from a FHIR coding array.

    Returns the code of the first coding whose system contains
    ``preferred_system`` (case-insensitive), else the first coding's code,
    else None.
    """
    if not isinstance(codings, list) or not codings:
        return None

    if preferred_system:
        preferred = find_coding(codings, preferred_system)
        if preferred:
            return preferred["code"]

    first = codings[0]
    if isinstance(first, dict):
        return first.get("code") or None
    return None


class CodeResolver:
    """Resolves codes against the static tables with optional enrichment.

    Args:
        lookup: External lookup used for codes absent from the local tables.
        tables: Code tables; defaults to the process-wide singleton.
    """

    def __init__(
        self,
        lookup: CodeLookup | None = None,
        tables: CodeTables | None = None,
    ):
        self.lookup = lookup
        self.tables = tables or get_code_tables()

    @property
    def can_enrich(self) -> bool:
        return self.lookup is not None

    def local_entry(self, code: str | None, system: str | None) -> dict[str, Any] | None:
        """Look up a code in the local table for a short system tag."""
        if not code:
            return None
        entry = self.tables.table_for(system).get(code)
        return dict(entry) if entry is not None else None

    def loinc_for(self, code: str | None) -> str | None:
        """Map a proprietary lab code to LOINC via the local table."""
        entry = self.local_entry(code, "loinc")
        return entry.get("loinc") if entry else None

    def rxnorm_for(self, code: str | None) -> str | None:
        """Map an NDC or proprietary drug code to RxNorm via the local table."""
        entry = self.local_entry(code, "rxnorm")
        return entry.get("rxnorm") if entry else None

    def icd10_for_snomed(self, snomed_code: str | None) -> str | None:
        """Cross-map a SNOMED code to ICD-10 via the local table."""
        entry = self.local_entry(snomed_code, "snomed")
        return entry.get("icd10") if entry else None

    async def enrich(self, code: str | None, system: str | None) -> CodeInfo | None:
        """Best-effort external lookup for a code missing from the local table.

        Every failure (unknown code, transport error, malformed response,
        anything the lookup raises) is treated as no enrichment: this is the
        single place enrichment errors are swallowed.

        Returns:
            CodeInfo with at least a name, or None.
        """
        if self.lookup is None or not code or not system:
            return None
        if self.local_entry(code, system) is not None:
            return None

        try:
            info = await self.lookup.lookup(code, system)
        except Exception as e:
            logger.debug(f"Code lookup failed for {system}:{code}: {e}")
            log_enrichment_failure(code, system, str(e))
            return None

        if info is None or not info.name:
            return None
        return info

    async def enrich_coding(self, coding: dict[str, Any] | None) -> dict[str, Any] | None:
        """Return a copy of a FHIR coding annotated with lookup results.

        Local table entries take precedence over the external lookup. The
        copy carries ``name``, ``category``, ``codeSystem`` and ``_enriched``.
        """
        if not coding or not coding.get("code"):
            return coding

        code = coding["code"]
        system = normalize_code_system(coding.get("system"))
        code_system = system.upper() if system else "UNKNOWN"

        entry = self.local_entry(code, system)
        info: CodeInfo | None
        if entry is not None:
            info = CodeInfo(name=entry.get("name"), category=entry.get("category"))
        else:
            info = await self.enrich(code, system)

        if info is None:
            return {**coding, "codeSystem": code_system, "_enriched": False}

        return {
            **coding,
            "display": coding.get("display") or info.name,
            "name": info.name,
            "category": info.category,
            "codeSystem": code_system,
            "_enriched": True,
        }
