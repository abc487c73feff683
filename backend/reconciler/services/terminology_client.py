"""External terminology lookups.

Implements the ``CodeLookup`` port against public terminology services:

    - LOINC: FHIR terminology server ``CodeSystem/$lookup`` (display + CLASS)
      and ``ValueSet/$expand`` text search
    - RxNorm: RxNav ``rxcui/{id}/properties.json`` and ``rxclass`` drug class
    - ICD-10 / SNOMED: answered from the local code tables only

Successful results are cached with a TTL. Non-2xx responses, transport
errors and malformed bodies all yield None.

Usage:
    async with TerminologyClient() as client:
        info = await client.lookup("4548-4", "loinc")
"""

import logging
from typing import Any

import httpx

from reconciler.core.config import settings
from reconciler.services.code_resolver import CodeInfo, CodeLookup, normalize_code_system
from reconciler.services.code_tables import CodeTables, get_code_tables
from reconciler.services.lookup_cache import LookupCache, create_lookup_cache

logger = logging.getLogger(__name__)

LOINC_SYSTEM_URI = "http://loinc.org"
LOINC_ALL_VALUE_SET = "http://loinc.org/vs"
LOINC_SEARCH_LIMIT = 10
RXNORM_SEARCH_LIMIT = 10


class TerminologyClient(CodeLookup):
    """httpx client for LOINC and RxNorm lookups.

    Args:
        client: Preconfigured AsyncClient (tests pass one with a MockTransport).
        cache: Result cache; defaults to the configured backend.
        tables: Local code tables used for ICD-10 and SNOMED.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: LookupCache | None = None,
        tables: CodeTables | None = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.cache = cache or create_lookup_cache()
        self.tables = tables or get_code_tables()

    async def __aenter__(self) -> "TerminologyClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.lookup_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
    ) -> dict[str, Any] | None:
        try:
            response = await self._get_client().get(url, params=params, headers=headers, auth=auth)
        except httpx.HTTPError as e:
            logger.error(f"Terminology request failed for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Terminology service returned {response.status_code} for {url}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Terminology service returned invalid JSON for {url}")
            return None
        return data if isinstance(data, dict) else None

    async def _cached(self, key: str) -> CodeInfo | None:
        value = await self.cache.aget(key)
        if value is None:
            return None
        return CodeInfo(name=value.get("name"), category=value.get("category"))

    async def _remember(self, key: str, info: CodeInfo) -> None:
        await self.cache.aset(key, {"name": info.name, "category": info.category})

    async def lookup(self, code: str, system: str) -> CodeInfo | None:
        """Look up a code in the service for its system."""
        normalized = normalize_code_system(system)

        if normalized == "loinc":
            return await self.lookup_loinc(code)
        if normalized == "rxnorm":
            return await self.lookup_rxnorm(code)
        if normalized == "icd10":
            return self.lookup_icd10(code)
        if normalized == "snomed":
            return self.lookup_snomed(code)

        logger.debug(f"Unknown code system {system} for {code}")
        return None

    # ==========================================================================
    # LOINC
    # ==========================================================================

    def _loinc_auth(self) -> httpx.Auth | None:
        if settings.loinc_username and settings.loinc_password:
            return httpx.BasicAuth(settings.loinc_username, settings.loinc_password)
        return None

    async def lookup_loinc(self, loinc_code: str) -> CodeInfo | None:
        """Look up a lab test by LOINC code.

        The CLASS property, when present, becomes the lower-cased category.
        """
        entry = self.tables.loinc.get(loinc_code)
        if entry is not None:
            return CodeInfo(name=entry.get("name"), category=entry.get("category"))

        cache_key = f"loinc:{loinc_code}"
        cached = await self._cached(cache_key)
        if cached:
            return cached

        data = await self._get_json(
            f"{settings.loinc_fhir_url.rstrip('/')}/CodeSystem/$lookup",
            params={"system": LOINC_SYSTEM_URI, "code": loinc_code},
            headers={"Accept": "application/fhir+json"},
            auth=self._loinc_auth(),
        )
        if data is None:
            return None

        name = None
        category = "unknown"
        for param in data.get("parameter") or []:
            if param.get("name") == "display":
                name = param.get("valueString")
            elif param.get("name") == "property":
                parts = {p.get("name"): p for p in param.get("part") or []}
                code_part = parts.get("code", {})
                value_part = parts.get("value", {})
                if code_part.get("valueCode") == "CLASS" and value_part.get("valueString"):
                    category = value_part["valueString"].lower()

        if not name:
            return None

        info = CodeInfo(name=name, category=category)
        await self._remember(cache_key, info)
        logger.debug(f"LOINC lookup {loinc_code} -> {name}")
        return info

    async def search_loinc(self, test_name: str) -> list[dict[str, Any]]:
        """Search LOINC codes by display text.

        Uses ``ValueSet/$expand`` over the implicit all-LOINC value set.

        Returns:
            Up to ten dicts with loinc and name.
        """
        data = await self._get_json(
            f"{settings.loinc_fhir_url.rstrip('/')}/ValueSet/$expand",
            params={"url": LOINC_ALL_VALUE_SET, "filter": test_name, "count": str(LOINC_SEARCH_LIMIT)},
            headers={"Accept": "application/fhir+json"},
            auth=self._loinc_auth(),
        )
        if data is None:
            return []

        results = []
        for concept in (data.get("expansion") or {}).get("contains") or []:
            if concept.get("code"):
                results.append({"loinc": concept["code"], "name": concept.get("display")})
        return results[:LOINC_SEARCH_LIMIT]

    # ==========================================================================
    # RxNorm
    # ==========================================================================

    async def lookup_rxnorm(self, rxcui: str) -> CodeInfo | None:
        """Look up a medication by RxCUI, with its drug class as category."""
        entry = self.tables.rxnorm.get(rxcui)
        if entry is not None:
            return CodeInfo(name=entry.get("name"), category=entry.get("category"))

        cache_key = f"rxnorm:{rxcui}"
        cached = await self._cached(cache_key)
        if cached:
            return cached

        base_url = settings.rxnav_url.rstrip("/")
        data = await self._get_json(f"{base_url}/rxcui/{rxcui}/properties.json")
        if data is None:
            return None

        concepts = (data.get("propConceptGroup") or {}).get("propConcept") or []
        if not concepts:
            return None

        name = concepts[0].get("propValue") or f"RxNorm {rxcui}"
        category = await self.get_rxnorm_class(rxcui)

        info = CodeInfo(name=name, category=category)
        await self._remember(cache_key, info)
        logger.debug(f"RxNorm lookup {rxcui} -> {name}")
        return info

    async def get_rxnorm_class(self, rxcui: str) -> str | None:
        """Get the first RxClass drug class name for an RxCUI."""
        data = await self._get_json(
            f"{settings.rxnav_url.rstrip('/')}/rxclass/class/byRxcui.json",
            params={"rxcui": rxcui},
        )
        if data is None:
            return None

        classes = (data.get("rxclassDrugInfoList") or {}).get("rxclassDrugInfo") or []
        if not classes:
            return None
        return (classes[0].get("rxclassMinConceptItem") or {}).get("className")

    async def search_rxnorm(self, drug_name: str) -> list[dict[str, Any]]:
        """Search RxNorm concepts by drug name.

        Returns:
            Up to ten dicts with rxcui, name, synonym and tty.
        """
        data = await self._get_json(
            f"{settings.rxnav_url.rstrip('/')}/drugs.json",
            params={"name": drug_name},
        )
        if data is None:
            return []

        results = []
        for group in (data.get("drugGroup") or {}).get("conceptGroup") or []:
            for concept in group.get("conceptProperties") or []:
                results.append({
                    "rxcui": concept.get("rxcui"),
                    "name": concept.get("name"),
                    "synonym": concept.get("synonym"),
                    "tty": concept.get("tty"),
                })
        return results[:RXNORM_SEARCH_LIMIT]

    # ==========================================================================
    # ICD-10 / SNOMED (local only)
    # ==========================================================================

    def lookup_icd10(self, icd10_code: str) -> CodeInfo | None:
        entry = self.tables.icd10.get(icd10_code)
        if entry is None:
            return None
        return CodeInfo(name=entry.get("name"), category=entry.get("category"))

    def lookup_snomed(self, snomed_code: str) -> CodeInfo | None:
        """Describe a SNOMED code through its ICD-10 cross-mapping."""
        mapping = self.tables.snomed_to_icd10.get(snomed_code)
        if mapping is None:
            return None
        icd10 = self.tables.icd10.get(mapping.get("icd10") or "")
        return CodeInfo(
            name=mapping.get("name"),
            category=icd10.get("category") if icd10 else None,
        )
