"""Services for the health record reconciler.

- CodeTables: bundled LOINC / RxNorm / ICD-10 tables and SNOMED cross-maps
- CodeResolver: local code mapping plus best-effort enrichment
- TerminologyClient: LOINC FHIR and RxNav lookups behind a cache
- similarity: name similarity and FHIR date helpers used for matching

The aggregator (``reconciler.services.aggregator``) builds on the
normalizers and is imported from there directly.
"""

from reconciler.services.code_resolver import (
    CodeInfo,
    CodeLookup,
    CodeResolver,
    extract_code,
    find_coding,
    normalize_code_system,
)
from reconciler.services.code_tables import (
    CodeTables,
    get_code_tables,
    load_code_tables,
    reset_code_tables,
)
from reconciler.services.lookup_cache import (
    LookupCache,
    MemoryLookupCache,
    RedisLookupCache,
    create_lookup_cache,
)
from reconciler.services.similarity import (
    dates_within_days,
    most_recent,
    parse_fhir_datetime,
    ranges_overlap,
    same_day,
    similarity_ratio,
)
from reconciler.services.terminology_client import TerminologyClient

__all__ = [
    # Code resolution
    "CodeInfo",
    "CodeLookup",
    "CodeResolver",
    "extract_code",
    "find_coding",
    "normalize_code_system",
    # Code tables
    "CodeTables",
    "get_code_tables",
    "load_code_tables",
    "reset_code_tables",
    # Lookup cache
    "LookupCache",
    "MemoryLookupCache",
    "RedisLookupCache",
    "create_lookup_cache",
    # Similarity
    "dates_within_days",
    "most_recent",
    "parse_fhir_datetime",
    "ranges_overlap",
    "same_day",
    "similarity_ratio",
    # Terminology
    "TerminologyClient",
]
