"""Cross-source deduplication of canonical records."""

from reconciler.deduplication.engine import (
    build_group,
    deduplicate,
    deduplicate_conditions,
    deduplicate_encounters,
    deduplicate_labs,
    deduplicate_medications,
    distinct_sources,
    group_by_seed,
)
from reconciler.deduplication.matchers import (
    conditions_match,
    encounters_match,
    is_unknown_name,
    labs_match,
    medications_match,
    records_match,
)
from reconciler.deduplication.mergers import (
    first_present,
    is_missing,
    merge_conditions,
    merge_encounters,
    merge_labs,
    merge_medications,
    merge_records,
)

__all__ = [
    # Engine
    "build_group",
    "deduplicate",
    "deduplicate_conditions",
    "deduplicate_encounters",
    "deduplicate_labs",
    "deduplicate_medications",
    "distinct_sources",
    "group_by_seed",
    # Matchers
    "conditions_match",
    "encounters_match",
    "is_unknown_name",
    "labs_match",
    "medications_match",
    "records_match",
    # Mergers
    "first_present",
    "is_missing",
    "merge_conditions",
    "merge_encounters",
    "merge_labs",
    "merge_medications",
    "merge_records",
]
