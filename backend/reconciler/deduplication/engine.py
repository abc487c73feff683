"""Deduplication engine.

Groups records that describe the same real-world fact and merges each group
into a DuplicateGroup carrying full provenance.

Grouping is a single greedy pass: records are visited in input order, each
unassigned record seeds a group, and every later unassigned record that
matches the *seed* joins it. Members are never compared with each other, so
groups are not guaranteed to be transitive closures and the result depends on
input order (it is deterministic for a fixed order).

Usage:
    groups = deduplicate_medications(epic_meds + humana_meds)
    for group in groups:
        print(group.merged.name, group.sources)
"""

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from reconciler.core.audit import log_merge
from reconciler.deduplication.matchers import get_matcher
from reconciler.deduplication.mergers import merge_records
from reconciler.schemas.base import RecordKind
from reconciler.schemas.groups import DuplicateGroup, SourceProvenance
from reconciler.schemas.records import CanonicalRecord, Condition, Encounter, LabResult, Medication

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=CanonicalRecord)


def group_by_seed(records: Sequence[R], matches: Callable[[R, R], bool]) -> list[list[R]]:
    """Greedy seed clustering.

    Args:
        records: Records in input order.
        matches: Pairwise duplicate predicate, called as ``matches(seed, other)``.

    Returns:
        Groups of records; each input record appears in exactly one group.
    """
    groups: list[list[R]] = []
    assigned = [False] * len(records)

    for i, seed in enumerate(records):
        if assigned[i]:
            continue

        group = [seed]
        assigned[i] = True

        for j in range(i + 1, len(records)):
            if assigned[j]:
                continue
            if matches(seed, records[j]):
                group.append(records[j])
                assigned[j] = True

        groups.append(group)

    return groups


def distinct_sources(records: Sequence[CanonicalRecord]) -> list[str]:
    """Source tags of the records, first-seen order, without duplicates."""
    return list(dict.fromkeys(r.source for r in records if r.source))


def build_group(members: Sequence[R]) -> DuplicateGroup[R]:
    """Merge members into a DuplicateGroup."""
    merged = merge_records(members)
    sources = distinct_sources(members)

    if len(members) > 1:
        log_merge(merged.kind.value, [m.id for m in members], sources)

    return DuplicateGroup(
        merged=merged,
        sources=sources,
        source_details=[SourceProvenance.from_record(m) for m in members],
        originals=list(members),
    )


def deduplicate(kind: RecordKind, records: Sequence[R] | None) -> list[DuplicateGroup[R]]:
    """Deduplicate records of one kind.

    Args:
        kind: Record kind (medication, lab, condition or encounter).
        records: Normalized records, possibly from several sources.

    Returns:
        One DuplicateGroup per distinct fact, in seed order.
    """
    if not records:
        return []

    matcher = get_matcher(kind)
    groups = [build_group(members) for members in group_by_seed(list(records), matcher)]

    logger.debug(f"Deduplicated {len(records)} {kind.value} records into {len(groups)} groups")
    return groups


def deduplicate_medications(records: Sequence[Medication] | None) -> list[DuplicateGroup[Medication]]:
    return deduplicate(RecordKind.MEDICATION, records)


def deduplicate_labs(records: Sequence[LabResult] | None) -> list[DuplicateGroup[LabResult]]:
    return deduplicate(RecordKind.LAB, records)


def deduplicate_conditions(records: Sequence[Condition] | None) -> list[DuplicateGroup[Condition]]:
    return deduplicate(RecordKind.CONDITION, records)


def deduplicate_encounters(records: Sequence[Encounter] | None) -> list[DuplicateGroup[Encounter]]:
    return deduplicate(RecordKind.ENCOUNTER, records)
