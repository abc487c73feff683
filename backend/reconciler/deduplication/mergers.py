"""Merge policies: build one canonical record from a duplicate group.

Rules applied per field, scanning members in group order:

    - default: first present value (None, "", [] and "unknown"
      placeholders count as missing); falls back to the first member's value
    - dates: most recent
    - labs / conditions / encounters: status and value fields come from a
      preferred member (final / confirmed / completed) when it has them
    - medication refills: maximum
    - enriched: true if any member was enriched

Merged records drop ``raw``; the untouched members stay available on the
DuplicateGroup.
"""

from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any

from reconciler.normalizers.encounters import compute_duration
from reconciler.schemas.base import EncounterStatus, RecordKind, VerificationStatus
from reconciler.schemas.records import CanonicalRecord, Condition, Encounter, LabResult, Medication
from reconciler.services.similarity import most_recent

Merger = Callable[[Sequence[Any]], Any]


def is_missing(value: Any) -> bool:
    """Whether a field value counts as absent when merging."""
    if value is None:
        return True
    if isinstance(value, str):
        lowered = value.strip().lower()
        return lowered == "" or lowered == "unknown" or lowered.startswith("unknown ")
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def first_present(values: Sequence[Any]) -> Any:
    """First value that is not missing, else the first value."""
    for value in values:
        if not is_missing(value):
            return value
    return values[0] if values else None


def _pick(records: Sequence[CanonicalRecord], attr: str) -> Any:
    return first_present([getattr(r, attr) for r in records])


def _pick_all(records: Sequence[CanonicalRecord], *attrs: str) -> dict[str, Any]:
    return {attr: _pick(records, attr) for attr in attrs}


def _latest(records: Sequence[CanonicalRecord], attr: str) -> str | None:
    return most_recent([getattr(r, attr) for r in records])


def _code_pair(records: Sequence[CanonicalRecord]) -> dict[str, Any]:
    """Code and code system from the first member that has a code."""
    for record in records:
        if record.code:
            return {"code": record.code, "code_system": record.code_system}
    return {"code": None, "code_system": records[0].code_system}


def _preferred(records: Sequence[CanonicalRecord], attr: str, wanted: Any) -> CanonicalRecord:
    return next((r for r in records if getattr(r, attr) == wanted), records[0])


def _from_preferred(preferred: CanonicalRecord, records: Sequence[CanonicalRecord], attr: str) -> Any:
    value = getattr(preferred, attr)
    return value if not is_missing(value) else _pick(records, attr)


def _any_enriched(records: Sequence[CanonicalRecord]) -> bool:
    return any(getattr(r, "enriched", False) for r in records)


def _base(records: Sequence[CanonicalRecord]) -> dict[str, Any]:
    return {
        "id": _pick(records, "id"),
        "source": records[0].source,
        "raw": None,
    }


def merge_medications(records: Sequence[Medication]) -> Medication:
    refills = [r.refills_allowed for r in records if r.refills_allowed is not None]

    return replace(
        records[0],
        **_base(records),
        **_code_pair(records),
        **_pick_all(
            records,
            "name", "ndc_code", "category", "status", "dosage",
            "prescriber", "quantity", "days_supply",
        ),
        prescribed_date=_latest(records, "prescribed_date"),
        refills_allowed=max(refills) if refills else None,
        enriched=_any_enriched(records),
    )


def merge_labs(records: Sequence[LabResult]) -> LabResult:
    preferred = _preferred(records, "status", "final")
    value_source = preferred if preferred.value is not None else next(
        (r for r in records if r.value is not None), preferred
    )

    return replace(
        records[0],
        **_base(records),
        **_code_pair(records),
        **_pick_all(records, "name", "category", "reference_range", "performer"),
        status=_from_preferred(preferred, records, "status"),
        value=value_source.value,
        unit=value_source.unit,
        value_type=value_source.value_type,
        interpretation=_from_preferred(preferred, records, "interpretation"),
        is_abnormal=_from_preferred(preferred, records, "is_abnormal"),
        date=_latest(records, "date"),
        enriched=_any_enriched(records),
    )


def merge_conditions(records: Sequence[Condition]) -> Condition:
    preferred = _preferred(records, "verification_status", VerificationStatus.CONFIRMED)

    return replace(
        records[0],
        **_base(records),
        **_code_pair(records),
        **_pick_all(
            records,
            "name", "icd10_code", "snomed_code", "category", "severity", "recorder",
        ),
        clinical_status=_from_preferred(preferred, records, "clinical_status"),
        verification_status=_from_preferred(preferred, records, "verification_status"),
        onset_date=_latest(records, "onset_date"),
        recorded_date=_latest(records, "recorded_date"),
        enriched=_any_enriched(records),
    )


def merge_encounters(records: Sequence[Encounter]) -> Encounter:
    preferred = _preferred(records, "status", EncounterStatus.COMPLETED)
    typed = next((r for r in records if not is_missing(r.type)), records[0])
    classed = next((r for r in records if not is_missing(r.encounter_class)), records[0])
    start = _latest(records, "start_date")
    end = _latest(records, "end_date")

    return replace(
        records[0],
        **_base(records),
        **_pick_all(records, "location", "participants", "reasons", "service_provider"),
        type=typed.type,
        type_code=typed.type_code or _pick(records, "type_code"),
        encounter_class=classed.encounter_class,
        class_code=classed.class_code,
        status=_from_preferred(preferred, records, "status"),
        start_date=start,
        end_date=end,
        duration=compute_duration(start, end),
    )


MERGERS: dict[RecordKind, Merger] = {
    RecordKind.MEDICATION: merge_medications,
    RecordKind.LAB: merge_labs,
    RecordKind.CONDITION: merge_conditions,
    RecordKind.ENCOUNTER: merge_encounters,
}


def merge_records(records: Sequence[CanonicalRecord]) -> CanonicalRecord:
    """Merge a non-empty group; a single record is returned unchanged."""
    if len(records) == 1:
        return records[0]
    return MERGERS[records[0].kind](records)
