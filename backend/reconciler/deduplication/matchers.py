"""Pairwise duplicate predicates per record kind.

Each predicate answers "do these two records describe the same fact?" using
codes first and name similarity as a fallback. Rules are tried in order and
the first one that holds decides.
"""

from collections.abc import Callable
from numbers import Real
from typing import Any

from reconciler.schemas.base import MedicationStatus, RecordKind
from reconciler.schemas.records import CanonicalRecord, Condition, Encounter, LabResult, Medication
from reconciler.services.similarity import (
    dates_within_days,
    ranges_overlap,
    same_day,
    similarity_ratio,
)

# Medication
MEDICATION_NAME_THRESHOLD = 0.90
MEDICATION_QUANTITY_WINDOW_DAYS = 7
MEDICATION_NDC_WINDOW_DAYS = 30
MEDICATION_NAME_WINDOW_DAYS = 14

# Lab
LAB_NAME_THRESHOLD = 0.95
LAB_VALUE_TOLERANCE = 0.05

# Condition
CONDITION_CROSS_SYSTEM_THRESHOLD = 0.95
CONDITION_NAME_THRESHOLD = 0.92
CONDITION_ONSET_WINDOW_DAYS = 90

# Encounter
ENCOUNTER_TYPE_THRESHOLD = 0.95
INPATIENT_CLASS = "inpatient"

Matcher = Callable[[Any, Any], bool]


def is_unknown_name(name: str | None) -> bool:
    """Whether a label is absent or an "Unknown ..." placeholder."""
    if not isinstance(name, str) or not name:
        return True
    lowered = name.strip().lower()
    return lowered == "unknown" or lowered.startswith("unknown ")


def _equal_present(a: Any, b: Any) -> bool:
    return a is not None and b is not None and a == b


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def medications_match(m1: Medication, m2: Medication) -> bool:
    """Duplicate test for medications: RxNorm, then NDC, then name."""
    rx1, rx2 = m1.rxnorm_code, m2.rxnorm_code

    # 1. Same RxNorm concept and the same prescription
    if _equal_present(rx1, rx2):
        if same_day(m1.prescribed_date, m2.prescribed_date):
            return True
        if (
            dates_within_days(m1.prescribed_date, m2.prescribed_date, MEDICATION_QUANTITY_WINDOW_DAYS)
            and m1.quantity == m2.quantity
        ):
            return True
        if m1.status == MedicationStatus.ACTIVE and m2.status == MedicationStatus.ACTIVE:
            return True

    # 2. Same NDC package near the same date
    if _equal_present(m1.ndc_code, m2.ndc_code):
        if dates_within_days(m1.prescribed_date, m2.prescribed_date, MEDICATION_NDC_WINDOW_DAYS):
            return True

    # 3. No RxNorm code on either side: fall back to the name
    if rx1 is None and rx2 is None:
        if similarity_ratio(m1.name, m2.name) >= MEDICATION_NAME_THRESHOLD:
            if dates_within_days(m1.prescribed_date, m2.prescribed_date, MEDICATION_NAME_WINDOW_DAYS):
                return True
            if m1.status == m2.status and m1.dosage_text == m2.dosage_text:
                return True

    return False


def _loinc(lab: LabResult) -> str | None:
    return lab.code if lab.code_system == "LOINC" else None


def _values_close(v1: Any, v2: Any) -> bool:
    """Numeric values within 5% of their average."""
    if not (_is_number(v1) and _is_number(v2)):
        return False
    average = (v1 + v2) / 2
    return average > 0 and abs(v1 - v2) / average <= LAB_VALUE_TOLERANCE


def labs_match(l1: LabResult, l2: LabResult) -> bool:
    """Duplicate test for lab results: LOINC + day, then name + day + value."""
    if is_unknown_name(l1.name) or is_unknown_name(l2.name):
        return False

    # 1. Same LOINC test on the same day
    if _equal_present(_loinc(l1), _loinc(l2)) and same_day(l1.date, l2.date):
        return True

    # 2. Same test name on the same day with a consistent result
    if similarity_ratio(l1.name, l2.name) >= LAB_NAME_THRESHOLD and same_day(l1.date, l2.date):
        if _values_close(l1.value, l2.value):
            return True
        if _equal_present(l1.value, l2.value):
            return True
        if l1.status == "final" and l2.status == "final":
            return True

    return False


def _has_code(condition: Condition) -> bool:
    return bool(condition.icd10_code or condition.snomed_code)


def conditions_match(c1: Condition, c2: Condition) -> bool:
    """Duplicate test for conditions: ICD-10, SNOMED, then name."""
    if is_unknown_name(c1.name) or is_unknown_name(c2.name):
        return False

    # 1. / 2. Same code in either system
    if _equal_present(c1.icd10_code, c2.icd10_code):
        return True
    if _equal_present(c1.snomed_code, c2.snomed_code):
        return True

    similarity = similarity_ratio(c1.name, c2.name)

    # 3. Both coded, in different systems, but named the same
    if _has_code(c1) and _has_code(c2) and similarity >= CONDITION_CROSS_SYSTEM_THRESHOLD:
        return True

    # 4. Uncoded: close name plus matching status or onset
    if not _has_code(c1) and not _has_code(c2) and similarity >= CONDITION_NAME_THRESHOLD:
        if c1.clinical_status == c2.clinical_status:
            return True
        if dates_within_days(c1.onset_date, c2.onset_date, CONDITION_ONSET_WINDOW_DAYS):
            return True

    return False


def encounters_match(e1: Encounter, e2: Encounter) -> bool:
    """Duplicate test for encounters: type code, class, type name, inpatient overlap."""
    on_same_day = same_day(e1.start_date, e2.start_date)

    # 1. Same type code on the same day
    if _equal_present(e1.type_code, e2.type_code) and on_same_day:
        return True

    # 2. Same class on the same day at the same (or no) location
    if (
        e1.encounter_class == e2.encounter_class
        and not is_unknown_name(e1.encounter_class)
        and on_same_day
        and e1.location_name == e2.location_name
    ):
        return True

    # 3. Same type name on the same day
    if (
        not is_unknown_name(e1.type)
        and not is_unknown_name(e2.type)
        and similarity_ratio(e1.type, e2.type) >= ENCOUNTER_TYPE_THRESHOLD
        and on_same_day
    ):
        return True

    # 4. Overlapping inpatient stays at the same place
    if e1.encounter_class == INPATIENT_CLASS and e2.encounter_class == INPATIENT_CLASS:
        if ranges_overlap(e1.start_date, e1.end_date, e2.start_date, e2.end_date):
            if _equal_present(e1.location_name, e2.location_name):
                return True
            if _equal_present(e1.service_provider_name, e2.service_provider_name):
                return True

    return False


MATCHERS: dict[RecordKind, Matcher] = {
    RecordKind.MEDICATION: medications_match,
    RecordKind.LAB: labs_match,
    RecordKind.CONDITION: conditions_match,
    RecordKind.ENCOUNTER: encounters_match,
}


def get_matcher(kind: RecordKind) -> Matcher:
    """Return the duplicate predicate for a record kind."""
    try:
        return MATCHERS[kind]
    except KeyError:
        raise ValueError(f"No duplicate matcher for {kind.value} records") from None


def records_match(r1: CanonicalRecord, r2: CanonicalRecord) -> bool:
    """Dispatch to the predicate for the records' kind."""
    if r1.kind != r2.kind:
        return False
    return get_matcher(r1.kind)(r1, r2)
