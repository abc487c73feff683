"""Encounter normalizer.

Transforms FHIR Encounter resources into Encounter records with a canonical
visit class, status and a human-readable duration.
"""

import logging
import math

from reconciler.normalizers.base import (
    BaseNormalizer,
    RawResource,
    as_dict,
    as_list,
    codings_of,
    concept_label,
    first_item,
    reference_of,
    to_reference,
)
from reconciler.schemas.base import EncounterStatus, RecordKind
from reconciler.schemas.records import Encounter, Participant
from reconciler.services.code_resolver import CodeInfo
from reconciler.services.similarity import parse_fhir_datetime

logger = logging.getLogger(__name__)

# HL7 v3 ActEncounterCode → visit class
CLASS_MAP = {
    "AMB": "outpatient",
    "EMER": "emergency",
    "IMP": "inpatient",
    "ACUTE": "inpatient",
    "NONAC": "inpatient",
    "PRENC": "pre-admission",
    "SS": "short-stay",
    "HH": "home-health",
    "VR": "virtual",
    "OBSENC": "observation",
}

STATUS_MAP = {
    "planned": EncounterStatus.SCHEDULED,
    "arrived": EncounterStatus.IN_PROGRESS,
    "triaged": EncounterStatus.IN_PROGRESS,
    "in-progress": EncounterStatus.IN_PROGRESS,
    "onleave": EncounterStatus.IN_PROGRESS,
    "finished": EncounterStatus.COMPLETED,
    "cancelled": EncounterStatus.CANCELLED,
    "entered-in-error": EncounterStatus.ERROR,
    "unknown": EncounterStatus.UNKNOWN,
}

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_duration(start: str | None, end: str | None) -> str | None:
    """Human-readable length of a period.

    Minutes under an hour, hours under a day, else days. Returns None when
    either bound is missing or unparseable, or the end precedes the start.
    """
    start_dt = parse_fhir_datetime(start)
    end_dt = parse_fhir_datetime(end)
    if start_dt is None or end_dt is None or end_dt < start_dt:
        return None

    minutes = _round_half_up((end_dt - start_dt).total_seconds() / 60)
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes} minutes"
    if minutes < MINUTES_PER_DAY:
        return f"{_round_half_up(minutes / MINUTES_PER_HOUR)} hours"
    return f"{_round_half_up(minutes / MINUTES_PER_DAY)} days"


def _participants(resource: RawResource) -> list[Participant]:
    participants = []
    for entry in as_list(resource.get("participant")):
        if not isinstance(entry, dict):
            continue
        role_concept = first_item(as_list(entry.get("type")))
        role = role_concept.get("text") or first_item(codings_of(role_concept)).get("display")
        name, reference = reference_of(entry.get("individual"))
        participants.append(Participant(role=role or "participant", name=name, reference=reference))
    return participants


class EncounterNormalizer(BaseNormalizer[Encounter]):
    """Normalizes FHIR Encounter resources."""

    kind = RecordKind.ENCOUNTER
    resource_type = "Encounter"

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> Encounter:
        type_concept = first_item(as_list(resource.get("type")))
        encounter_class = as_dict(resource.get("class"))
        class_code = encounter_class.get("code") or None
        period = as_dict(resource.get("period"))
        start = period.get("start") or None
        end = period.get("end") or None
        status = resource.get("status")

        return Encounter(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            type=concept_label(type_concept) or "unknown",
            type_code=first_item(codings_of(type_concept)).get("code") or None,
            encounter_class=(
                CLASS_MAP.get(class_code or "")
                or encounter_class.get("display")
                or class_code
                or "unknown"
            ),
            class_code=class_code,
            status=STATUS_MAP.get(status, EncounterStatus.UNKNOWN) if isinstance(status, str) else EncounterStatus.UNKNOWN,
            start_date=start,
            end_date=end,
            duration=compute_duration(start, end),
            location=to_reference(first_item(as_list(resource.get("location"))).get("location")),
            participants=_participants(resource),
            reasons=[
                label for label in (concept_label(r) for r in as_list(resource.get("reasonCode"))) if label
            ],
            service_provider=to_reference(resource.get("serviceProvider")),
        )
