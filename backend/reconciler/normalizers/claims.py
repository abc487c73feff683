"""Claim normalizer.

Transforms payer FHIR ExplanationOfBenefit resources into Claim records.
Adjudication categories are folded into four buckets:

    submitted, billedamount        → billed
    eligible, allowed              → allowed
    benefit, paid                  → paid
    patientpay, copay, deductible  → patient responsibility (summed)
"""

import logging
from typing import Any

from reconciler.normalizers.base import (
    BaseNormalizer,
    RawResource,
    as_dict,
    as_list,
    codings_of,
    first_code,
    first_item,
    to_reference,
)
from reconciler.schemas.base import RecordKind
from reconciler.schemas.records import (
    Claim,
    ClaimDiagnosis,
    ClaimLineItem,
    ClaimProcedure,
    ClaimTotals,
)
from reconciler.services.code_resolver import CodeInfo

logger = logging.getLogger(__name__)

TYPE_MAP = {
    "professional": "professional",
    "institutional": "institutional",
    "oral": "dental",
    "pharmacy": "pharmacy",
    "vision": "vision",
}

STATUS_MAP = {
    "active": "processing",
    "cancelled": "cancelled",
    "draft": "draft",
    "entered-in-error": "error",
}

OUTCOME_MAP = {
    "queued": "pending",
    "complete": "processed",
    "error": "error",
    "partial": "partial",
}

BUCKETS = {
    "submitted": "billed",
    "billedamount": "billed",
    "eligible": "allowed",
    "allowed": "allowed",
    "benefit": "paid",
    "paid": "paid",
    "patientpay": "patient_responsibility",
    "copay": "patient_responsibility",
    "deductible": "patient_responsibility",
}

ADDITIVE_BUCKETS = frozenset({"patient_responsibility"})


def accumulate_amounts(entries: Any) -> dict[str, float | None]:
    """Fold ``total[]`` or ``adjudication[]`` entries into the four buckets.

    Later entries replace earlier ones for billed/allowed/paid; patient
    responsibility categories add up. Unknown categories are ignored.
    """
    amounts: dict[str, float | None] = {
        "billed": None,
        "allowed": None,
        "paid": None,
        "patient_responsibility": None,
    }
    for entry in as_list(entries):
        if not isinstance(entry, dict):
            continue
        bucket = BUCKETS.get(first_code(entry.get("category")) or "")
        if bucket is None:
            continue
        value = as_dict(entry.get("amount")).get("value")
        if bucket in ADDITIVE_BUCKETS:
            amounts[bucket] = (amounts[bucket] or 0) + (value or 0)
        elif value is not None:
            amounts[bucket] = value
    return amounts


def _sum_lines(line_items: list[ClaimLineItem]) -> dict[str, float | None]:
    totals: dict[str, float | None] = {}
    for bucket in ("billed", "allowed", "paid", "patient_responsibility"):
        values = [getattr(item, bucket) for item in line_items if getattr(item, bucket) is not None]
        totals[bucket] = sum(values) if values else None
    return totals


def _claim_id(resource: RawResource) -> str | None:
    reference = as_dict(resource.get("claim")).get("reference")
    if not isinstance(reference, str) or "/" not in reference:
        return None
    return reference.split("/")[1] or None


def _claim_type(resource: RawResource) -> str:
    coding = first_item(codings_of(resource.get("type")))
    if not coding:
        return "unknown"
    code = coding.get("code")
    return TYPE_MAP.get(code or "") or coding.get("display") or code or "unknown"


def _diagnoses(resource: RawResource) -> list[ClaimDiagnosis]:
    diagnoses = []
    for entry in as_list(resource.get("diagnosis")):
        if not isinstance(entry, dict):
            continue
        concept = as_dict(entry.get("diagnosisCodeableConcept"))
        coding = first_item(codings_of(concept))
        diagnoses.append(ClaimDiagnosis(
            sequence=entry.get("sequence"),
            code=coding.get("code"),
            display=coding.get("display") or concept.get("text"),
            type=first_code(first_item(as_list(entry.get("type")))) or "unknown",
        ))
    return diagnoses


def _procedures(resource: RawResource) -> list[ClaimProcedure]:
    procedures = []
    for entry in as_list(resource.get("procedure")):
        if not isinstance(entry, dict):
            continue
        concept = as_dict(entry.get("procedureCodeableConcept"))
        coding = first_item(codings_of(concept))
        procedures.append(ClaimProcedure(
            sequence=entry.get("sequence"),
            code=coding.get("code"),
            display=coding.get("display") or concept.get("text"),
            date=entry.get("date"),
        ))
    return procedures


def _line_items(resource: RawResource) -> list[ClaimLineItem]:
    items = []
    for item in as_list(resource.get("item")):
        if not isinstance(item, dict):
            continue
        service = as_dict(item.get("productOrService"))
        coding = first_item(codings_of(service))
        amounts = accumulate_amounts(item.get("adjudication"))
        items.append(ClaimLineItem(
            sequence=item.get("sequence"),
            code=coding.get("code"),
            display=coding.get("display") or service.get("text"),
            service_date=item.get("servicedDate") or as_dict(item.get("servicedPeriod")).get("start"),
            quantity=as_dict(item.get("quantity")).get("value") or 1,
            billed=amounts["billed"],
            allowed=amounts["allowed"],
            paid=amounts["paid"],
            patient_responsibility=amounts["patient_responsibility"],
        ))
    return items


class ClaimNormalizer(BaseNormalizer[Claim]):
    """Normalizes FHIR ExplanationOfBenefit resources."""

    kind = RecordKind.CLAIM
    resource_type = "ExplanationOfBenefit"

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> Claim:
        period = as_dict(resource.get("billablePeriod"))
        line_items = _line_items(resource)

        if as_list(resource.get("total")):
            amounts = accumulate_amounts(resource["total"])
        else:
            amounts = _sum_lines(line_items)

        status = resource.get("status")
        outcome = resource.get("outcome")

        return Claim(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            claim_id=_claim_id(resource),
            type=_claim_type(resource),
            status=STATUS_MAP.get(status) or status or "unknown",
            outcome=OUTCOME_MAP.get(outcome) or outcome or "unknown",
            service_start_date=period.get("start") or None,
            service_end_date=period.get("end") or None,
            provider=to_reference(resource.get("provider")),
            facility=to_reference(resource.get("facility")),
            diagnoses=_diagnoses(resource),
            procedures=_procedures(resource),
            totals=ClaimTotals(
                billed=amounts["billed"],
                allowed=amounts["allowed"],
                paid=amounts["paid"],
                patient_responsibility=amounts["patient_responsibility"],
            ),
            line_items=line_items,
            created_date=resource.get("created") or None,
        )
