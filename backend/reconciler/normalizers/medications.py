"""Medication normalizer.

Transforms FHIR MedicationRequest resources into Medication records, mapping
NDC and proprietary codes to RxNorm through the local table.
"""

import logging

from reconciler.normalizers.base import (
    BaseNormalizer,
    RawResource,
    as_dict,
    as_int,
    as_list,
    codings_of,
    first_item,
    reference_of,
    to_reference,
)
from reconciler.schemas.base import CodeSystem, MedicationStatus, RecordKind
from reconciler.schemas.records import Dosage, Medication
from reconciler.services.code_resolver import CodeInfo, find_coding, normalize_code_system

logger = logging.getLogger(__name__)

UNKNOWN_MEDICATION = "Unknown Medication"

STATUS_MAP = {
    "active": MedicationStatus.ACTIVE,
    "completed": MedicationStatus.COMPLETED,
    "stopped": MedicationStatus.STOPPED,
    "on-hold": MedicationStatus.ON_HOLD,
    "cancelled": MedicationStatus.CANCELLED,
    "entered-in-error": MedicationStatus.ERROR,
    "draft": MedicationStatus.DRAFT,
    "unknown": MedicationStatus.UNKNOWN,
}


def _frequency(instruction: RawResource) -> str | None:
    timing = as_dict(instruction.get("timing"))
    code_text = as_dict(timing.get("code")).get("text")
    if code_text:
        return code_text

    repeat = as_dict(timing.get("repeat"))
    if repeat.get("frequency") and repeat.get("period"):
        return f"{repeat['frequency']}x per {repeat['period']} {repeat.get('periodUnit') or ''}".strip()
    return None


def extract_dosage(resource: RawResource) -> Dosage | None:
    """Build a structured dosage from the first dosage instruction.

    When the instruction has no ``text`` one is assembled from dose,
    frequency and route.
    """
    instruction = first_item(as_list(resource.get("dosageInstruction")))
    if not instruction:
        return None

    dose = as_dict(first_item(as_list(instruction.get("doseAndRate"))).get("doseQuantity"))
    frequency = _frequency(instruction)
    route = as_dict(instruction.get("route")).get("text") or None

    parts = []
    if dose:
        parts.append(f"{dose.get('value')} {dose.get('unit') or ''}".strip())
    if frequency:
        parts.append(frequency)
    if route:
        parts.append(route)

    return Dosage(
        text=instruction.get("text") or " ".join(parts) or None,
        dose=dose.get("value"),
        dose_unit=dose.get("unit") or None,
        frequency=frequency,
        route=route,
        instructions=instruction.get("patientInstruction") or None,
    )


class MedicationNormalizer(BaseNormalizer[Medication]):
    """Normalizes FHIR MedicationRequest resources."""

    kind = RecordKind.MEDICATION
    resource_type = "MedicationRequest"

    def resolve_code(self, resource: RawResource) -> tuple[str | None, str | None]:
        """Resolve (code, code system), preferring RxNorm.

        Order: an RxNorm coding; an NDC coding mapped to RxNorm by the local
        table; the first coding with its own system tag.
        """
        codings = codings_of(resource.get("medicationCodeableConcept"))

        rxnorm = find_coding(codings, "rxnorm")
        if rxnorm:
            return rxnorm["code"], CodeSystem.RXNORM.value

        ndc = find_coding(codings, "ndc")
        if ndc:
            mapped = self.resolver.rxnorm_for(ndc["code"])
            if mapped:
                return mapped, CodeSystem.RXNORM.value

        first = first_item(codings)
        if first.get("code"):
            return first["code"], normalize_code_system(first.get("system"))
        return None, None

    def enrichment_key(self, resource: RawResource) -> tuple[str, str] | None:
        code, system = self.resolve_code(resource)
        if not code:
            return None
        return code, "rxnorm" if system == CodeSystem.RXNORM.value else (system or "")

    def _name(self, resource: RawResource, info: CodeInfo | None) -> str:
        concept = as_dict(resource.get("medicationCodeableConcept"))
        if concept.get("text"):
            return concept["text"]

        coding = first_item(codings_of(concept))
        if coding.get("display"):
            return coding["display"]

        reference_display, _ = reference_of(resource.get("medicationReference"))
        if reference_display:
            return reference_display

        entry = self.resolver.local_entry(coding.get("code"), "rxnorm")
        if entry and entry.get("name"):
            return entry["name"]

        if info and info.name:
            return info.name

        return coding.get("code") or UNKNOWN_MEDICATION

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> Medication:
        code, code_system = self.resolve_code(resource)
        ndc = find_coding(codings_of(resource.get("medicationCodeableConcept")), "ndc")

        entry = self.resolver.local_entry(code, "rxnorm") if code_system == CodeSystem.RXNORM.value else None
        category = (info.category if info else None) or (entry.get("category") if entry else None)

        dispense = as_dict(resource.get("dispenseRequest"))
        status = resource.get("status")

        return Medication(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            name=self._name(resource, info),
            code=code,
            code_system=code_system,
            ndc_code=ndc["code"] if ndc else None,
            category=category,
            status=STATUS_MAP.get(status, MedicationStatus.UNKNOWN) if isinstance(status, str) else MedicationStatus.UNKNOWN,
            dosage=extract_dosage(resource),
            prescribed_date=resource.get("authoredOn") or None,
            prescriber=to_reference(resource.get("requester")),
            refills_allowed=as_int(dispense.get("numberOfRepeatsAllowed")),
            quantity=as_dict(dispense.get("quantity")).get("value"),
            days_supply=as_dict(dispense.get("expectedSupplyDuration")).get("value"),
            enriched=info is not None,
        )
