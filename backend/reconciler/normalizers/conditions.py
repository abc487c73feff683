"""Condition normalizer.

Transforms FHIR Condition resources into Condition records. ICD-10 is the
preferred code system; SNOMED codes are cross-mapped to ICD-10 through the
local table and kept as-is when no mapping exists.
"""

import logging
from dataclasses import dataclass

from reconciler.normalizers.base import (
    BaseNormalizer,
    RawResource,
    as_dict,
    as_list,
    codings_of,
    first_code,
    first_item,
    reference_of,
)
from reconciler.schemas.base import ClinicalStatus, CodeSystem, RecordKind, VerificationStatus
from reconciler.schemas.records import Condition, Severity
from reconciler.services.code_resolver import CodeInfo, find_coding

logger = logging.getLogger(__name__)

UNKNOWN_CONDITION = "Unknown Condition"

CLINICAL_STATUS_MAP = {
    "active": ClinicalStatus.ACTIVE,
    "recurrence": ClinicalStatus.ACTIVE,
    "relapse": ClinicalStatus.ACTIVE,
    "inactive": ClinicalStatus.INACTIVE,
    "remission": ClinicalStatus.INACTIVE,
    "resolved": ClinicalStatus.RESOLVED,
}

VERIFICATION_STATUS_MAP = {
    "confirmed": VerificationStatus.CONFIRMED,
    "provisional": VerificationStatus.PROVISIONAL,
    "differential": VerificationStatus.PROVISIONAL,
    "unconfirmed": VerificationStatus.UNCONFIRMED,
    "refuted": VerificationStatus.REFUTED,
    "entered-in-error": VerificationStatus.ERROR,
}

CATEGORY_MAP = {
    "problem-list-item": "problem",
    "encounter-diagnosis": "diagnosis",
    "health-concern": "concern",
}


@dataclass(frozen=True)
class ResolvedConditionCode:
    """Outcome of condition code resolution."""

    code: str | None
    code_system: str
    icd10_code: str | None = None
    snomed_code: str | None = None


def _onset(resource: RawResource) -> str | None:
    if resource.get("onsetDateTime"):
        return resource["onsetDateTime"]
    period_start = as_dict(resource.get("onsetPeriod")).get("start")
    if period_start:
        return period_start
    age = as_dict(resource.get("onsetAge")).get("value")
    if age:
        return f"Age {age}"
    return resource.get("onsetString") or None


def _category(resource: RawResource) -> str:
    categories = as_list(resource.get("category"))
    if not categories:
        return "unknown"
    code = first_code(categories[0])
    return CATEGORY_MAP.get(code, code) or "unknown"


def _severity(resource: RawResource) -> Severity | None:
    coding = first_item(codings_of(resource.get("severity")))
    if not coding:
        return None
    return Severity(code=coding.get("code"), display=coding.get("display") or coding.get("code"))


class ConditionNormalizer(BaseNormalizer[Condition]):
    """Normalizes FHIR Condition resources."""

    kind = RecordKind.CONDITION
    resource_type = "Condition"

    def resolve_code(self, resource: RawResource) -> ResolvedConditionCode:
        """Resolve the canonical code.

        Order: an ICD-10 coding; a SNOMED coding cross-mapped to ICD-10; the
        SNOMED coding itself; the first coding (system ``unknown``).
        """
        codings = codings_of(resource.get("code"))

        icd10 = find_coding(codings, "icd-10") or find_coding(codings, "icd10")
        snomed = find_coding(codings, "snomed") or find_coding(codings, "sct")
        snomed_code = snomed["code"] if snomed else None

        if icd10:
            return ResolvedConditionCode(
                code=icd10["code"],
                code_system=CodeSystem.ICD10.value,
                icd10_code=icd10["code"],
                snomed_code=snomed_code,
            )

        if snomed_code:
            mapped = self.resolver.icd10_for_snomed(snomed_code)
            if mapped:
                return ResolvedConditionCode(
                    code=mapped,
                    code_system=CodeSystem.ICD10.value,
                    icd10_code=mapped,
                    snomed_code=snomed_code,
                )
            return ResolvedConditionCode(
                code=snomed_code,
                code_system=CodeSystem.SNOMED.value,
                snomed_code=snomed_code,
            )

        return ResolvedConditionCode(code=first_code(resource.get("code")), code_system=CodeSystem.UNKNOWN.value)

    def enrichment_key(self, resource: RawResource) -> tuple[str, str] | None:
        resolved = self.resolve_code(resource)
        if resolved.code_system == CodeSystem.SNOMED.value:
            return resolved.code, "snomed"
        if resolved.code_system == CodeSystem.ICD10.value:
            return resolved.code, "icd10"
        return None

    def _name(self, resource: RawResource, info: CodeInfo | None) -> str:
        concept = resource.get("code")
        if not isinstance(concept, dict):
            return UNKNOWN_CONDITION

        if concept.get("text"):
            return concept["text"]

        coding = first_item(codings_of(concept))
        if coding.get("display"):
            return coding["display"]

        code = coding.get("code")
        entry = self.resolver.local_entry(code, "icd10") or self.resolver.local_entry(code, "snomed")
        if entry and entry.get("name"):
            return entry["name"]

        if info and info.name:
            return info.name

        return code or UNKNOWN_CONDITION

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> Condition:
        resolved = self.resolve_code(resource)
        clinical = first_code(resource.get("clinicalStatus"))
        verification = first_code(resource.get("verificationStatus"))
        recorder, _ = reference_of(resource.get("recorder"))

        return Condition(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            name=self._name(resource, info),
            code=resolved.code,
            code_system=resolved.code_system,
            icd10_code=resolved.icd10_code,
            snomed_code=resolved.snomed_code,
            clinical_status=CLINICAL_STATUS_MAP.get(clinical, ClinicalStatus.UNKNOWN),
            verification_status=VERIFICATION_STATUS_MAP.get(verification, VerificationStatus.UNKNOWN),
            category=_category(resource),
            severity=_severity(resource),
            onset_date=_onset(resource),
            recorded_date=resource.get("recordedDate") or None,
            recorder=recorder,
            enriched=info is not None,
        )
