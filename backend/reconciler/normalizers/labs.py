"""Lab result normalizer.

Transforms FHIR Observation resources in the ``laboratory`` category into
LabResult records. Proprietary test codes are mapped to LOINC through the
local table where possible.
"""

import logging
from typing import Any

from reconciler.normalizers.base import (
    BaseNormalizer,
    RawResource,
    as_dict,
    as_list,
    codings_of,
    first_item,
)
from reconciler.schemas.base import CodeSystem, RecordKind, ValueType
from reconciler.schemas.records import LabResult, ReferenceRange
from reconciler.services.code_resolver import CodeInfo, find_coding, normalize_code_system

logger = logging.getLogger(__name__)

LAB_CATEGORY_CODE = "laboratory"
ABNORMAL_INTERPRETATIONS = frozenset({"H", "HH", "L", "LL", "A", "AA", "HU", "LU"})
UNKNOWN_LAB = "Unknown Test"


def _value(observation: RawResource) -> tuple[Any, str | None, ValueType | None]:
    """Extract (value, unit, value type)."""
    quantity = observation.get("valueQuantity")
    if isinstance(quantity, dict):
        return quantity.get("value"), quantity.get("unit") or quantity.get("code"), ValueType.QUANTITY

    if observation.get("valueString"):
        return observation["valueString"], None, ValueType.STRING

    concept = observation.get("valueCodeableConcept")
    if isinstance(concept, dict):
        display = concept.get("text") or first_item(codings_of(concept)).get("display")
        return display, None, ValueType.CODED

    return None, None, None


def _reference_range(observation: RawResource) -> ReferenceRange | None:
    ranges = as_list(observation.get("referenceRange"))
    if not ranges or not isinstance(ranges[0], dict):
        return None

    low = as_dict(ranges[0].get("low"))
    high = as_dict(ranges[0].get("high"))
    return ReferenceRange(
        low=low.get("value"),
        high=high.get("value"),
        unit=low.get("unit") or high.get("unit"),
        text=ranges[0].get("text"),
    )


def _interpretation(observation: RawResource) -> tuple[str | None, bool | None]:
    """(interpretation code, abnormal flag); flag is None without an interpretation."""
    interpretations = as_list(observation.get("interpretation"))
    if not interpretations:
        return None, None

    code = first_item(codings_of(interpretations[0])).get("code")
    return code, code in ABNORMAL_INTERPRETATIONS


class LabNormalizer(BaseNormalizer[LabResult]):
    """Normalizes laboratory FHIR Observations."""

    kind = RecordKind.LAB
    resource_type = "Observation"

    def accepts(self, resource: RawResource) -> bool:
        """Keep observations tagged ``laboratory``, and untagged ones."""
        categories = as_list(resource.get("category"))
        if not categories:
            return True
        return any(
            coding.get("code") == LAB_CATEGORY_CODE
            for category in categories
            for coding in codings_of(category)
        )

    def resolve_code(self, resource: RawResource) -> tuple[str | None, str | None]:
        """Resolve (code, code system), preferring LOINC.

        Order: a LOINC coding; any coding mapped to LOINC by the local table;
        the first coding with its own system tag.
        """
        codings = codings_of(resource.get("code"))

        loinc = find_coding(codings, "loinc")
        if loinc:
            return loinc["code"], CodeSystem.LOINC.value

        for coding in codings:
            mapped = self.resolver.loinc_for(coding.get("code"))
            if mapped:
                return mapped, CodeSystem.LOINC.value

        first = first_item(codings)
        if first.get("code"):
            return first["code"], normalize_code_system(first.get("system"))
        return None, None

    def enrichment_key(self, resource: RawResource) -> tuple[str, str] | None:
        code, system = self.resolve_code(resource)
        if not code:
            return None
        return code, "loinc" if system == CodeSystem.LOINC.value else (system or "")

    def _name(self, resource: RawResource, info: CodeInfo | None) -> str:
        concept = resource.get("code")
        if not isinstance(concept, dict):
            return UNKNOWN_LAB

        if concept.get("text"):
            return concept["text"]

        coding = first_item(codings_of(concept))
        if coding.get("display"):
            return coding["display"]

        entry = self.resolver.local_entry(coding.get("code"), "loinc")
        if entry and entry.get("name"):
            return entry["name"]

        if info and info.name:
            return info.name

        return coding.get("code") or UNKNOWN_LAB

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> LabResult:
        code, code_system = self.resolve_code(resource)
        value, unit, value_type = _value(resource)
        interpretation, is_abnormal = _interpretation(resource)

        entry = self.resolver.local_entry(code, "loinc") if code_system == CodeSystem.LOINC.value else None
        category = (info.category if info else None) or (entry.get("category") if entry else None)

        return LabResult(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            name=self._name(resource, info),
            code=code,
            code_system=code_system,
            category=category,
            value=value,
            unit=unit,
            value_type=value_type,
            date=(
                resource.get("effectiveDateTime")
                or as_dict(resource.get("effectivePeriod")).get("start")
                or resource.get("issued")
                or None
            ),
            status=resource.get("status") or "unknown",
            reference_range=_reference_range(resource),
            interpretation=interpretation,
            is_abnormal=is_abnormal,
            performer=first_item(as_list(resource.get("performer"))).get("display"),
            enriched=info is not None,
        )
