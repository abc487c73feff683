"""Canonical record shapes produced by the resource normalizers.

Every record is a frozen dataclass: normalizers build new instances on each
pass and merging builds new records rather than mutating members. The raw
source payload rides along in ``raw`` for audit/debug and is excluded from
equality and repr.

Serialization uses camelCase keys (``to_dict``), which is the wire shape
downstream consumers expect.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, ClassVar

from reconciler.schemas.base import (
    ClinicalStatus,
    EncounterStatus,
    Gender,
    MedicationStatus,
    RecordKind,
    ValueType,
    VerificationStatus,
)


def _camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _serialize(value: Any) -> Any:
    """Convert nested dataclasses, enums and lists into JSON-ready values."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {
            f.metadata.get("json", _camel(f.name)): _serialize(getattr(value, f.name))
            for f in fields(value)
        }
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


# ============================================================================
# Nested value objects
# ============================================================================


@dataclass(frozen=True)
class Reference:
    """Display name plus FHIR reference of a related resource."""

    name: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class Address:
    """Postal address."""

    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = "US"


@dataclass(frozen=True)
class ReferenceRange:
    """Normal range reported with a lab value."""

    low: float | None = None
    high: float | None = None
    unit: str | None = None
    text: str | None = None


@dataclass(frozen=True)
class Dosage:
    """Structured dosage instruction."""

    text: str | None = None
    dose: float | None = None
    dose_unit: str | None = None
    frequency: str | None = None
    route: str | None = None
    instructions: str | None = None


@dataclass(frozen=True)
class Severity:
    """Condition severity coding."""

    code: str | None = None
    display: str | None = None


@dataclass(frozen=True)
class Participant:
    """Encounter participant."""

    role: str = "participant"
    name: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class ClaimDiagnosis:
    """Diagnosis line on a claim."""

    sequence: int | None = None
    code: str | None = None
    display: str | None = None
    type: str = "unknown"


@dataclass(frozen=True)
class ClaimProcedure:
    """Procedure line on a claim."""

    sequence: int | None = None
    code: str | None = None
    display: str | None = None
    date: str | None = None


@dataclass(frozen=True)
class ClaimTotals:
    """Claim-level financial totals in four canonical buckets."""

    billed: float | None = None
    allowed: float | None = None
    paid: float | None = None
    patient_responsibility: float | None = None
    currency: str = "USD"


@dataclass(frozen=True)
class ClaimLineItem:
    """Billed service line with its own adjudication amounts."""

    sequence: int | None = None
    code: str | None = None
    display: str | None = None
    service_date: str | None = None
    quantity: float = 1
    billed: float | None = None
    allowed: float | None = None
    paid: float | None = None
    patient_responsibility: float | None = None


# ============================================================================
# Canonical records
# ============================================================================


@dataclass(frozen=True)
class CanonicalRecord:
    """Fields shared by every normalized record.

    Attributes:
        id: Identifier assigned by the source system, if any.
        source: Tag of the connection the record came from (e.g. "epic").
        raw: Original source payload.
    """

    kind: ClassVar[RecordKind]

    id: str | None = None
    source: str = ""
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        """Serialize to a camelCase dict.

        Args:
            include_raw: Whether to include the original payload as ``_raw``.
        """
        data: dict[str, Any] = {}
        for f in fields(self):
            if f.name in ("raw", "enriched"):
                continue
            data[f.metadata.get("json", _camel(f.name))] = _serialize(getattr(self, f.name))
        if hasattr(self, "enriched"):
            data["_enriched"] = self.enriched
        if include_raw:
            data["_raw"] = self.raw
        return data


@dataclass(frozen=True)
class Patient(CanonicalRecord):
    """Demographics from a FHIR Patient."""

    kind: ClassVar[RecordKind] = RecordKind.PATIENT

    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    date_of_birth: str | None = None
    gender: Gender = Gender.UNKNOWN
    email: str | None = None
    phone: str | None = None
    address: Address | None = None


@dataclass(frozen=True)
class LabResult(CanonicalRecord):
    """Laboratory result from a FHIR Observation."""

    kind: ClassVar[RecordKind] = RecordKind.LAB

    name: str = "Unknown Test"
    code: str | None = None
    code_system: str | None = None
    category: str | None = None
    value: float | str | None = None
    unit: str | None = None
    value_type: ValueType | None = None
    date: str | None = None
    status: str = "unknown"
    reference_range: ReferenceRange | None = None
    interpretation: str | None = None
    is_abnormal: bool | None = None
    performer: str | None = None
    enriched: bool = False


@dataclass(frozen=True)
class Medication(CanonicalRecord):
    """Prescription from a FHIR MedicationRequest."""

    kind: ClassVar[RecordKind] = RecordKind.MEDICATION

    name: str = "Unknown Medication"
    code: str | None = None
    code_system: str | None = None
    ndc_code: str | None = None
    category: str | None = None
    status: MedicationStatus = MedicationStatus.UNKNOWN
    dosage: Dosage | None = None
    prescribed_date: str | None = None
    prescriber: Reference | None = None
    refills_allowed: int | None = None
    quantity: float | None = None
    days_supply: float | None = None
    enriched: bool = False

    @property
    def rxnorm_code(self) -> str | None:
        """Code when it is an RxNorm code."""
        return self.code if self.code_system == "RxNorm" else None

    @property
    def dosage_text(self) -> str | None:
        return self.dosage.text if self.dosage else None


@dataclass(frozen=True)
class Condition(CanonicalRecord):
    """Problem or diagnosis from a FHIR Condition."""

    kind: ClassVar[RecordKind] = RecordKind.CONDITION

    name: str = "Unknown Condition"
    code: str | None = None
    code_system: str | None = None
    icd10_code: str | None = None
    snomed_code: str | None = None
    clinical_status: ClinicalStatus = ClinicalStatus.UNKNOWN
    verification_status: VerificationStatus = VerificationStatus.UNKNOWN
    category: str = "unknown"
    severity: Severity | None = None
    onset_date: str | None = None
    recorded_date: str | None = None
    recorder: str | None = None
    enriched: bool = False


@dataclass(frozen=True)
class Encounter(CanonicalRecord):
    """Visit from a FHIR Encounter."""

    kind: ClassVar[RecordKind] = RecordKind.ENCOUNTER

    type: str = "unknown"
    type_code: str | None = None
    encounter_class: str = field(default="unknown", metadata={"json": "class"})
    class_code: str | None = None
    status: EncounterStatus = EncounterStatus.UNKNOWN
    start_date: str | None = None
    end_date: str | None = None
    duration: str | None = None
    location: Reference | None = None
    participants: list[Participant] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    service_provider: Reference | None = None

    @property
    def location_name(self) -> str | None:
        return self.location.name if self.location else None

    @property
    def service_provider_name(self) -> str | None:
        return self.service_provider.name if self.service_provider else None


@dataclass(frozen=True)
class Claim(CanonicalRecord):
    """Adjudicated claim from a FHIR ExplanationOfBenefit."""

    kind: ClassVar[RecordKind] = RecordKind.CLAIM

    claim_id: str | None = None
    type: str = "unknown"
    status: str = "unknown"
    outcome: str = "unknown"
    service_start_date: str | None = None
    service_end_date: str | None = None
    provider: Reference | None = None
    facility: Reference | None = None
    diagnoses: list[ClaimDiagnosis] = field(default_factory=list)
    procedures: list[ClaimProcedure] = field(default_factory=list)
    totals: ClaimTotals = field(default_factory=ClaimTotals)
    line_items: list[ClaimLineItem] = field(default_factory=list)
    created_date: str | None = None
