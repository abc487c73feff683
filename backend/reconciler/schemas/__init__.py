"""Canonical record schemas."""

from reconciler.schemas.base import (
    ClinicalStatus,
    CodeSystem,
    EncounterStatus,
    Gender,
    MedicationStatus,
    RecordKind,
    ValueType,
    VerificationStatus,
)
from reconciler.schemas.groups import DuplicateGroup, SourceProvenance
from reconciler.schemas.records import (
    Address,
    CanonicalRecord,
    Claim,
    ClaimDiagnosis,
    ClaimLineItem,
    ClaimProcedure,
    ClaimTotals,
    Condition,
    Dosage,
    Encounter,
    LabResult,
    Medication,
    Participant,
    Patient,
    Reference,
    ReferenceRange,
    Severity,
)

__all__ = [
    # Enums
    "ClinicalStatus",
    "CodeSystem",
    "EncounterStatus",
    "Gender",
    "MedicationStatus",
    "RecordKind",
    "ValueType",
    "VerificationStatus",
    # Records
    "CanonicalRecord",
    "Patient",
    "LabResult",
    "Medication",
    "Condition",
    "Encounter",
    "Claim",
    # Value objects
    "Address",
    "ClaimDiagnosis",
    "ClaimLineItem",
    "ClaimProcedure",
    "ClaimTotals",
    "Dosage",
    "Participant",
    "Reference",
    "ReferenceRange",
    "Severity",
    # Dedup output
    "DuplicateGroup",
    "SourceProvenance",
]
