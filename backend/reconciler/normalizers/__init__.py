"""Resource normalizers.

Transform raw FHIR R4 resources from any connection into canonical records:

    - patient: Patient → Patient
    - labs: Observation (laboratory) → LabResult
    - medications: MedicationRequest → Medication
    - conditions: Condition → Condition
    - encounters: Encounter → Encounter
    - claims: ExplanationOfBenefit → Claim

Usage:
    from reconciler.normalizers import LabNormalizer

    labs = LabNormalizer().normalize(bundle["observations"], "epic")
"""

from reconciler.normalizers.base import BaseNormalizer
from reconciler.normalizers.claims import ClaimNormalizer
from reconciler.normalizers.conditions import ConditionNormalizer
from reconciler.normalizers.encounters import EncounterNormalizer, compute_duration
from reconciler.normalizers.labs import LabNormalizer
from reconciler.normalizers.medications import MedicationNormalizer
from reconciler.normalizers.patient import PatientNormalizer, parse_name

__all__ = [
    "BaseNormalizer",
    "ClaimNormalizer",
    "ConditionNormalizer",
    "EncounterNormalizer",
    "LabNormalizer",
    "MedicationNormalizer",
    "PatientNormalizer",
    "compute_duration",
    "parse_name",
]
