"""Base enums for the FHIR Record Reconciler."""

from enum import Enum


class RecordKind(str, Enum):
    """Kinds of canonical records produced by the normalizers."""

    PATIENT = "patient"
    LAB = "lab"
    MEDICATION = "medication"
    CONDITION = "condition"
    ENCOUNTER = "encounter"
    CLAIM = "claim"


class Gender(str, Enum):
    """Administrative gender."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class ValueType(str, Enum):
    """Shape of an observation value."""

    QUANTITY = "quantity"
    STRING = "string"
    CODED = "coded"


class MedicationStatus(str, Enum):
    """Status of a medication request."""

    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"
    ERROR = "error"  # entered-in-error
    DRAFT = "draft"
    UNKNOWN = "unknown"


class ClinicalStatus(str, Enum):
    """Clinical status of a condition."""

    ACTIVE = "active"  # active, recurrence, relapse
    INACTIVE = "inactive"  # inactive, remission
    RESOLVED = "resolved"
    UNKNOWN = "unknown"


class VerificationStatus(str, Enum):
    """Verification status of a condition."""

    CONFIRMED = "confirmed"
    PROVISIONAL = "provisional"  # provisional, differential
    UNCONFIRMED = "unconfirmed"
    REFUTED = "refuted"
    ERROR = "error"  # entered-in-error
    UNKNOWN = "unknown"


class EncounterStatus(str, Enum):
    """Status of an encounter."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"
    UNKNOWN = "unknown"


class CodeSystem(str, Enum):
    """Canonical code system labels carried on normalized records."""

    LOINC = "LOINC"
    RXNORM = "RxNorm"
    ICD10 = "ICD-10"
    SNOMED = "SNOMED"
    UNKNOWN = "unknown"
