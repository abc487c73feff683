"""Health record aggregator.

Orchestrates the normalizers for one connection's bundle, and reconciles the
normalized records of several connections for the same patient into
deduplicated groups.

Input bundles are keyed by resource kind:

    {
        "patient": {...},            # single Patient resource
        "observations": [...],
        "medications": [...],
        "conditions": [...],
        "encounters": [...],
        "claims": [...],
    }

A FHIR ``Bundle`` resource can be converted to this shape with
``split_fhir_bundle``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from reconciler.core.audit import AuditAction, log_audit, log_normalization
from reconciler.core.config import settings
from reconciler.deduplication import (
    deduplicate_conditions,
    deduplicate_encounters,
    deduplicate_labs,
    deduplicate_medications,
)
from reconciler.normalizers import (
    ClaimNormalizer,
    ConditionNormalizer,
    EncounterNormalizer,
    LabNormalizer,
    MedicationNormalizer,
    PatientNormalizer,
)
from reconciler.schemas.groups import DuplicateGroup
from reconciler.schemas.records import Claim, Condition, Encounter, LabResult, Medication, Patient
from reconciler.services.code_resolver import CodeLookup, CodeResolver
from reconciler.services.terminology_client import TerminologyClient

logger = logging.getLogger(__name__)

# FHIR resourceType → bundle key
BUNDLE_KEYS = {
    "Observation": "observations",
    "MedicationRequest": "medications",
    "Condition": "conditions",
    "Encounter": "encounters",
    "ExplanationOfBenefit": "claims",
}


def _timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def split_fhir_bundle(bundle: dict[str, Any]) -> dict[str, Any]:
    """Convert a FHIR Bundle resource into the keyed bundle shape.

    The first Patient entry becomes ``patient``; unsupported resource types
    are ignored. A dict that is not a Bundle is returned unchanged.
    """
    if not isinstance(bundle, dict) or bundle.get("resourceType") != "Bundle":
        return bundle

    keyed: dict[str, Any] = {key: [] for key in BUNDLE_KEYS.values()}
    keyed["patient"] = None

    for entry in bundle.get("entry") or []:
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if not isinstance(resource, dict):
            continue
        resource_type = resource.get("resourceType")
        if resource_type == "Patient":
            if keyed["patient"] is None:
                keyed["patient"] = resource
        elif resource_type in BUNDLE_KEYS:
            keyed[BUNDLE_KEYS[resource_type]].append(resource)

    return keyed


@dataclass(frozen=True)
class NormalizedHealthRecord:
    """Canonical records from one connection, with a metadata envelope."""

    source: str
    normalized_at: str
    version: str
    api_enriched: bool
    patient: Patient | None = None
    labs: list[LabResult] = field(default_factory=list)
    medications: list[Medication] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    encounters: list[Encounter] = field(default_factory=list)
    claims: list[Claim] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "patient": 1 if self.patient else 0,
            "labs": len(self.labs),
            "medications": len(self.medications),
            "conditions": len(self.conditions),
            "encounters": len(self.encounters),
            "claims": len(self.claims),
        }

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        return {
            "patient": self.patient.to_dict(include_raw) if self.patient else None,
            "labs": [r.to_dict(include_raw) for r in self.labs],
            "medications": [r.to_dict(include_raw) for r in self.medications],
            "conditions": [r.to_dict(include_raw) for r in self.conditions],
            "encounters": [r.to_dict(include_raw) for r in self.encounters],
            "claims": [r.to_dict(include_raw) for r in self.claims],
            "_meta": {
                "normalizedAt": self.normalized_at,
                "source": self.source,
                "version": self.version,
                "apiEnriched": self.api_enriched,
            },
        }


@dataclass(frozen=True)
class ReconciledHealthRecord:
    """Deduplicated view of one patient across several connections."""

    sources: list[str]
    normalized_at: str
    version: str
    api_enriched: bool
    patients: list[Patient] = field(default_factory=list)
    labs: list[DuplicateGroup[LabResult]] = field(default_factory=list)
    medications: list[DuplicateGroup[Medication]] = field(default_factory=list)
    conditions: list[DuplicateGroup[Condition]] = field(default_factory=list)
    encounters: list[DuplicateGroup[Encounter]] = field(default_factory=list)
    claims: list[Claim] = field(default_factory=list)
    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        return {
            "patients": [p.to_dict(include_raw) for p in self.patients],
            "labs": [g.to_dict(include_raw) for g in self.labs],
            "medications": [g.to_dict(include_raw) for g in self.medications],
            "conditions": [g.to_dict(include_raw) for g in self.conditions],
            "encounters": [g.to_dict(include_raw) for g in self.encounters],
            "claims": [c.to_dict(include_raw) for c in self.claims],
            "_meta": {
                "normalizedAt": self.normalized_at,
                "sources": list(self.sources),
                "version": self.version,
                "apiEnriched": self.api_enriched,
                "counts": self.counts,
            },
        }


class HealthRecordNormalizer:
    """Runs every resource normalizer over a bundle.

    Args:
        resolver: Shared code resolver; its lookup port enables enrichment.
    """

    def __init__(self, resolver: CodeResolver | None = None):
        self.resolver = resolver or CodeResolver()
        self.patients = PatientNormalizer(self.resolver)
        self.labs = LabNormalizer(self.resolver)
        self.medications = MedicationNormalizer(self.resolver)
        self.conditions = ConditionNormalizer(self.resolver)
        self.encounters = EncounterNormalizer(self.resolver)
        self.claims = ClaimNormalizer(self.resolver)

    def _finish(
        self,
        bundle: dict[str, Any],
        source: str,
        api_enriched: bool,
        labs: list[LabResult],
        medications: list[Medication],
        conditions: list[Condition],
    ) -> NormalizedHealthRecord:
        record = NormalizedHealthRecord(
            source=source,
            normalized_at=_timestamp(),
            version=settings.schema_version,
            api_enriched=api_enriched,
            patient=self.patients.normalize_one(bundle.get("patient"), source),
            labs=labs,
            medications=medications,
            conditions=conditions,
            encounters=self.encounters.normalize(bundle.get("encounters"), source),
            claims=self.claims.normalize(bundle.get("claims"), source),
        )
        log_normalization(
            source,
            record.counts,
            patient_id=record.patient.id if record.patient else None,
            enriched=api_enriched,
        )
        return record

    def normalize(self, bundle: dict[str, Any] | None, source: str) -> NormalizedHealthRecord:
        """Normalize a bundle with local code tables only."""
        bundle = bundle if isinstance(bundle, dict) else {}
        return self._finish(
            bundle,
            source,
            api_enriched=False,
            labs=self.labs.normalize(bundle.get("observations"), source),
            medications=self.medications.normalize(bundle.get("medications"), source),
            conditions=self.conditions.normalize(bundle.get("conditions"), source),
        )

    async def normalize_async(self, bundle: dict[str, Any] | None, source: str) -> NormalizedHealthRecord:
        """Normalize a bundle, enriching labs, medications and conditions concurrently."""
        bundle = bundle if isinstance(bundle, dict) else {}
        labs, medications, conditions = await asyncio.gather(
            self.labs.normalize_async(bundle.get("observations"), source),
            self.medications.normalize_async(bundle.get("medications"), source),
            self.conditions.normalize_async(bundle.get("conditions"), source),
        )
        return self._finish(
            bundle,
            source,
            api_enriched=self.resolver.can_enrich,
            labs=labs,
            medications=medications,
            conditions=conditions,
        )


async def normalize_health_record(
    bundle: dict[str, Any] | None,
    source: str,
    lookup: CodeLookup | None = None,
    enable_lookup: bool | None = None,
) -> NormalizedHealthRecord:
    """Normalize one connection's bundle with best-effort enrichment.

    Args:
        bundle: Keyed raw bundle.
        source: Connection tag (e.g. "epic").
        lookup: Lookup port; a TerminologyClient is created when omitted.
        enable_lookup: Whether to enrich at all; defaults to settings.

    Returns:
        NormalizedHealthRecord; ``api_enriched`` tells whether lookups were used.
    """
    if enable_lookup is None:
        enable_lookup = settings.enable_code_lookup

    if not enable_lookup:
        return HealthRecordNormalizer(CodeResolver()).normalize(bundle, source)

    if lookup is not None:
        return await HealthRecordNormalizer(CodeResolver(lookup)).normalize_async(bundle, source)

    async with TerminologyClient() as client:
        return await HealthRecordNormalizer(CodeResolver(client)).normalize_async(bundle, source)


def normalize_health_record_sync(bundle: dict[str, Any] | None, source: str) -> NormalizedHealthRecord:
    """Normalize one connection's bundle without any network calls."""
    return HealthRecordNormalizer(CodeResolver()).normalize(bundle, source)


def reconcile_health_records(records: list[NormalizedHealthRecord]) -> ReconciledHealthRecord:
    """Merge several connections' records for one patient.

    Per-kind lists are concatenated in input order, medications, labs,
    conditions and encounters are deduplicated, and every patient and claim
    is kept.
    """
    sources = list(dict.fromkeys(r.source for r in records))

    labs = [lab for r in records for lab in r.labs]
    medications = [med for r in records for med in r.medications]
    conditions = [cond for r in records for cond in r.conditions]
    encounters = [enc for r in records for enc in r.encounters]

    lab_groups = deduplicate_labs(labs)
    medication_groups = deduplicate_medications(medications)
    condition_groups = deduplicate_conditions(conditions)
    encounter_groups = deduplicate_encounters(encounters)

    counts = {
        "labs": {"records": len(labs), "groups": len(lab_groups)},
        "medications": {"records": len(medications), "groups": len(medication_groups)},
        "conditions": {"records": len(conditions), "groups": len(condition_groups)},
        "encounters": {"records": len(encounters), "groups": len(encounter_groups)},
    }

    reconciled = ReconciledHealthRecord(
        sources=sources,
        normalized_at=_timestamp(),
        version=settings.schema_version,
        api_enriched=any(r.api_enriched for r in records),
        patients=[r.patient for r in records if r.patient is not None],
        labs=lab_groups,
        medications=medication_groups,
        conditions=condition_groups,
        encounters=encounter_groups,
        claims=[claim for r in records for claim in r.claims],
        counts=counts,
    )

    log_audit(
        action=AuditAction.RECONCILE,
        resource_type="health_record",
        sources=sources,
        details={"counts": counts},
    )
    logger.info(f"Reconciled {len(records)} health records from {', '.join(sources) or 'no sources'}")
    return reconciled
