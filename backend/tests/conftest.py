"""Pytest configuration and fixtures for backend tests."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from reconciler.services.code_resolver import CodeInfo, CodeLookup, CodeResolver
from reconciler.services.code_tables import reset_code_tables

LOINC = "http://loinc.org"
RXNORM = "http://www.nlm.nih.gov/research/umls/rxnorm"
ICD10 = "http://hl7.org/fhir/sid/icd-10-cm"
SNOMED = "http://snomed.info/sct"
NDC = "http://hl7.org/fhir/sid/ndc"

LAB_CATEGORY = [{"coding": [{"system": "http://terminology.hl7.org/CodeSystem/observation-category", "code": "laboratory"}]}]
VITALS_CATEGORY = [{"coding": [{"system": "http://terminology.hl7.org/CodeSystem/observation-category", "code": "vital-signs"}]}]


@pytest.fixture(autouse=True)
def fresh_code_tables():
    """Reload the static code tables for every test."""
    reset_code_tables()
    yield
    reset_code_tables()


@pytest.fixture
def mock_lookup() -> MagicMock:
    """Create a mock CodeLookup.

    ``lookup`` is an AsyncMock; set ``return_value`` or ``side_effect`` per test.
    """
    lookup = MagicMock(spec=CodeLookup)
    lookup.lookup = AsyncMock(return_value=None)
    return lookup


@pytest.fixture
def enriching_resolver(mock_lookup: MagicMock) -> CodeResolver:
    """Resolver whose lookup answers every code with a fixed CodeInfo."""
    mock_lookup.lookup.return_value = CodeInfo(name="Remote Name", category="remote")
    return CodeResolver(lookup=mock_lookup)


@pytest.fixture
def epic_bundle() -> dict[str, Any]:
    """EHR export: structured names, LOINC / RxNorm / ICD-10 codes."""
    return {
        "patient": {
            "resourceType": "Patient",
            "id": "epic-pat-1",
            "name": [{"use": "official", "given": ["John", "Q"], "family": "Smith"}],
            "gender": "male",
            "birthDate": "1970-05-15",
            "telecom": [
                {"system": "phone", "value": "555-0100"},
                {"system": "email", "value": "john@example.com"},
            ],
            "address": [{"use": "home", "line": ["1 Main St"], "city": "Springfield", "state": "IL", "postalCode": "62701"}],
        },
        "observations": [
            {
                "resourceType": "Observation",
                "id": "epic-obs-1",
                "status": "final",
                "category": LAB_CATEGORY,
                "code": {"coding": [{"system": LOINC, "code": "4548-4", "display": "Hemoglobin A1c"}]},
                "valueQuantity": {"value": 7.2, "unit": "%"},
                "effectiveDateTime": "2024-01-15T09:30:00Z",
                "referenceRange": [{"low": {"value": 4.0, "unit": "%"}, "high": {"value": 5.6, "unit": "%"}}],
                "interpretation": [{"coding": [{"code": "H"}]}],
            },
            {
                "resourceType": "Observation",
                "id": "epic-obs-2",
                "status": "final",
                "category": VITALS_CATEGORY,
                "code": {"coding": [{"system": LOINC, "code": "8867-4", "display": "Heart rate"}]},
                "valueQuantity": {"value": 72, "unit": "/min"},
                "effectiveDateTime": "2024-01-15T09:30:00Z",
            },
        ],
        "medications": [
            {
                "resourceType": "MedicationRequest",
                "id": "epic-med-1",
                "status": "active",
                "medicationCodeableConcept": {
                    "text": "Metformin 500mg ER",
                    "coding": [{"system": RXNORM, "code": "860975"}],
                },
                "authoredOn": "2024-01-10",
                "requester": {"display": "Dr. Jones", "reference": "Practitioner/1"},
                "dosageInstruction": [{"text": "500 mg twice daily"}],
                "dispenseRequest": {"numberOfRepeatsAllowed": 3, "quantity": {"value": 60}},
            },
            {
                "resourceType": "MedicationRequest",
                "id": "epic-med-2",
                "status": "active",
                "medicationCodeableConcept": {"coding": [{"system": RXNORM, "code": "314076", "display": "Lisinopril 10 MG"}]},
                "authoredOn": "2023-06-01",
            },
        ],
        "conditions": [
            {
                "resourceType": "Condition",
                "id": "epic-cond-1",
                "code": {"coding": [{"system": ICD10, "code": "E11.9", "display": "Type 2 diabetes mellitus"}]},
                "clinicalStatus": {"coding": [{"code": "active"}]},
                "verificationStatus": {"coding": [{"code": "confirmed"}]},
                "category": [{"coding": [{"code": "problem-list-item"}]}],
                "onsetDateTime": "2020-03-01",
            },
        ],
        "encounters": [
            {
                "resourceType": "Encounter",
                "id": "epic-enc-1",
                "status": "finished",
                "class": {"code": "IMP"},
                "type": [{"coding": [{"code": "32485007", "display": "Hospital admission"}]}],
                "period": {"start": "2024-01-05T08:00:00Z", "end": "2024-01-08T10:00:00Z"},
                "location": [{"location": {"display": "Ward 5"}}],
                "serviceProvider": {"display": "General Hospital", "reference": "Organization/1"},
            },
        ],
        "claims": [],
    }


@pytest.fixture
def humana_bundle() -> dict[str, Any]:
    """Payer export: text names, proprietary lab codes, SNOMED conditions, claims."""
    return {
        "patient": {
            "resourceType": "Patient",
            "id": "hum-pat-9",
            "name": [{"text": "SMITH, JOHN"}],
            "gender": "M",
            "birthDate": "1970-05-15",
        },
        "observations": [
            {
                "resourceType": "Observation",
                "id": "hum-obs-1",
                "status": "preliminary",
                "category": LAB_CATEGORY,
                "code": {"coding": [{"system": "http://humana.com/lab", "code": "HBA1C", "display": "HbA1c"}]},
                "valueQuantity": {"value": 7.3, "unit": "%"},
                "effectiveDateTime": "2024-01-15T14:00:00Z",
            },
        ],
        "medications": [
            {
                "resourceType": "MedicationRequest",
                "id": "hum-med-1",
                "status": "active",
                "medicationCodeableConcept": {
                    "text": "Metformin ER 500 MG",
                    "coding": [{"system": RXNORM, "code": "860975"}],
                },
                "authoredOn": "2024-01-10",
                "dispenseRequest": {"numberOfRepeatsAllowed": 5, "quantity": {"value": 60}},
            },
        ],
        "conditions": [
            {
                "resourceType": "Condition",
                "id": "hum-cond-1",
                "code": {"coding": [{"system": SNOMED, "code": "44054006", "display": "Diabetes mellitus type 2"}]},
                "clinicalStatus": {"coding": [{"code": "active"}]},
            },
        ],
        "encounters": [
            {
                "resourceType": "Encounter",
                "id": "hum-enc-1",
                "status": "finished",
                "class": {"code": "IMP"},
                "type": [{"coding": [{"code": "183452005", "display": "Emergency hospital admission"}]}],
                "period": {"start": "2024-01-06T00:00:00Z", "end": "2024-01-08T00:00:00Z"},
                "serviceProvider": {"display": "General Hospital"},
            },
        ],
        "claims": [
            {
                "resourceType": "ExplanationOfBenefit",
                "id": "hum-eob-1",
                "status": "active",
                "outcome": "complete",
                "type": {"coding": [{"code": "institutional"}]},
                "claim": {"reference": "Claim/C-100"},
                "billablePeriod": {"start": "2024-01-06", "end": "2024-01-08"},
                "provider": {"display": "General Hospital"},
                "total": [
                    {"category": {"coding": [{"code": "submitted"}]}, "amount": {"value": 250.0}},
                    {"category": {"coding": [{"code": "eligible"}]}, "amount": {"value": 200.0}},
                    {"category": {"coding": [{"code": "benefit"}]}, "amount": {"value": 160.0}},
                    {"category": {"coding": [{"code": "copay"}]}, "amount": {"value": 20.0}},
                    {"category": {"coding": [{"code": "deductible"}]}, "amount": {"value": 20.0}},
                ],
            },
        ],
    }
