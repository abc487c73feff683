"""Tests for the claim (ExplanationOfBenefit) normalizer."""

import pytest

from reconciler.normalizers.claims import ClaimNormalizer, accumulate_amounts
from reconciler.schemas import ClaimDiagnosis, ClaimProcedure, ClaimTotals, Reference


def adjudication(category, value):
    return {"category": {"coding": [{"code": category}]}, "amount": {"value": value, "currency": "USD"}}


class TestAccumulateAmounts:
    """Test adjudication bucketing."""

    def test_patient_responsibility_adds_up(self):
        """Test that copay, deductible and patientpay are summed."""
        amounts = accumulate_amounts([
            adjudication("copay", 20),
            adjudication("deductible", 50),
            adjudication("patientpay", 5),
        ])
        assert amounts["patient_responsibility"] == 75

    def test_later_entries_replace(self):
        """Test that billed/allowed/paid take the last value."""
        amounts = accumulate_amounts([adjudication("submitted", 100), adjudication("billedamount", 120)])
        assert amounts["billed"] == 120

    def test_unknown_categories_ignored(self):
        """Test that unrecognized categories are skipped."""
        amounts = accumulate_amounts([adjudication("tax", 9), "junk", adjudication("paid", 80)])
        assert amounts == {"billed": None, "allowed": None, "paid": 80, "patient_responsibility": None}

    def test_empty(self):
        """Test that no entries gives empty buckets."""
        assert accumulate_amounts(None) == {
            "billed": None,
            "allowed": None,
            "paid": None,
            "patient_responsibility": None,
        }


class TestClaimNormalizer:
    """Test Claim normalization."""

    def test_payer_claim(self, humana_bundle):
        """Test a claim with claim-level totals."""
        claim = ClaimNormalizer().normalize(humana_bundle["claims"], "humana")[0]

        assert claim.id == "hum-eob-1"
        assert claim.claim_id == "C-100"
        assert claim.type == "institutional"
        assert claim.status == "processing"
        assert claim.outcome == "processed"
        assert claim.service_start_date == "2024-01-06"
        assert claim.service_end_date == "2024-01-08"
        assert claim.provider == Reference(name="General Hospital")
        assert claim.totals == ClaimTotals(billed=250.0, allowed=200.0, paid=160.0, patient_responsibility=40.0)

    def test_totals_from_line_items(self):
        """Test that totals are summed from lines without total[]."""
        resource = {
            "item": [
                {
                    "sequence": 1,
                    "productOrService": {"coding": [{"code": "99213", "display": "Office visit"}]},
                    "servicedDate": "2024-01-06",
                    "adjudication": [adjudication("submitted", 100), adjudication("benefit", 80), adjudication("copay", 10)],
                },
                {
                    "sequence": 2,
                    "productOrService": {"text": "Lab panel"},
                    "quantity": {"value": 2},
                    "adjudication": [adjudication("submitted", 50), adjudication("benefit", 40)],
                },
            ]
        }
        claim = ClaimNormalizer().normalize([resource], "humana")[0]

        assert claim.totals == ClaimTotals(billed=150, allowed=None, paid=120, patient_responsibility=10)
        first, second = claim.line_items
        assert first.code == "99213"
        assert first.display == "Office visit"
        assert first.service_date == "2024-01-06"
        assert first.quantity == 1
        assert first.patient_responsibility == 10
        assert second.display == "Lab panel"
        assert second.quantity == 2
        assert second.patient_responsibility is None

    def test_diagnoses_and_procedures(self):
        """Test diagnosis and procedure lines."""
        resource = {
            "diagnosis": [
                {
                    "sequence": 1,
                    "diagnosisCodeableConcept": {"coding": [{"code": "E11.9", "display": "Type 2 diabetes"}]},
                    "type": [{"coding": [{"code": "principal"}]}],
                },
                {"sequence": 2, "diagnosisCodeableConcept": {"text": "Hypertension"}},
            ],
            "procedure": [
                {"sequence": 1, "procedureCodeableConcept": {"coding": [{"code": "0DTJ4ZZ"}]}, "date": "2024-01-07"},
            ],
        }
        claim = ClaimNormalizer().normalize([resource], "humana")[0]

        assert claim.diagnoses == [
            ClaimDiagnosis(sequence=1, code="E11.9", display="Type 2 diabetes", type="principal"),
            ClaimDiagnosis(sequence=2, code=None, display="Hypertension", type="unknown"),
        ]
        assert claim.procedures == [ClaimProcedure(sequence=1, code="0DTJ4ZZ", display=None, date="2024-01-07")]

    @pytest.mark.parametrize(
        "type_coding,expected",
        [
            ({"code": "oral"}, "dental"),
            ({"code": "pharmacy"}, "pharmacy"),
            ({"code": "x", "display": "Custom"}, "Custom"),
            ({"code": "x"}, "x"),
        ],
    )
    def test_type_mapping(self, type_coding, expected):
        """Test claim type mapping."""
        claim = ClaimNormalizer().normalize([{"type": {"coding": [type_coding]}}], "humana")[0]
        assert claim.type == expected

    def test_defaults(self):
        """Test defaults for a sparse claim."""
        claim = ClaimNormalizer().normalize([{"status": "weird", "claim": {"reference": "C-1"}}], "humana")[0]

        assert claim.type == "unknown"
        assert claim.status == "weird"
        assert claim.outcome == "unknown"
        assert claim.claim_id is None
        assert claim.totals == ClaimTotals()
        assert claim.line_items == []

    def test_to_dict(self, humana_bundle):
        """Test camelCase serialization of totals."""
        data = ClaimNormalizer().normalize(humana_bundle["claims"], "humana")[0].to_dict()

        assert data["claimId"] == "C-100"
        assert data["totals"]["patientResponsibility"] == 40.0
        assert data["totals"]["currency"] == "USD"
        assert data["lineItems"] == []
