"""Tests for the Patient normalizer."""

import pytest

from reconciler.normalizers.patient import PatientNormalizer, parse_name
from reconciler.schemas import Address, Gender


class TestParseName:
    """Test name conventions across sources."""

    def test_structured_name(self):
        """Test given[]/family names."""
        assert parse_name([{"given": ["John", "Q"], "family": "Smith"}]) == ("John", "Smith", "John Smith")

    def test_official_preferred(self):
        """Test that the official name wins over the first entry."""
        names = [
            {"use": "usual", "given": ["Johnny"], "family": "S"},
            {"use": "official", "given": ["John"], "family": "Smith"},
        ]
        assert parse_name(names) == ("John", "Smith", "John Smith")

    def test_last_comma_first(self):
        """Test "LAST, FIRST" text names."""
        assert parse_name([{"text": "SMITH, JOHN"}]) == ("JOHN", "SMITH", "JOHN SMITH")

    def test_first_last(self):
        """Test "FIRST LAST" text names."""
        assert parse_name([{"text": "John Smith"}]) == ("John", "Smith", "John Smith")

    def test_single_word(self):
        """Test a mononym."""
        assert parse_name([{"text": "Cher"}]) == ("Cher", None, "Cher")

    def test_family_only(self):
        """Test a name with only a family part."""
        assert parse_name([{"family": "Smith"}]) == (None, "Smith", "Smith")

    @pytest.mark.parametrize("names", [None, [], "John", [None]])
    def test_missing_names(self, names):
        """Test that absent or malformed names give no name."""
        assert parse_name(names) == (None, None, None)


class TestPatientNormalizer:
    """Test Patient normalization."""

    def test_epic_patient(self, epic_bundle):
        """Test a fully populated patient."""
        patient = PatientNormalizer().normalize_one(epic_bundle["patient"], "epic")

        assert patient.id == "epic-pat-1"
        assert patient.source == "epic"
        assert patient.full_name == "John Smith"
        assert patient.gender == Gender.MALE
        assert patient.date_of_birth == "1970-05-15"
        assert patient.email == "john@example.com"
        assert patient.phone == "555-0100"
        assert patient.address == Address(
            line1="1 Main St", city="Springfield", state="IL", postal_code="62701", country="US"
        )

    def test_payer_patient(self, humana_bundle):
        """Test a payer patient with a text name and M/F gender."""
        patient = PatientNormalizer().normalize_one(humana_bundle["patient"], "humana")

        assert patient.first_name == "JOHN"
        assert patient.last_name == "SMITH"
        assert patient.gender == Gender.MALE
        assert patient.address is None

    def test_home_address_preferred(self):
        """Test that the home address wins."""
        resource = {
            "address": [
                {"use": "work", "city": "Chicago"},
                {"use": "home", "city": "Peoria", "line": ["1 A St", "Apt 2"], "country": "CA"},
            ]
        }
        patient = PatientNormalizer().normalize_one(resource, "epic")

        assert patient.address.city == "Peoria"
        assert patient.address.line2 == "Apt 2"
        assert patient.address.country == "CA"

    def test_unknown_gender(self):
        """Test that unrecognized genders map to unknown."""
        patient = PatientNormalizer().normalize_one({"id": "p", "gender": "X"}, "epic")
        assert patient.gender == Gender.UNKNOWN

    @pytest.mark.parametrize("resource", [None, {}, "patient", []])
    def test_missing_patient(self, resource):
        """Test that absent patients give None."""
        assert PatientNormalizer().normalize_one(resource, "epic") is None

    def test_to_dict(self, epic_bundle):
        """Test camelCase serialization."""
        patient = PatientNormalizer().normalize_one(epic_bundle["patient"], "epic")
        data = patient.to_dict()

        assert data["firstName"] == "John"
        assert data["dateOfBirth"] == "1970-05-15"
        assert data["gender"] == "male"
        assert data["address"]["postalCode"] == "62701"
        assert "_raw" not in data
        assert patient.to_dict(include_raw=True)["_raw"] == epic_bundle["patient"]
