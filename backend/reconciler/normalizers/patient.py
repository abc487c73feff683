"""Patient normalizer.

Handles the name conventions seen across EMRs and payers: structured
``given[]``/``family`` names, and a single ``text`` name written either as
"LAST, FIRST" or "FIRST LAST".
"""

import logging
from typing import Any

from reconciler.normalizers.base import BaseNormalizer, RawResource, as_dict, as_list
from reconciler.schemas.base import Gender, RecordKind
from reconciler.schemas.records import Address, Patient
from reconciler.services.code_resolver import CodeInfo

logger = logging.getLogger(__name__)

GENDER_MAP = {
    "male": Gender.MALE,
    "female": Gender.FEMALE,
    "other": Gender.OTHER,
    "unknown": Gender.UNKNOWN,
    "M": Gender.MALE,
    "F": Gender.FEMALE,
}


def parse_name(names: Any) -> tuple[str | None, str | None, str | None]:
    """Extract (first, last, full) name from a FHIR ``name`` array.

    The ``official`` name is preferred over the first entry.
    """
    entries = [n for n in as_list(names) if isinstance(n, dict)]
    if not entries:
        return None, None, None

    name = next((n for n in entries if n.get("use") == "official"), entries[0])
    text = name.get("text")
    given = as_list(name.get("given"))

    if text and not given:
        if "," in text:
            last, _, first = text.partition(",")
            last = last.strip() or None
            first = first.split(",")[0].strip() or None
            full = f"{first} {last}" if first and last else text
            return first, last, full

        first, _, last = text.partition(" ")
        return first or None, last or None, text

    first = given[0] if given and given[0] else None
    last = name.get("family") or None
    full = " ".join(part for part in (first, last) if part) or None
    return first, last, full


def _telecom(resource: RawResource, system: str) -> str | None:
    for entry in as_list(resource.get("telecom")):
        if isinstance(entry, dict) and entry.get("system") == system:
            return entry.get("value") or None
    return None


def _address(resource: RawResource) -> Address | None:
    addresses = [a for a in as_list(resource.get("address")) if isinstance(a, dict)]
    if not addresses:
        return None

    home = next((a for a in addresses if a.get("use") == "home"), addresses[0])
    lines = as_list(home.get("line"))
    return Address(
        line1=lines[0] if lines else None,
        line2=lines[1] if len(lines) > 1 else None,
        city=home.get("city") or None,
        state=home.get("state") or None,
        postal_code=home.get("postalCode") or None,
        country=home.get("country") or "US",
    )


class PatientNormalizer(BaseNormalizer[Patient]):
    """Normalizes FHIR Patient resources."""

    kind = RecordKind.PATIENT
    resource_type = "Patient"

    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> Patient:
        first, last, full = parse_name(resource.get("name"))
        gender = resource.get("gender")

        return Patient(
            id=resource.get("id") or None,
            source=source,
            raw=resource,
            first_name=first,
            last_name=last,
            full_name=full,
            date_of_birth=resource.get("birthDate") or None,
            gender=GENDER_MAP.get(gender, Gender.UNKNOWN) if isinstance(gender, str) else Gender.UNKNOWN,
            email=_telecom(resource, "email"),
            phone=_telecom(resource, "phone"),
            address=_address(resource),
        )

    def normalize_one(self, resource: Any, source: str) -> Patient | None:
        """Normalize a single Patient resource; None when absent or unusable."""
        if not as_dict(resource):
            return None
        records = self.normalize([resource], source)
        return records[0] if records else None
