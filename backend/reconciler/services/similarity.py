"""String similarity and date proximity primitives used by the matchers."""

from datetime import UTC, datetime

from rapidfuzz.distance import Levenshtein

SECONDS_PER_DAY = 24 * 60 * 60


def similarity_ratio(a: str | None, b: str | None) -> float:
    """Edit-distance similarity between two strings in [0, 1].

    Compares lower-cased, trimmed strings as
    ``1 - levenshtein(a, b) / max(len(a), len(b))``. Identical strings score
    1.0; an empty or missing string scores 0.0.
    """
    if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
        return 0.0

    s1 = a.lower().strip()
    s2 = b.lower().strip()

    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    return 1.0 - Levenshtein.distance(s1, s2) / max_len


def parse_fhir_datetime(value: str | None) -> datetime | None:
    """Parse a FHIR date/dateTime into an aware UTC datetime.

    Accepts full timestamps (with ``Z`` or an offset), dates, ``YYYY-MM`` and
    ``YYYY``. Values without an offset are taken as UTC. Anything else
    (e.g. ``"Age 45"``) yields None.
    """
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if len(text) == 4 and text.isdigit():
        text = f"{text}-01-01"
    elif len(text) == 7 and text[4] == "-":
        text = f"{text}-01"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def same_day(a: str | None, b: str | None) -> bool:
    """Whether two timestamps fall on the same UTC calendar day."""
    d1 = parse_fhir_datetime(a)
    d2 = parse_fhir_datetime(b)
    if d1 is None or d2 is None:
        return False
    return d1.date() == d2.date()


def dates_within_days(a: str | None, b: str | None, days: float) -> bool:
    """Whether two timestamps are at most ``days`` apart."""
    d1 = parse_fhir_datetime(a)
    d2 = parse_fhir_datetime(b)
    if d1 is None or d2 is None:
        return False
    return abs((d1 - d2).total_seconds()) / SECONDS_PER_DAY <= days


def most_recent(values: list[str | None]) -> str | None:
    """Pick the latest of several date strings.

    Returns the original string of the latest parseable value. When none of
    the values parses, falls back to the first non-empty one.
    """
    latest: tuple[datetime, str] | None = None
    for value in values:
        parsed = parse_fhir_datetime(value)
        if parsed is not None and (latest is None or parsed > latest[0]):
            latest = (parsed, value)

    if latest is not None:
        return latest[1]
    return next((v for v in values if v), None)


def ranges_overlap(
    start1: str | None,
    end1: str | None,
    start2: str | None,
    end2: str | None,
) -> bool:
    """Whether two periods overlap, inclusive.

    A missing end is treated as equal to the start.
    """
    s1 = parse_fhir_datetime(start1)
    s2 = parse_fhir_datetime(start2)
    if s1 is None or s2 is None:
        return False
    e1 = parse_fhir_datetime(end1) or s1
    e2 = parse_fhir_datetime(end2) or s2
    return s1 <= e2 and s2 <= e1
