"""Deduplication output shapes."""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from reconciler.schemas.records import CanonicalRecord

R = TypeVar("R", bound=CanonicalRecord)


@dataclass(frozen=True)
class SourceProvenance:
    """Where one member of a duplicate group came from."""

    source: str
    record_id: str | None = None
    code: str | None = None
    code_system: str | None = None
    enriched: bool = False

    @classmethod
    def from_record(cls, record: CanonicalRecord) -> "SourceProvenance":
        return cls(
            source=record.source,
            record_id=record.id,
            code=getattr(record, "code", None),
            code_system=getattr(record, "code_system", None),
            enriched=getattr(record, "enriched", False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "recordId": self.record_id,
            "code": self.code,
            "codeSystem": self.code_system,
            "enriched": self.enriched,
        }


@dataclass(frozen=True)
class DuplicateGroup(Generic[R]):
    """Records judged to describe the same fact, plus their merge.

    Every input record lands in exactly one group. A group of one still has
    the full shape: ``merged`` is the record itself.

    Attributes:
        merged: Canonical record built from the members.
        sources: Distinct source tags of the members, first-seen order.
        source_details: One provenance entry per member, in member order.
        originals: The untouched members, in input order.
    """

    merged: R
    sources: list[str] = field(default_factory=list)
    source_details: list[SourceProvenance] = field(default_factory=list)
    originals: list[R] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.originals)

    @property
    def is_duplicate(self) -> bool:
        return len(self.originals) > 1

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        return {
            "merged": self.merged.to_dict(),
            "sources": list(self.sources),
            "sourceDetails": [d.to_dict() for d in self.source_details],
            "originals": [o.to_dict(include_raw=include_raw) for o in self.originals],
        }
