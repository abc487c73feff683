"""Base class for resource normalizers.

A normalizer turns a list of loosely-shaped FHIR R4 resources of one kind
into canonical records. Each subclass implements a single ``build`` method;
the sync and async entry points share it:

    normalize()        local tables only, ``enriched`` always False
    normalize_async()  additionally looks up unmapped codes through the
                       resolver's CodeLookup, all records concurrently

Neither entry point raises on bad input: ``None`` or an empty list gives
``[]``, non-dict entries are skipped, and a resource that fails to build is
logged and dropped.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from reconciler.schemas.base import RecordKind
from reconciler.schemas.records import CanonicalRecord, Reference
from reconciler.services.code_resolver import CodeInfo, CodeResolver

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=CanonicalRecord)

RawResource = dict[str, Any]


# ============================================================================
# Null-coalescing readers for raw FHIR payloads
# ============================================================================


def first_item(value: Any) -> dict[str, Any]:
    """First element of a list if it is a dict, else an empty dict."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return {}


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def as_int(value: Any) -> int | None:
    """Whole-number reading of a count such as ``numberOfRepeatsAllowed``.

    Accepts ints, integral floats and digit strings; anything else is None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def codings_of(concept: Any) -> list[dict[str, Any]]:
    """The coding list of a CodeableConcept, dict entries only."""
    return [c for c in as_list(as_dict(concept).get("coding")) if isinstance(c, dict)]


def first_code(concept: Any) -> str | None:
    """Code of the first coding of a CodeableConcept."""
    return first_item(codings_of(concept)).get("code") or None


def concept_label(concept: Any) -> str | None:
    """``text``, else first coding display, else first coding code."""
    concept = as_dict(concept)
    coding = first_item(codings_of(concept))
    return concept.get("text") or coding.get("display") or coding.get("code") or None


def reference_of(value: Any) -> tuple[str | None, str | None]:
    """(display, reference) of a FHIR Reference."""
    ref = as_dict(value)
    return ref.get("display") or None, ref.get("reference") or None


def to_reference(value: Any) -> Reference | None:
    """Reference record for a non-empty FHIR Reference, else None."""
    if not isinstance(value, dict) or not value:
        return None
    name, reference = reference_of(value)
    return Reference(name=name, reference=reference)


# ============================================================================
# Base normalizer
# ============================================================================


class BaseNormalizer(ABC, Generic[R]):
    """Shared driver for per-kind normalizers.

    Args:
        resolver: Code resolver; its lookup port (if any) drives enrichment.
    """

    kind: ClassVar[RecordKind]
    resource_type: ClassVar[str]

    def __init__(self, resolver: CodeResolver | None = None):
        self.resolver = resolver or CodeResolver()

    def accepts(self, resource: RawResource) -> bool:
        """Whether a resource belongs to this normalizer's kind."""
        return True

    def enrichment_key(self, resource: RawResource) -> tuple[str, str] | None:
        """(code, system) to look up externally, or None for no lookup."""
        return None

    @abstractmethod
    def build(self, resource: RawResource, source: str, info: CodeInfo | None) -> R:
        """Build one canonical record.

        Args:
            resource: Raw FHIR resource.
            source: Connection tag.
            info: Enrichment result for this resource, if a lookup succeeded.
        """

    def _accepted(self, resources: list[Any] | None) -> list[RawResource]:
        if not resources or not isinstance(resources, list):
            return []
        accepted = []
        for resource in resources:
            if not isinstance(resource, dict):
                logger.debug(f"Skipping non-object {self.resource_type} entry")
                continue
            try:
                if self.accepts(resource):
                    accepted.append(resource)
            except Exception as e:
                logger.warning(f"Error filtering {self.resource_type} {resource.get('id')}: {e}")
        return accepted

    def _build_safely(
        self,
        resource: RawResource,
        source: str,
        info: CodeInfo | None,
    ) -> R | None:
        try:
            return self.build(resource, source, info)
        except Exception as e:
            logger.warning(f"Error parsing {self.resource_type} {resource.get('id')}: {e}")
            return None

    def normalize(self, resources: list[Any] | None, source: str) -> list[R]:
        """Normalize resources using local code tables only."""
        records = (self._build_safely(r, source, None) for r in self._accepted(resources))
        return [record for record in records if record is not None]

    async def _enrich(self, resource: RawResource) -> CodeInfo | None:
        try:
            key = self.enrichment_key(resource)
        except Exception as e:
            logger.debug(f"No enrichment key for {self.resource_type} {resource.get('id')}: {e}")
            return None
        if key is None:
            return None
        return await self.resolver.enrich(*key)

    async def normalize_async(self, resources: list[Any] | None, source: str) -> list[R]:
        """Normalize resources, enriching unmapped codes concurrently.

        Without a lookup port on the resolver this returns the same records
        as ``normalize``.
        """
        accepted = self._accepted(resources)
        if not self.resolver.can_enrich:
            infos: list[CodeInfo | None] = [None] * len(accepted)
        else:
            infos = await asyncio.gather(*(self._enrich(r) for r in accepted))

        records = (
            self._build_safely(resource, source, info)
            for resource, info in zip(accepted, infos)
        )
        return [record for record in records if record is not None]
