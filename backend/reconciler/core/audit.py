"""Audit logging for normalization and reconciliation.

Records which sources contributed to a patient view and when records from
different sources were merged, so a reconciled record can always be traced
back to its inputs.

This audit log should be persisted to a secure, append-only store
in production for compliance purposes.
"""

import logging
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Separate audit logger for provenance events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    NORMALIZE = "normalize"
    ENRICH = "enrich"
    MERGE = "merge"
    RECONCILE = "reconcile"
    ERROR = "error"


class AuditEvent(BaseModel):
    """Audit event record."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Record kind involved")
    resource_id: str | None = Field(None, description="ID of the specific record")
    patient_id: str | None = Field(None, description="Patient ID if known")
    sources: list[str] = Field(default_factory=list, description="Contributing source tags")
    details: dict | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


def log_audit(
    action: AuditAction,
    resource_type: str,
    resource_id: str | None = None,
    patient_id: str | None = None,
    sources: list[str] | None = None,
    details: dict | None = None,
    success: bool = True,
) -> AuditEvent:
    """Log an audit event.

    Args:
        action: Type of action being audited
        resource_type: Record kind (medication, lab, ...) or "health_record"
        resource_id: Specific record identifier
        patient_id: Patient ID if this is patient data
        sources: Source tags that contributed
        details: Additional context
        success: Whether the action succeeded

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        patient_id=patient_id,
        sources=sources or [],
        details=details,
        success=success,
    )

    log_level = logging.INFO if success else logging.WARNING
    source_list = ",".join(event.sources)
    audit_logger.log(
        log_level,
        f"AUDIT: {action.value} {resource_type}"
        f"{f'/{resource_id}' if resource_id else ''}"
        f"{f' patient={patient_id}' if patient_id else ''}"
        f"{f' sources={source_list}' if source_list else ''}"
        f" success={success}",
        extra={"audit_event": event.model_dump()},
    )

    return event


def log_normalization(
    source: str,
    counts: dict[str, int],
    patient_id: str | None = None,
    enriched: bool = False,
) -> AuditEvent:
    """Log that a connection's bundle was normalized.

    Args:
        source: Connection tag the bundle came from
        counts: Number of canonical records produced per kind
        patient_id: Source patient ID if the bundle carried one
        enriched: Whether external terminology lookups were used

    Returns:
        The created AuditEvent
    """
    return log_audit(
        action=AuditAction.NORMALIZE,
        resource_type="health_record",
        patient_id=patient_id,
        sources=[source],
        details={"counts": counts, "enriched": enriched},
    )


def log_merge(
    kind: str,
    record_ids: list[str | None],
    sources: list[str],
) -> AuditEvent:
    """Log that several records were merged into one canonical record.

    Args:
        kind: Record kind of the merged group
        record_ids: Source identifiers of the merged records, in group order
        sources: Distinct sources of the merged records

    Returns:
        The created AuditEvent
    """
    return log_audit(
        action=AuditAction.MERGE,
        resource_type=kind,
        resource_id=record_ids[0] if record_ids else None,
        sources=sources,
        details={"record_ids": record_ids, "group_size": len(record_ids)},
    )


def log_enrichment_failure(code: str, system: str, reason: str) -> AuditEvent:
    """Log a terminology lookup that was attempted but gave no result."""
    return log_audit(
        action=AuditAction.ENRICH,
        resource_type=system,
        resource_id=code,
        details={"reason": reason},
        success=False,
    )
