"""Core configuration and utilities."""

from reconciler.core.audit import (
    AuditAction,
    AuditEvent,
    log_audit,
    log_enrichment_failure,
    log_merge,
    log_normalization,
)
from reconciler.core.config import Settings, settings
from reconciler.core.errors import ReconcilerError

__all__ = [
    # Config
    "Settings",
    "settings",
    # Errors
    "ReconcilerError",
    # Audit
    "AuditAction",
    "AuditEvent",
    "log_audit",
    "log_enrichment_failure",
    "log_merge",
    "log_normalization",
]
