"""Multi-source health record normalization and reconciliation.

Normalizes FHIR R4 resources pulled from several connections (EHRs, payers)
into canonical records, then merges records that describe the same fact.
"""

__version__ = "1.0.0"
