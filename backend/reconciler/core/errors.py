"""Errors raised to callers of the reconciler."""


class ReconcilerError(Exception):
    """Input that cannot be processed at all (e.g. an unreadable bundle file).

    Malformed clinical data never raises; it degrades to fallback values.
    """
