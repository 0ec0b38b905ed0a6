"""Exceptions raised by the profitability services and mapped to HTTP by the API layer."""


class InvalidRequestError(ValueError):
    """Unknown scope, non-finite year, out-of-range parameter. Raised before any read."""


class NotFoundError(LookupError):
    """A requested project (or other root record) is absent from the snapshot."""


class SnapshotReadError(RuntimeError):
    """Storage was unavailable or returned a malformed row; the whole request fails."""
