"""
Error taxonomy for the ledger and recurring engines.

Every business error derives from ValueError so API routes can keep
a single ``except ValueError`` branch, with NotFoundError checked
first to turn it into a 404. RecomputationError is not a ValueError:
it means persistence failed mid-walk and surfaces as a generic
failure.
"""


class LedgerError(ValueError):
    """Base class for errors the caller can act on."""


class InvalidInputError(LedgerError):
    """Bad input shape or value, rejected before any mutation."""


class NotFoundError(LedgerError):
    """Record missing or owned by another user."""


class ConsistencyError(LedgerError):
    """Request references records that cannot be combined this way."""


class RecomputationError(RuntimeError):
    """Running-balance recomputation failed; nothing was committed."""
