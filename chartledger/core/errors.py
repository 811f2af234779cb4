# chartledger/core/errors.py
"""
Closed set of failure kinds raised by ledger operations.

Every error is raised after the surrounding storage transaction has rolled
back, so a caller catching one never observes partial writes.
"""

from enum import Enum

from chartledger.core.encoding import HashLike, to_bytes32


class ErrorKind(str, Enum):
    ALREADY_EXISTS = "AlreadyExists"
    INVALID_HASH = "InvalidHash"
    INVALID_OWNER = "InvalidOwner"
    NOT_FOUND = "NotFound"
    INVALID_COMMITMENT = "InvalidCommitment"
    ALREADY_REGISTERED = "AlreadyRegistered"
    NOT_REGISTERED = "NotRegistered"
    INVALID_RATING = "InvalidRating"
    INVALID_DATE = "InvalidDate"
    INVALID_PROOF = "InvalidProof"
    INVALID_CHART_ID = "InvalidChartId"


class LedgerError(Exception):
    """Base for all ledger failures; `kind` discriminates them."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        self.kind = kind
        self.message = message or kind.value
        super().__init__(f"{kind.value}: {self.message}")


class ValidationError(LedgerError, ValueError):
    pass


class ConflictError(LedgerError):
    pass


class NotFoundError(LedgerError, LookupError):
    pass


def require_bytes32(value: HashLike, kind: ErrorKind) -> bytes:
    """Parse a 32-byte value, rejecting malformed and all-zero input with `kind`."""
    try:
        raw = to_bytes32(value)
    except ValueError as e:
        raise ValidationError(kind, str(e)) from e
    if raw == b"\x00" * 32:
        raise ValidationError(kind, "zero value not allowed")
    return raw
