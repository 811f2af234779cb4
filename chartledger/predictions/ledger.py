# chartledger/predictions/ledger.py
import logging
from dataclasses import replace
from typing import Optional

from chartledger.core.encoding import AddressLike, HashLike, normalize_owner
from chartledger.core.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    ValidationError,
    require_bytes32,
)
from chartledger.core.types import PredictionEntry
from chartledger.registry.commitments import require_owner
from chartledger.storage import COUNTER_OWNERS, COUNTER_PREDICTIONS, StorageBackend

logger = logging.getLogger(__name__)

MAX_DAY = 2**63 - 1     # SQLite INTEGER range


def require_day(day: int) -> int:
    if isinstance(day, bool) or not isinstance(day, int):
        raise ValidationError(ErrorKind.INVALID_DATE, f"day key must be an integer, got {day!r}")
    if day < 0 or day > MAX_DAY:
        raise ValidationError(ErrorKind.INVALID_DATE, f"day key out of range: {day}")
    return day


def lookup_owner(owner: AddressLike) -> Optional[str]:
    """Normalise an owner for read paths; unparseable owners simply have no data."""
    try:
        return normalize_owner(owner)
    except ValueError:
        return None


class PredictionLedger:
    """
    Per-owner, per-day prediction entries.

    An owner must register a birth-data commitment exactly once before it
    can store predictions. Entries are created once and never rewritten.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def register_owner(self, caller: AddressLike, commitment: HashLike) -> None:
        caller = require_owner(caller)
        with self.storage.transaction():
            raw = require_bytes32(commitment, ErrorKind.INVALID_COMMITMENT)
            if self.storage.get_registration(caller) is not None:
                raise ConflictError(ErrorKind.ALREADY_REGISTERED, f"{caller} is already registered")

            self.storage.insert_registration(caller, raw)
            self.storage.incr_counter(COUNTER_OWNERS)

        logger.info("Registered owner %s", caller)

    def store_prediction(self, caller: AddressLike, day: int, prediction_hash: HashLike) -> PredictionEntry:
        caller = require_owner(caller)
        with self.storage.transaction():
            if self.storage.get_registration(caller) is None:
                raise NotFoundError(ErrorKind.NOT_REGISTERED, f"{caller} has not registered")

            raw = require_bytes32(prediction_hash, ErrorKind.INVALID_HASH)
            day = require_day(day)

            if self.storage.get_prediction(caller, day) is not None:
                raise ConflictError(
                    ErrorKind.ALREADY_EXISTS, f"prediction for {caller} on day {day} already exists"
                )

            entry = PredictionEntry(owner=caller, day=day, prediction_hash=raw)
            self.storage.insert_prediction(entry)

            stats = self.storage.get_user_stats(caller)
            self.storage.put_user_stats(caller, replace(stats, prediction_count=stats.prediction_count + 1))
            self.storage.incr_counter(COUNTER_PREDICTIONS)

        logger.info("Stored prediction for %s on day %d", caller, day)
        return entry

    def get_commitment(self, owner: AddressLike) -> Optional[bytes]:
        owner = lookup_owner(owner)
        return self.storage.get_registration(owner) if owner else None

    def is_registered(self, owner: AddressLike) -> bool:
        return self.get_commitment(owner) is not None

    def get_prediction(self, owner: AddressLike, day: int) -> Optional[PredictionEntry]:
        owner = lookup_owner(owner)
        if owner is None or not isinstance(day, int) or not 0 <= day <= MAX_DAY:
            return None
        return self.storage.get_prediction(owner, day)

    def has_prediction(self, owner: AddressLike, day: int) -> bool:
        return self.get_prediction(owner, day) is not None
