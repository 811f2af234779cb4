# chartledger/registry/commitments.py
import logging
from typing import List, Optional

from chartledger.core.clock import Clock, MonotonicClock
from chartledger.core.encoding import AddressLike, HashLike, normalize_owner, to_bytes32, is_zero_owner
from chartledger.core.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    ValidationError,
    require_bytes32,
)
from chartledger.core.types import ChartCreated, ChartVerified, Commitment
from chartledger.storage import COUNTER_CHARTS, StorageBackend

logger = logging.getLogger(__name__)


def require_owner(owner: AddressLike, kind: ErrorKind = ErrorKind.INVALID_OWNER) -> str:
    try:
        normalized = normalize_owner(owner)
    except ValueError as e:
        raise ValidationError(kind, str(e)) from e
    if is_zero_owner(normalized):
        raise ValidationError(kind, "zero address not allowed")
    return normalized


class OwnerIndex:
    """
    Reverse index owner → chart ids, in registration order.
    Append-only; holds ids only, never chart data.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def append(self, owner: str, chart_id: str) -> None:
        self.storage.append_owner_chart(owner, chart_id)

    def list(self, owner: AddressLike) -> List[str]:
        try:
            owner = normalize_owner(owner)
        except ValueError:
            return []
        return self.storage.list_owner_charts(owner)

    def owners(self) -> List[str]:
        return self.storage.list_indexed_owners()


class CommitmentStore:
    """
    Keyed collection of chart commitments.

    Ids are unique for the lifetime of the store, records are never deleted,
    and `verified` can only move from False to True.
    """

    def __init__(self, storage: StorageBackend, clock: Optional[Clock] = None):
        self.storage = storage
        self.clock = clock if isinstance(clock, MonotonicClock) else MonotonicClock(clock)
        self.index = OwnerIndex(storage)

    def register(
        self,
        chart_id: str,
        data_hash: HashLike,
        owner: AddressLike,
        verified: bool = False,
    ) -> Commitment:
        """
        Create a commitment, index it under its owner, bump the global
        counter and emit ChartCreated, all in one transaction.
        """
        if not isinstance(chart_id, str):
            raise ValidationError(
                ErrorKind.INVALID_CHART_ID, f"chart id must be a string, got {type(chart_id).__name__}"
            )

        with self.storage.transaction():
            if self.storage.get_chart(chart_id) is not None:
                raise ConflictError(ErrorKind.ALREADY_EXISTS, f"chart '{chart_id}' already registered")

            # stored timestamps outlive this process and its clock
            created_at = max(self.clock(), self.storage.max_created_at())

            raw_hash = require_bytes32(data_hash, ErrorKind.INVALID_HASH)
            owner = require_owner(owner)

            chart = Commitment(
                chart_id=chart_id,
                data_hash=raw_hash,
                owner=owner,
                created_at=created_at,
                verified=bool(verified),
            )
            self.storage.insert_chart(chart)
            self.index.append(owner, chart_id)
            self.storage.incr_counter(COUNTER_CHARTS)

            event = ChartCreated(
                chart_id=chart.chart_id,
                data_hash=chart.data_hash,
                owner=chart.owner,
                created_at=chart.created_at,
                verified=chart.verified,
            )
            self.storage.append_event(event.kind, event.payload())

        logger.info("Registered chart %s for %s (verified=%s)", chart_id, owner, chart.verified)
        return chart

    def verify(self, chart_id: str, data_hash: HashLike) -> bool:
        """True iff the chart exists and its stored hash equals `data_hash`."""
        chart = self.get(chart_id)
        if chart is None:
            return False
        try:
            return chart.data_hash == to_bytes32(data_hash)
        except ValueError:
            return False

    def mark_verified(self, chart_id: str) -> Commitment:
        # re-emits ChartVerified on every call; no dedup
        with self.storage.transaction():
            chart = self.get(chart_id)
            if chart is None:
                raise NotFoundError(ErrorKind.NOT_FOUND, f"chart '{chart_id}' does not exist")

            self.storage.set_chart_verified(chart_id)
            event = ChartVerified(chart_id=chart_id, data_hash=chart.data_hash)
            self.storage.append_event(event.kind, event.payload())

        logger.info("Marked chart %s as verified", chart_id)
        return self.storage.get_chart(chart_id)

    def get(self, chart_id: str) -> Optional[Commitment]:
        if not isinstance(chart_id, str):
            return None
        return self.storage.get_chart(chart_id)

    def list_by_owner(self, owner: AddressLike) -> List[str]:
        return self.index.list(owner)

    def total_count(self) -> int:
        return self.storage.get_counter(COUNTER_CHARTS)

    def is_verified(self, chart_id: str) -> bool:
        chart = self.get(chart_id)
        return chart is not None and chart.verified
