# chartledger/storage/__init__.py
"""
Storage backends: the persistent, transactional host the ledger runs on.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Dict, List, Optional

from chartledger.core.types import Commitment, EventRecord, PredictionEntry, UserStats

COUNTER_CHARTS = "total_charts"
COUNTER_OWNERS = "total_owners"
COUNTER_PREDICTIONS = "total_predictions"

COUNTERS = (COUNTER_CHARTS, COUNTER_OWNERS, COUNTER_PREDICTIONS)


class StorageBackend(ABC):
    """
    Abstract base for all persistent storage implementations.

    Mutations are only legal inside `transaction()`; a block that raises is
    rolled back in full. Nested blocks join the enclosing transaction.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        pass

    # charts + owner index
    @abstractmethod
    def get_chart(self, chart_id: str) -> Optional[Commitment]:
        pass

    @abstractmethod
    def insert_chart(self, chart: Commitment) -> None:
        pass

    @abstractmethod
    def set_chart_verified(self, chart_id: str) -> None:
        pass

    @abstractmethod
    def list_charts(self) -> List[Commitment]:
        pass

    @abstractmethod
    def max_created_at(self) -> int:
        """Latest created_at across all charts, 0 for an empty store."""
        pass

    @abstractmethod
    def append_owner_chart(self, owner: str, chart_id: str) -> None:
        pass

    @abstractmethod
    def list_owner_charts(self, owner: str) -> List[str]:
        pass

    @abstractmethod
    def list_indexed_owners(self) -> List[str]:
        pass

    # owner registrations
    @abstractmethod
    def get_registration(self, owner: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def insert_registration(self, owner: str, commitment: bytes) -> None:
        pass

    # predictions + ratings
    @abstractmethod
    def get_prediction(self, owner: str, day: int) -> Optional[PredictionEntry]:
        pass

    @abstractmethod
    def insert_prediction(self, entry: PredictionEntry) -> None:
        pass

    @abstractmethod
    def get_rating(self, owner: str, day: int) -> Optional[int]:
        pass

    @abstractmethod
    def set_rating(self, owner: str, day: int, value: int) -> None:
        pass

    @abstractmethod
    def list_ratings(self, owner: str) -> Dict[int, int]:
        pass

    @abstractmethod
    def get_user_stats(self, owner: str) -> UserStats:
        pass

    @abstractmethod
    def put_user_stats(self, owner: str, stats: UserStats) -> None:
        pass

    @abstractmethod
    def list_stat_owners(self) -> List[str]:
        pass

    # global counters
    @abstractmethod
    def get_counter(self, name: str) -> int:
        pass

    @abstractmethod
    def incr_counter(self, name: str, by: int = 1) -> int:
        pass

    @abstractmethod
    def count(self, collection: str) -> int:
        pass

    # append-only event log
    @abstractmethod
    def append_event(self, kind: str, payload: dict) -> int:
        pass

    @abstractmethod
    def load_events(self, kind: Optional[str] = None, since: int = 0) -> List[EventRecord]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    """
    sqlite:///abs/path.db, sqlite://relative.db, sqlite://:memory: or a bare path.
    """
    from .sqlite import SQLiteStorage

    uri = uri.strip()
    if uri.startswith("sqlite://"):
        raw_path = uri[len("sqlite://"):]
        if raw_path == ":memory:":
            return SQLiteStorage(":memory:")
        if not raw_path:
            raise ValueError(f"Missing database path in URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())

    if "://" in uri:
        raise ValueError(f"Unsupported storage URI: {uri}")
    if not uri:
        raise ValueError("Empty storage URI")
    return SQLiteStorage(Path(uri).resolve())


from .sqlite import SQLiteStorage

__all__ = [
    "StorageBackend",
    "create_storage",
    "SQLiteStorage",
    "COUNTER_CHARTS",
    "COUNTER_OWNERS",
    "COUNTER_PREDICTIONS",
]
