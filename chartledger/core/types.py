# chartledger/core/types.py
from dataclasses import dataclass, asdict, field
from typing import List, Literal

from chartledger.core.encoding import bytes32_hex


@dataclass(frozen=True)
class Commitment:
    """Immutable binding of a chart id to a data hash and its owner."""
    chart_id: str
    data_hash: bytes                # 32 bytes
    owner: str                      # checksummed address
    created_at: int                 # clock value at registration, never mutated
    verified: bool = False          # false → true only

    def to_dict(self) -> dict:
        d = asdict(self)
        d["data_hash"] = bytes32_hex(self.data_hash)
        return d

    def as_tuple(self) -> tuple:
        """(data_hash, owner, created_at, verified, chart_id), the on-chain getter order."""
        return (self.data_hash, self.owner, self.created_at, self.verified, self.chart_id)


@dataclass(frozen=True)
class PredictionEntry:
    owner: str
    day: int
    prediction_hash: bytes

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "day": self.day,
            "prediction_hash": bytes32_hex(self.prediction_hash),
        }


@dataclass(frozen=True)
class UserStats:
    prediction_count: int = 0
    rating_count: int = 0
    rating_sum: int = 0

    @property
    def average_x10(self) -> int:
        # average * 10, truncated
        if self.rating_count > 0:
            return (self.rating_sum * 10) // self.rating_count
        return 0

    def as_tuple(self) -> tuple:
        return (self.prediction_count, self.rating_count, self.average_x10)


@dataclass(frozen=True)
class GlobalStats:
    total_charts: int = 0
    total_owners: int = 0
    total_predictions: int = 0

    def as_tuple(self) -> tuple:
        """(total_owners, total_predictions), matching get_global_stats."""
        return (self.total_owners, self.total_predictions)


@dataclass(frozen=True)
class ProofBundle:
    """Everything a verifier needs to check a challenge-response proof."""
    commitment: str
    proof: str
    nonce: str
    positions: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


EventKind = Literal["ChartCreated", "ChartVerified"]


@dataclass(frozen=True)
class ChartCreated:
    chart_id: str
    data_hash: bytes
    owner: str
    created_at: int
    verified: bool

    kind: EventKind = "ChartCreated"

    def payload(self) -> dict:
        return {
            "chart_id": self.chart_id,
            "data_hash": bytes32_hex(self.data_hash),
            "owner": self.owner,
            "created_at": self.created_at,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class ChartVerified:
    chart_id: str
    data_hash: bytes

    kind: EventKind = "ChartVerified"

    def payload(self) -> dict:
        return {"chart_id": self.chart_id, "data_hash": bytes32_hex(self.data_hash)}


@dataclass(frozen=True)
class EventRecord:
    """An event as read back from the append-only log."""
    sequence: int
    kind: str
    payload: dict

    def to_dict(self) -> dict:
        return {"sequence": self.sequence, "kind": self.kind, "payload": self.payload}
