# chartledger/chain/ledger.py
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from chartledger.core.clock import Clock, MonotonicClock
from chartledger.core.encoding import AddressLike, HashLike
from chartledger.core.errors import ErrorKind, ValidationError
from chartledger.core.types import (
    Commitment,
    EventRecord,
    GlobalStats,
    PredictionEntry,
    ProofBundle,
    UserStats,
)
from chartledger.predictions.ledger import PredictionLedger
from chartledger.predictions.ratings import RatingAggregator
from chartledger.registry.commitments import CommitmentStore
from chartledger.storage import SQLiteStorage, StorageBackend, create_storage
from chartledger.verify.audit import AuditResult, LedgerAuditor
from chartledger.verify.verifier import ProofVerifier

logger = logging.getLogger(__name__)


@dataclass
class ChartLedger:
    """
    One ledger instance bound to one storage handle.

    Wires the commitment registry, prediction ledger, rating aggregator and
    proof verifier to a shared store. Every mutating call is a single
    storage transaction: it commits in full or raises with nothing written.
    Caller identity is passed explicitly as `caller`.
    """
    storage: Optional[Union[StorageBackend, str]] = None
    clock: Optional[Clock] = None
    legacy_zero_sentinel: Optional[bool] = None
    verifier: ProofVerifier = field(default_factory=ProofVerifier)

    def __post_init__(self):
        if isinstance(self.storage, str):
            stripped = self.storage.strip()
            # "" → private in-memory ledger
            self.storage = create_storage(stripped) if stripped else SQLiteStorage(":memory:")
        elif self.storage is None:
            self.storage = SQLiteStorage(":memory:")

        self.clock = MonotonicClock(self.clock)
        self.charts = CommitmentStore(self.storage, self.clock)
        self.predictions = PredictionLedger(self.storage)
        self.ratings = RatingAggregator(self.predictions, self.legacy_zero_sentinel)
        self.legacy_zero_sentinel = self.ratings.legacy_zero_sentinel

    # ── chart commitments

    def register_chart(
        self,
        chart_id: str,
        data_hash: HashLike,
        owner: AddressLike,
        verified: bool = False,
        proof: Optional[ProofBundle] = None,
    ) -> Commitment:
        """
        Register a chart. When a proof is supplied it must pass the
        challenge-response check; the chart is then recorded as verified.
        """
        if proof is not None:
            if not self.verifier.verify_bundle(proof):
                logger.warning("Rejected chart %s: proof verification failed", chart_id)
                raise ValidationError(ErrorKind.INVALID_PROOF, "proof could not be verified")
            verified = True
        return self.charts.register(chart_id, data_hash, owner, verified)

    def verify_chart(self, chart_id: str, data_hash: HashLike) -> bool:
        return self.charts.verify(chart_id, data_hash)

    def mark_verified(self, chart_id: str) -> Commitment:
        return self.charts.mark_verified(chart_id)

    def get_chart(self, chart_id: str) -> Optional[Commitment]:
        return self.charts.get(chart_id)

    def get_owner_charts(self, owner: AddressLike) -> List[str]:
        return self.charts.list_by_owner(owner)

    def total_charts(self) -> int:
        return self.charts.total_count()

    def is_verified(self, chart_id: str) -> bool:
        return self.charts.is_verified(chart_id)

    # ── predictions + ratings

    def register_owner(self, caller: AddressLike, commitment: HashLike) -> None:
        self.predictions.register_owner(caller, commitment)

    def store_prediction(self, caller: AddressLike, day: int, prediction_hash: HashLike) -> PredictionEntry:
        return self.predictions.store_prediction(caller, day, prediction_hash)

    def rate(self, caller: AddressLike, day: int, value: int) -> UserStats:
        return self.ratings.rate(caller, day, value)

    def get_prediction(self, owner: AddressLike, day: int) -> Optional[PredictionEntry]:
        return self.predictions.get_prediction(owner, day)

    def has_prediction(self, owner: AddressLike, day: int) -> bool:
        return self.predictions.has_prediction(owner, day)

    def get_rating(self, owner: AddressLike, day: int) -> int:
        return self.ratings.get_rating(owner, day)

    def get_commitment(self, owner: AddressLike) -> Optional[bytes]:
        return self.predictions.get_commitment(owner)

    def is_registered(self, owner: AddressLike) -> bool:
        return self.predictions.is_registered(owner)

    def get_user_stats(self, owner: AddressLike) -> UserStats:
        return self.ratings.get_user_stats(owner)

    def get_global_stats(self) -> GlobalStats:
        return self.ratings.get_global_stats()

    # ── proofs

    def verify_proof(self, commitment: str, proof: str, nonce: str, positions: Sequence[int]) -> bool:
        return self.verifier.verify(commitment, proof, nonce, positions)

    def verify_proof_simple(self, commitment: str, proof: str, nonce: str, positions: Sequence[int]) -> bool:
        return self.verifier.verify_simple(commitment, proof, nonce, positions)

    # ── log + maintenance

    def events(self, kind: Optional[str] = None, since: int = 0) -> List[EventRecord]:
        return self.storage.load_events(kind=kind, since=since)

    def audit(self) -> AuditResult:
        auditor = LedgerAuditor(strict_rating_counts=not self.legacy_zero_sentinel)
        return auditor.audit(self.storage)

    def close(self) -> None:
        """Release the storage handle. The ledger is unusable afterwards."""
        if self.storage:
            self.storage.close()
            logger.debug("Ledger storage closed")
            self.storage = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
