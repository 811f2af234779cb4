# chartledger/__init__.py
"""
chartledger: an append-only ledger of natal-chart commitments, daily
predictions and their ratings, with a keccak challenge-response check that
lets a client prove it can reproduce a chart's hash chain without revealing
the birth data behind it.
"""

__version__ = "0.1.0-dev"

from chartledger.chain.ledger import ChartLedger
from chartledger.core.errors import (
    ConflictError,
    ErrorKind,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from chartledger.core.types import Commitment, PredictionEntry, ProofBundle, UserStats, GlobalStats
from chartledger.verify.verifier import ProofVerifier, generate_proof

__all__ = [
    "ChartLedger",
    "Commitment",
    "ConflictError",
    "ErrorKind",
    "GlobalStats",
    "LedgerError",
    "NotFoundError",
    "PredictionEntry",
    "ProofBundle",
    "ProofVerifier",
    "UserStats",
    "ValidationError",
    "generate_proof",
]
