# chartledger/verify/verifier.py
"""
Challenge-response proofs over chart commitments.

Protocol (prover and verifier share commitment, nonce and positions):

    challenge = keccak256(commitment || le_u64(positions...))
    proof     = keccak256(commitment || nonce || hex(challenge))

This is a commitment-opening check. It shows the caller can reproduce the
hash chain; it says nothing about the astronomical data behind it.
"""

import hmac
import logging
import secrets
from typing import Optional, Sequence

from chartledger.core.canon import canonical_json
from chartledger.core.encoding import le_u64_concat
from chartledger.core.types import ProofBundle
from chartledger.crypto.hashing import keccak_hex

logger = logging.getLogger(__name__)

MIN_COMMITMENT_LEN = 32
MIN_PROOF_LEN = 32
MIN_NONCE_LEN = 16
MIN_POSITIONS = 7           # seven classical planets at least
MAX_POSITION = 36000        # degrees * 100


def compute_challenge(commitment: str, positions: Sequence[int]) -> str:
    """Lowercase hex challenge for a commitment and its position values."""
    return keccak_hex(commitment.encode("utf-8") + le_u64_concat(positions))


def compute_proof(commitment: str, nonce: str, positions: Sequence[int]) -> str:
    challenge_hex = compute_challenge(commitment, positions)
    return keccak_hex(
        commitment.encode("utf-8") + nonce.encode("utf-8") + challenge_hex.encode("ascii")
    )


class ProofVerifier:
    """Stateless verifier. Holds no keys; every check is recomputation."""

    def verify(self, commitment: str, proof: str, nonce: str, positions: Sequence[int]) -> bool:
        if not commitment or not proof or not nonce:
            return False
        if not positions:
            return False

        try:
            expected = compute_proof(commitment, nonce, positions)
        except ValueError as e:
            logger.debug("Rejecting proof with unencodable positions: %s", e)
            return False

        # constant-time, case-sensitive
        return hmac.compare_digest(expected.encode("utf-8"), proof.encode("utf-8"))

    def verify_simple(self, commitment: str, proof: str, nonce: str, positions: Sequence[int]) -> bool:
        """
        Structural sanity filter only: lengths and position ranges.
        Offers no cryptographic guarantee; never use it in place of verify().
        """
        if len(commitment.encode("utf-8")) < MIN_COMMITMENT_LEN:
            return False
        if len(proof.encode("utf-8")) < MIN_PROOF_LEN:
            return False
        if len(nonce.encode("utf-8")) < MIN_NONCE_LEN:
            return False
        if len(positions) < MIN_POSITIONS:
            return False
        return all(
            isinstance(p, int) and not isinstance(p, bool) and 0 <= p <= MAX_POSITION for p in positions
        )

    def verify_bundle(self, bundle: ProofBundle) -> bool:
        return self.verify(bundle.commitment, bundle.proof, bundle.nonce, bundle.positions)


def generate_nonce() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def create_commitment(inputs: Sequence[str], nonce: str) -> str:
    """Hiding commitment over the secret inputs: keccak(canonical_json([*inputs, nonce]))."""
    return keccak_hex(canonical_json([*inputs, nonce]))


def verify_commitment(commitment: str, inputs: Sequence[str], nonce: str) -> bool:
    """Client-side opening check; requires the secret inputs."""
    return hmac.compare_digest(create_commitment(inputs, nonce), commitment)


def generate_proof(
    commitment: str,
    positions: Sequence[int],
    nonce: Optional[str] = None,
) -> ProofBundle:
    """Prover side of the protocol. A fresh nonce is drawn when none is given."""
    nonce = nonce or generate_nonce()
    proof = compute_proof(commitment, nonce, positions)
    return ProofBundle(commitment=commitment, proof=proof, nonce=nonce, positions=list(positions))
