# tests/test_proof.py
import pytest

from chartledger.crypto.hashing import keccak_hex
from chartledger.core.encoding import le_u64_concat
from chartledger.verify.verifier import (
    ProofVerifier,
    compute_challenge,
    create_commitment,
    generate_nonce,
    generate_proof,
    verify_commitment,
)

COMMITMENT = "a" * 40
NONCE = "c" * 20
POSITIONS = [100, 200, 300, 400, 500, 600, 700]


def hand_rolled_proof(commitment: str, nonce: str, positions) -> str:
    challenge = keccak_hex(commitment.encode() + le_u64_concat(positions))
    return keccak_hex(commitment.encode() + nonce.encode() + challenge.encode())


@pytest.fixture
def verifier() -> ProofVerifier:
    return ProofVerifier()


@pytest.fixture
def valid_proof() -> str:
    return hand_rolled_proof(COMMITMENT, NONCE, POSITIONS)


def test_valid_proof_accepted(verifier, valid_proof):
    assert verifier.verify(COMMITMENT, valid_proof, NONCE, POSITIONS) is True


def test_generate_proof_matches_hash_chain(valid_proof):
    bundle = generate_proof(COMMITMENT, POSITIONS, nonce=NONCE)
    assert bundle.proof == valid_proof
    assert bundle.positions == POSITIONS


def test_challenge_is_lowercase_hex():
    challenge = compute_challenge(COMMITMENT, POSITIONS)
    assert len(challenge) == 64
    assert challenge == challenge.lower()


def test_proof_comparison_is_case_sensitive(verifier, valid_proof):
    assert not verifier.verify(COMMITMENT, valid_proof.upper(), NONCE, POSITIONS)


def test_flipping_commitment_byte_fails(verifier, valid_proof):
    for i in range(len(COMMITMENT)):
        tampered = COMMITMENT[:i] + "b" + COMMITMENT[i + 1:]
        assert not verifier.verify(tampered, valid_proof, NONCE, POSITIONS)


def test_flipping_nonce_byte_fails(verifier, valid_proof):
    for i in range(len(NONCE)):
        tampered = NONCE[:i] + "d" + NONCE[i + 1:]
        assert not verifier.verify(COMMITMENT, valid_proof, tampered, POSITIONS)


def test_changing_any_position_fails(verifier, valid_proof):
    for i in range(len(POSITIONS)):
        tampered = list(POSITIONS)
        tampered[i] += 1
        assert not verifier.verify(COMMITMENT, valid_proof, NONCE, tampered)


def test_tampered_proof_fails(verifier, valid_proof):
    tampered = ("0" if valid_proof[0] != "0" else "1") + valid_proof[1:]
    assert not verifier.verify(COMMITMENT, tampered, NONCE, POSITIONS)


@pytest.mark.parametrize("commitment, proof, nonce, positions", [
    ("", "x" * 64, NONCE, POSITIONS),
    (COMMITMENT, "", NONCE, POSITIONS),
    (COMMITMENT, "x" * 64, "", POSITIONS),
    (COMMITMENT, "x" * 64, NONCE, []),
])
def test_empty_inputs_rejected(verifier, commitment, proof, nonce, positions):
    assert verifier.verify(commitment, proof, nonce, positions) is False


def test_unencodable_positions_rejected(verifier, valid_proof):
    assert verifier.verify(COMMITMENT, valid_proof, NONCE, [-1, 2, 3]) is False
    assert verifier.verify(COMMITMENT, valid_proof, NONCE, [2**64]) is False


def test_simple_accepts_well_formed(verifier):
    assert verifier.verify_simple(COMMITMENT, "b" * 40, NONCE, POSITIONS) is True


def test_simple_rejects_short_commitment(verifier):
    assert verifier.verify_simple("short", "b" * 40, NONCE, POSITIONS) is False


def test_simple_rejects_too_few_positions(verifier):
    assert verifier.verify_simple(COMMITMENT, "b" * 40, NONCE, [100, 200, 300]) is False


def test_simple_rejects_out_of_range_position(verifier):
    assert verifier.verify_simple(COMMITMENT, "b" * 40, NONCE, POSITIONS[:-1] + [99999]) is False


def test_simple_boundaries(verifier):
    assert verifier.verify_simple("a" * 32, "b" * 32, "c" * 16, [36000] * 7)
    assert not verifier.verify_simple("a" * 32, "b" * 31, "c" * 16, [0] * 7)
    assert not verifier.verify_simple("a" * 32, "b" * 32, "c" * 15, [0] * 7)
    assert not verifier.verify_simple("a" * 32, "b" * 32, "c" * 16, [36001] * 7)


@pytest.mark.parametrize("bad", ["x", 1.5, True, None])
def test_simple_rejects_non_integer_position(verifier, bad):
    positions = [100] * 6 + [bad]
    assert verifier.verify_simple(COMMITMENT, "b" * 40, NONCE, positions) is False
    assert verifier.verify(COMMITMENT, "b" * 40, NONCE, positions) is False


def test_simple_does_not_hash(verifier):
    # structurally fine, cryptographically meaningless
    assert verifier.verify_simple(COMMITMENT, "b" * 40, NONCE, POSITIONS)
    assert not verifier.verify(COMMITMENT, "b" * 40, NONCE, POSITIONS)


def test_commitment_opening():
    inputs = ["1990-01-15", "14:30", "America/New_York", "40.7128", "-74.006"]
    nonce = generate_nonce()
    commitment = create_commitment(inputs, nonce)

    assert len(nonce) == 64
    assert verify_commitment(commitment, inputs, nonce)
    assert not verify_commitment(commitment, inputs[:-1] + ["-74.007"], nonce)
    assert not verify_commitment(commitment, inputs, generate_nonce())


def test_generated_nonce_is_random():
    bundle_a = generate_proof(COMMITMENT, POSITIONS)
    bundle_b = generate_proof(COMMITMENT, POSITIONS)
    assert bundle_a.nonce != bundle_b.nonce
    assert ProofVerifier().verify_bundle(bundle_a)
