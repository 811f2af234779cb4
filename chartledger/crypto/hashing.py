# chartledger/crypto/hashing.py
from typing import Any

from eth_utils import keccak

from chartledger.core.canon import canonical_json


def keccak256(data: bytes) -> bytes:
    """Ethereum Keccak-256 (original padding, not NIST SHA3-256)."""
    return keccak(primitive=data)


def keccak_hex(data: bytes) -> str:
    """Lowercase hex digest without 0x prefix."""
    return keccak256(data).hex()


def canonical_hash(obj: Any) -> bytes:
    """Keccak-256 over the RFC 8785 canonical JSON of `obj`."""
    return keccak256(canonical_json(obj))
