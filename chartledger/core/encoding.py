# chartledger/core/encoding.py
from typing import Iterable, Union

from eth_utils import (
    decode_hex,
    encode_hex,
    is_address,
    is_canonical_address,
    is_hex,
    to_checksum_address,
)

ZERO_HASH = b"\x00" * 32
ZERO_OWNER = "0x0000000000000000000000000000000000000000"

U64_MAX = 2**64 - 1

HashLike = Union[bytes, bytearray, str]
AddressLike = Union[bytes, bytearray, str]


def to_bytes32(value: HashLike) -> bytes:
    """Accept raw bytes or a 0x-prefixed / bare hex string; return exactly 32 bytes."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s or not is_hex(s):
            raise ValueError(f"Not a hex string: {value!r}")
        raw = decode_hex(s)
    else:
        raise ValueError(f"Unsupported hash type: {type(value).__name__}")

    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


def bytes32_hex(value: bytes) -> str:
    return encode_hex(value)


def is_zero_hash(value: bytes) -> bool:
    return value == ZERO_HASH


def normalize_owner(value: AddressLike) -> str:
    """Return the checksummed form of a 20-byte address (str or raw bytes)."""
    if isinstance(value, (bytes, bytearray)):
        if not is_canonical_address(bytes(value)):
            raise ValueError(f"Expected 20 address bytes, got {len(value)}")
        return to_checksum_address(bytes(value))
    if isinstance(value, str) and is_address(value.strip()):
        return to_checksum_address(value.strip())
    raise ValueError(f"Not an address: {value!r}")


def is_zero_owner(owner: str) -> bool:
    return owner == ZERO_OWNER


def le_u64_concat(values: Iterable[int]) -> bytes:
    """Concatenate each value as 8 little-endian bytes."""
    out = bytearray()
    for v in values:
        if isinstance(v, bool) or not isinstance(v, int) or v < 0 or v > U64_MAX:
            raise ValueError(f"Position out of u64 range: {v!r}")
        out += v.to_bytes(8, "little")
    return bytes(out)
