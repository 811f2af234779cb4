# chartledger/core/canon.py
import json
from typing import Any

import jcs


def canonical_json(obj: Any) -> bytes:
    """
    Deterministic UTF-8 bytes per RFC 8785 (JSON Canonicalization Scheme).
    Used both for hashing chart data and for persisting event payloads.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")


def load_json(text: str) -> Any:
    return json.loads(text)
