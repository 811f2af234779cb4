# chartledger/integration/charts.py
"""
Glue between natal-chart data and the ledger: how chart parameters,
birth data and daily predictions are turned into hashes, prover inputs
and day keys.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Union

from chartledger.crypto.hashing import canonical_hash


def chart_hash(params: dict, zk_proof: str) -> bytes:
    """
    Data hash registered for a chart: covers the computed positions and
    the proof that accompanied them.
    """
    return canonical_hash({
        "planets": params.get("planets", {}),
        "asc": params.get("asc"),
        "mc": params.get("mc"),
        "zkProof": zk_proof,
    })


def prediction_hash(text: str, lucky_number: int, lucky_color: str, mood: str) -> bytes:
    """Hash of a daily prediction text plus its lucky elements."""
    return canonical_hash({
        "prediction": text,
        "luckyNumber": lucky_number,
        "luckyColor": lucky_color,
        "mood": mood,
    })


def day_key(value: Union[date, datetime, str]) -> int:
    """Unix timestamp of UTC midnight for the given day (ISO strings accepted)."""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    midnight = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return int(midnight.timestamp())


def birth_inputs(dob: str, tob: str, tz: str, lat: float, lon: float) -> List[str]:
    """Secret prover inputs, in commitment order."""
    return [dob, tob, tz, str(lat), str(lon)]


def chart_positions(planets: Dict[str, float], asc: float, mc: float) -> List[int]:
    """
    Position values (degrees * 100) for the challenge: planets in the
    order given, then ascendant, then midheaven.
    """
    return [int(round(v)) for v in planets.values()] + [int(round(asc)), int(round(mc))]
