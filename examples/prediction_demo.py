# examples/prediction_demo.py
# Run with: python examples/prediction_demo.py
#
# Walks one user through the whole ledger: prove a chart, register it,
# register birth data, store and rate a daily prediction, then audit.

from chartledger import ChartLedger, LedgerError, generate_proof
from chartledger.integration.charts import (
    birth_inputs,
    chart_hash,
    chart_positions,
    day_key,
    prediction_hash,
)
from chartledger.verify.verifier import create_commitment, generate_nonce

USER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

PLANETS = {
    "sun": 24500, "moon": 8765, "mercury": 18234, "venus": 21098,
    "mars": 9876, "jupiter": 12345, "saturn": 30000,
}


if __name__ == "__main__":
    ledger = ChartLedger(storage="sqlite://:memory:")

    # Client side: commit to birth data, then prove the chart positions
    inputs = birth_inputs("1990-01-15", "14:30", "America/New_York", 40.7128, -74.0060)
    nonce = generate_nonce()
    commitment = create_commitment(inputs, nonce)
    bundle = generate_proof(commitment, chart_positions(PLANETS, 15000, 20000), nonce=nonce)

    print("\n[Register chart]")
    params = {"planets": PLANETS, "asc": 15000, "mc": 20000}
    chart = ledger.register_chart("chart-demo-001", chart_hash(params, bundle.proof), USER, proof=bundle)
    print(f"  {chart.chart_id} verified={chart.verified} created_at={chart.created_at}")

    print("\n[Duplicate id]")
    try:
        ledger.register_chart("chart-demo-001", chart_hash(params, bundle.proof), USER)
    except LedgerError as e:
        print(f"  Rejected: {e}")

    print("\n[Daily prediction]")
    today = day_key("2026-10-16")
    ledger.register_owner(USER, "0x" + commitment)
    ledger.store_prediction(USER, today, prediction_hash("A quiet day for planning.", 7, "indigo", "calm"))
    ledger.rate(USER, today, 4)
    ledger.rate(USER, today, 5)
    predictions, ratings, avg_x10 = ledger.get_user_stats(USER).as_tuple()
    print(f"  predictions={predictions} ratings={ratings} average={avg_x10 / 10:.1f}")

    print("\n[Audit]")
    print(f"  {ledger.audit()}")

    print("\n[Events]")
    for event in ledger.events():
        print(f"  #{event.sequence} {event.kind} {event.payload['chart_id']}")

    ledger.close()
