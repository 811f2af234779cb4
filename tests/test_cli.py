# tests/test_cli.py
import json
from pathlib import Path
from typing import Generator

import pytest
from typer.testing import CliRunner

from chartledger.chain.ledger import ChartLedger
from chartledger.cli.main import app
from chartledger.core.clock import ManualClock
from chartledger.verify.verifier import compute_proof

runner = CliRunner()

ALICE = "0x" + "a1" * 20
COMMITMENT = "0x" + "c0" * 32
H1 = "0x" + "11" * 32
H2 = "0x" + "22" * 32
POSITIONS = ["100", "200", "300", "400", "500", "600", "700"]


@pytest.fixture
def temp_db(tmp_path: Path) -> Generator[Path, None, None]:
    """Temporary DB file + auto-cleanup."""
    db_path = tmp_path / "test-cli.db"
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def populated_db(temp_db: Path) -> Path:
    """DB with two charts and one rated prediction."""
    with ChartLedger(storage=str(temp_db), clock=ManualClock()) as lg:
        lg.register_chart("chart-001", H1, ALICE)
        lg.register_chart("chart-002", H2, ALICE, verified=True)
        lg.register_owner(ALICE, COMMITMENT)
        lg.store_prediction(ALICE, 20377, H1)
        lg.rate(ALICE, 20377, 4)
    return temp_db


def test_stats_no_db(tmp_path: Path):
    result = runner.invoke(app, ["stats", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "not found" in result.stdout.lower()
    assert "to get started" in result.stdout.lower()


def test_stats_with_data(populated_db: Path):
    result = runner.invoke(app, ["stats", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "Charts" in result.stdout
    assert "2" in result.stdout


def test_global_db_option(populated_db: Path):
    result = runner.invoke(app, ["--db", str(populated_db), "owner-charts", ALICE])
    assert result.exit_code == 0
    assert "chart-001" in result.stdout
    assert "chart-002" in result.stdout


def test_register_chart_and_duplicate(temp_db: Path):
    result = runner.invoke(app, ["register-chart", "chart-x", H1, ALICE, "--db", str(temp_db)])
    assert result.exit_code == 0
    assert "Registered chart 'chart-x'" in result.stdout

    again = runner.invoke(app, ["register-chart", "chart-x", H2, ALICE, "--db", str(temp_db)])
    assert again.exit_code == 1
    assert "AlreadyExists" in again.stdout


def test_register_chart_invalid_owner(temp_db: Path):
    result = runner.invoke(app, ["register-chart", "chart-x", H1, "0x" + "00" * 20, "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "InvalidOwner" in result.stdout


def test_register_chart_with_proof_file(temp_db: Path, tmp_path: Path):
    bundle_path = tmp_path / "proof.json"
    prove = runner.invoke(app, ["prove", "a" * 40, *POSITIONS, "--nonce", "c" * 20, "--output", str(bundle_path)])
    assert prove.exit_code == 0
    assert json.loads(bundle_path.read_text())["nonce"] == "c" * 20

    result = runner.invoke(
        app, ["register-chart", "chart-zk", H1, ALICE, "--proof", str(bundle_path), "--db", str(temp_db)]
    )
    assert result.exit_code == 0
    assert "Verified: True" in result.stdout


def test_chart_and_verify(populated_db: Path):
    shown = runner.invoke(app, ["chart", "chart-001", "--db", str(populated_db)])
    assert shown.exit_code == 0
    assert "data_hash" in shown.stdout

    ok = runner.invoke(app, ["verify-chart", "chart-001", H1, "--db", str(populated_db)])
    assert ok.exit_code == 0
    bad = runner.invoke(app, ["verify-chart", "chart-001", H2, "--db", str(populated_db)])
    assert bad.exit_code == 1

    missing = runner.invoke(app, ["chart", "nope", "--db", str(populated_db)])
    assert missing.exit_code == 1


def test_mark_verified_unknown(populated_db: Path):
    result = runner.invoke(app, ["mark-verified", "nope", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "NotFound" in result.stdout


def test_prediction_commands(populated_db: Path):
    stored = runner.invoke(app, ["store-prediction", ALICE, "2025-10-17", H2, "--db", str(populated_db)])
    assert stored.exit_code == 0

    rated = runner.invoke(app, ["rate", ALICE, "2025-10-17", "5", "--db", str(populated_db)])
    assert rated.exit_code == 0

    too_high = runner.invoke(app, ["rate", ALICE, "2025-10-17", "9", "--db", str(populated_db)])
    assert too_high.exit_code == 1
    assert "InvalidRating" in too_high.stdout

    stats = runner.invoke(app, ["user-stats", ALICE, "--db", str(populated_db)])
    assert stats.exit_code == 0
    assert "45" in stats.stdout


def test_store_prediction_unregistered(populated_db: Path):
    result = runner.invoke(app, ["store-prediction", "0x" + "b2" * 20, "20377", H1, "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "NotRegistered" in result.stdout


def test_events_export_jsonl(populated_db: Path, tmp_path: Path):
    output_file = tmp_path / "events.jsonl"
    result = runner.invoke(app, ["events", "--db", str(populated_db), "--output", str(output_file)])

    assert result.exit_code == 0
    assert "Exported 2 events" in result.stdout
    lines = output_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert [json.loads(line)["kind"] for line in lines] == ["ChartCreated", "ChartCreated"]


def test_audit_command(populated_db: Path):
    result = runner.invoke(app, ["audit", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "consistent" in result.stdout.lower()


def test_verify_proof_command():
    proof = compute_proof("a" * 40, "c" * 20, [int(p) for p in POSITIONS])
    ok = runner.invoke(app, ["verify-proof", "a" * 40, proof, "c" * 20, *POSITIONS])
    assert ok.exit_code == 0
    assert "valid" in ok.stdout.lower()

    bad = runner.invoke(app, ["verify-proof", "a" * 40, "b" * 64, "c" * 20, *POSITIONS])
    assert bad.exit_code == 1


def test_verify_proof_simple_command():
    ok = runner.invoke(app, ["verify-proof", "a" * 40, "b" * 40, "c" * 20, *POSITIONS, "--simple"])
    assert ok.exit_code == 0

    short = runner.invoke(app, ["verify-proof", "short", "b" * 40, "c" * 20, *POSITIONS, "--simple"])
    assert short.exit_code == 1


@pytest.mark.parametrize("day", ["²", "not-a-date"])
def test_bad_day_is_a_usage_error(populated_db: Path, day: str):
    result = runner.invoke(app, ["rate", ALICE, day, "3", "--db", str(populated_db)])
    assert result.exit_code == 2
    assert not isinstance(result.exception, ValueError)
