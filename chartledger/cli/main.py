# chartledger/cli/main.py
"""
CLI for registering, inspecting and auditing chart commitments,
predictions and ratings, and for producing / checking proofs.
"""

import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from chartledger.chain.ledger import ChartLedger
from chartledger.core.errors import LedgerError
from chartledger.core.types import ProofBundle
from chartledger.integration.charts import day_key
from chartledger.storage import SQLiteStorage
from chartledger.verify.verifier import ProofVerifier, generate_proof

app = typer.Typer(
    name="chartledger",
    help="Register, inspect and audit chart commitments, predictions and ratings",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

_state = {"db": None}


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag (command, then global)
    2. CHARTLEDGER_DB_PATH environment variable
    3. Default: ~/.chartledger/chartledger.db
    """
    db_flag = db_flag or _state["db"]
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("CHARTLEDGER_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".chartledger" / "chartledger.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def open_ledger(db: Optional[Path], must_exist: bool = False) -> ChartLedger:
    db_path = get_db_path(db)

    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Register a chart or owner first (creates the DB)")
        console.print("  • Set env var: export CHARTLEDGER_DB_PATH=/path/to/ledger.db")
        console.print("  • Or use --db: chartledger stats --db /custom/path.db")
        raise typer.Exit(1)

    try:
        return ChartLedger(storage=SQLiteStorage(db_path))
    except sqlite3.Error as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


def parse_day(value: str) -> int:
    """Accept a raw integer day key or an ISO date (converted to UTC midnight)."""
    if value.isdecimal():
        return int(value)
    try:
        return day_key(value)
    except ValueError:
        raise typer.BadParameter(f"not a day key or ISO date: {value}")


def fail(err: LedgerError) -> None:
    console.print(f"[red]✗ {err.kind.value}: {escape(err.message)}[/]")
    raise typer.Exit(1)


@app.callback()
def main(
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides CHARTLEDGER_DB_PATH env var)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log ledger operations"),
):
    """Manage chart commitments, predictions and ratings."""
    _state["db"] = db
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ── chart commitments


@app.command("register-chart")
def register_chart(
    chart_id: str = typer.Argument(..., help="Unique chart identifier"),
    data_hash: str = typer.Argument(..., help="32-byte chart hash (hex)"),
    owner: str = typer.Argument(..., help="Owner address"),
    verified: bool = typer.Option(False, "--verified", help="Record as already verified"),
    proof_file: Optional[Path] = typer.Option(
        None, "--proof", help="JSON proof bundle to check before registering"
    ),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Register an immutable chart commitment."""
    proof = None
    if proof_file:
        try:
            proof = ProofBundle(**json.loads(proof_file.read_text(encoding="utf-8")))
        except (OSError, ValueError, TypeError) as e:
            console.print(f"[red]Could not read proof bundle: {str(e)}[/]")
            raise typer.Exit(1)

    ledger = open_ledger(db)
    try:
        chart = ledger.register_chart(chart_id, data_hash, owner, verified=verified, proof=proof)
    except LedgerError as e:
        fail(e)
    finally:
        ledger.close()

    console.print(f"[green]✓ Registered chart '{chart.chart_id}'[/]")
    console.print(f"  Owner: {chart.owner}")
    console.print(f"  Verified: {chart.verified}")
    console.print(f"  Created: {chart.created_at}")


@app.command("mark-verified")
def mark_verified(
    chart_id: str = typer.Argument(..., help="Chart identifier"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Flag a registered chart as verified."""
    ledger = open_ledger(db, must_exist=True)
    try:
        ledger.mark_verified(chart_id)
    except LedgerError as e:
        fail(e)
    finally:
        ledger.close()
    console.print(f"[green]✓ Chart '{chart_id}' marked verified[/]")


@app.command("verify-chart")
def verify_chart(
    chart_id: str = typer.Argument(..., help="Chart identifier"),
    data_hash: str = typer.Argument(..., help="Hash to compare against"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Check a hash against the stored commitment."""
    ledger = open_ledger(db, must_exist=True)
    try:
        matches = ledger.verify_chart(chart_id, data_hash)
    finally:
        ledger.close()

    if matches:
        console.print(f"[green]✓ Hash matches chart '{chart_id}'[/]")
    else:
        console.print(f"[red]✗ Hash does not match chart '{chart_id}'[/]")
        raise typer.Exit(1)


@app.command()
def chart(
    chart_id: str = typer.Argument(..., help="Chart identifier"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show a chart commitment."""
    ledger = open_ledger(db, must_exist=True)
    try:
        record = ledger.get_chart(chart_id)
    finally:
        ledger.close()

    if record is None:
        console.print(f"[yellow]No chart found with id '{chart_id}'[/]")
        raise typer.Exit(1)

    table = Table(title=f"Chart {chart_id}")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in record.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command("owner-charts")
def owner_charts(
    owner: str = typer.Argument(..., help="Owner address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List an owner's chart ids in registration order."""
    ledger = open_ledger(db, must_exist=True)
    try:
        ids = ledger.get_owner_charts(owner)
    finally:
        ledger.close()

    if not ids:
        console.print(f"[yellow]No charts found for {owner}[/]")
        return
    for i, chart_id in enumerate(ids):
        console.print(f"{i:4d} | {chart_id}")


# ── predictions + ratings


@app.command("register-owner")
def register_owner(
    caller: str = typer.Argument(..., help="Caller address"),
    commitment: str = typer.Argument(..., help="32-byte birth-data commitment (hex)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """One-time registration of an owner's birth-data commitment."""
    ledger = open_ledger(db)
    try:
        ledger.register_owner(caller, commitment)
    except LedgerError as e:
        fail(e)
    finally:
        ledger.close()
    console.print(f"[green]✓ Registered {caller}[/]")


@app.command("store-prediction")
def store_prediction(
    caller: str = typer.Argument(..., help="Caller address"),
    day: str = typer.Argument(..., help="Day key or ISO date (YYYY-MM-DD)"),
    prediction_hash: str = typer.Argument(..., help="32-byte prediction hash (hex)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Store the caller's prediction for a day."""
    key = parse_day(day)
    ledger = open_ledger(db, must_exist=True)
    try:
        ledger.store_prediction(caller, key, prediction_hash)
    except LedgerError as e:
        fail(e)
    finally:
        ledger.close()
    console.print(f"[green]✓ Stored prediction for day {key}[/]")


@app.command()
def rate(
    caller: str = typer.Argument(..., help="Caller address"),
    day: str = typer.Argument(..., help="Day key or ISO date (YYYY-MM-DD)"),
    value: int = typer.Argument(..., help="Rating 0-5"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Rate (or re-rate) the caller's prediction for a day."""
    key = parse_day(day)
    ledger = open_ledger(db, must_exist=True)
    try:
        stats = ledger.rate(caller, key, value)
    except LedgerError as e:
        fail(e)
    finally:
        ledger.close()
    console.print(f"[green]✓ Rated day {key}: {value}[/]  (ratings: {stats.rating_count}, avg×10: {stats.average_x10})")


@app.command("user-stats")
def user_stats(
    owner: str = typer.Argument(..., help="Owner address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show an owner's prediction and rating statistics."""
    ledger = open_ledger(db, must_exist=True)
    try:
        stats = ledger.get_user_stats(owner)
        registered = ledger.is_registered(owner)
    finally:
        ledger.close()

    table = Table(title=f"Stats for {owner}")
    table.add_column("Registered")
    table.add_column("Predictions")
    table.add_column("Ratings")
    table.add_column("Average ×10")
    table.add_row(str(registered), str(stats.prediction_count), str(stats.rating_count), str(stats.average_x10))
    console.print(table)


@app.command()
def stats(
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show global ledger totals."""
    ledger = open_ledger(db, must_exist=True)
    try:
        totals = ledger.get_global_stats()
    finally:
        ledger.close()

    table = Table(title="Ledger Totals")
    table.add_column("Charts")
    table.add_column("Owners")
    table.add_column("Predictions")
    table.add_row(str(totals.total_charts), str(totals.total_owners), str(totals.total_predictions))
    console.print(table)


# ── event log + audit


@app.command()
def events(
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="ChartCreated or ChartVerified"),
    since: int = typer.Option(0, "--since", help="Only events after this sequence number"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSONL instead of a table"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List or export the append-only event log."""
    ledger = open_ledger(db, must_exist=True)
    try:
        records = ledger.events(kind=kind, since=since)
    finally:
        ledger.close()

    if not records:
        console.print("[yellow]No events recorded.[/]")
        return

    if output:
        with open(output, "w", encoding="utf-8") as f:
            for record in records:
                json.dump(record.to_dict(), f, separators=(",", ":"))
                f.write("\n")
        console.print(f"[green]Exported {len(records)} events to {output}[/]")
        return

    table = Table(title="Events")
    table.add_column("Seq")
    table.add_column("Kind")
    table.add_column("Chart")
    table.add_column("Hash")
    for record in records:
        table.add_row(
            str(record.sequence),
            record.kind,
            record.payload.get("chart_id", ""),
            record.payload.get("data_hash", "")[:18] + "…",
        )
    console.print(table)


@app.command()
def audit(
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Re-derive indexes, counters and aggregates and report drift."""
    ledger = open_ledger(db, must_exist=True)
    try:
        result = ledger.audit()
    finally:
        ledger.close()

    if result.is_valid:
        console.print("[green]✓ Ledger is consistent[/]")
        return
    console.print("[red]✗ Ledger audit failed[/]")
    for failure in result.failures:
        console.print(f"  • {escape('[' + failure.subject + ']')} {failure.category}: {escape(failure.message)}")
    raise typer.Exit(1)


# ── proofs


@app.command()
def prove(
    commitment: str = typer.Argument(..., help="Commitment string"),
    positions: List[int] = typer.Argument(..., help="Position values (degrees × 100)"),
    nonce: Optional[str] = typer.Option(None, "--nonce", help="Nonce (random when omitted)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the proof bundle here"),
):
    """Produce a challenge-response proof bundle."""
    try:
        bundle = generate_proof(commitment, positions, nonce=nonce)
    except ValueError as e:
        console.print(f"[red]Cannot build proof: {str(e)}[/]")
        raise typer.Exit(1)

    text = json.dumps(bundle.to_dict(), separators=(",", ":"))
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Proof bundle written to {output}[/]")
    else:
        console.print_json(text)


@app.command("verify-proof")
def verify_proof(
    commitment: str = typer.Argument(...),
    proof: str = typer.Argument(...),
    nonce: str = typer.Argument(...),
    positions: List[int] = typer.Argument(..., help="Position values (degrees × 100)"),
    simple: bool = typer.Option(False, "--simple", help="Structural checks only (no hashing)"),
):
    """Check a proof against its commitment, nonce and positions."""
    verifier = ProofVerifier()
    check = verifier.verify_simple if simple else verifier.verify
    if check(commitment, proof, nonce, positions):
        console.print(f"[green]✓ Proof {'well-formed' if simple else 'valid'}[/]")
    else:
        console.print(f"[red]✗ Proof {'malformed' if simple else 'invalid'}[/]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
