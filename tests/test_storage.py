# tests/test_storage.py
import os
import sqlite3
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from chartledger.core.encoding import normalize_owner
from chartledger.core.types import Commitment, PredictionEntry, UserStats
from chartledger.storage import (
    COUNTER_CHARTS,
    SQLiteStorage,
    create_storage,
)

OWNER = normalize_owner("0x" + "a1" * 20)


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def storage(temp_db_path: Path) -> SQLiteStorage:
    s = SQLiteStorage(db_path=temp_db_path)
    yield s
    s.close()


def make_chart(chart_id: str = "chart-1") -> Commitment:
    return Commitment(chart_id=chart_id, data_hash=b"\x11" * 32, owner=OWNER, created_at=1_700_000_000)


def test_create_storage_routing(temp_db_path: Path):
    storage = create_storage(f"sqlite://{temp_db_path}")
    assert isinstance(storage, SQLiteStorage)
    assert str(storage.db_path) == str(temp_db_path.resolve())
    storage.close()

    plain = create_storage(str(temp_db_path))
    assert plain.db_path == temp_db_path.resolve()
    plain.close()

    memory = create_storage("sqlite://:memory:")
    assert memory.in_memory
    memory.close()


def test_create_storage_rejects_unknown_scheme():
    with pytest.raises(ValueError, match="Unsupported"):
        create_storage("postgres://localhost/ledger")


def test_sqlite_init_default_and_env(monkeypatch):
    with TemporaryDirectory() as tmpdir:
        monkeypatch.chdir(tmpdir)
        monkeypatch.delenv("CHARTLEDGER_DB_PATH", raising=False)
        default_storage = SQLiteStorage()
        assert default_storage.db_path.name == "chartledger.db"
        default_storage.close()

        env_db = Path(tmpdir) / "env" / "env-test.db"
        monkeypatch.setenv("CHARTLEDGER_DB_PATH", str(env_db))
        env_storage = SQLiteStorage()
        assert env_storage.db_path == env_db.resolve()
        env_storage.close()


def test_schema_creation(storage: SQLiteStorage):
    tables = {
        row[0] for row in storage.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    assert {"charts", "owner_charts", "registrations", "predictions",
            "ratings", "user_stats", "counters", "events"} <= tables
    assert storage.get_counter(COUNTER_CHARTS) == 0


def test_mutation_requires_transaction(storage: SQLiteStorage):
    with pytest.raises(RuntimeError, match="transaction"):
        storage.insert_chart(make_chart())


def test_insert_and_get_chart(storage: SQLiteStorage):
    with storage.transaction():
        storage.insert_chart(make_chart())
        storage.append_owner_chart(OWNER, "chart-1")

    loaded = storage.get_chart("chart-1")
    assert loaded == make_chart()
    assert storage.list_owner_charts(OWNER) == ["chart-1"]
    assert storage.get_chart("missing") is None


def test_owner_index_preserves_order(storage: SQLiteStorage):
    with storage.transaction():
        for chart_id in ["c", "a", "b"]:
            storage.append_owner_chart(OWNER, chart_id)
    assert storage.list_owner_charts(OWNER) == ["c", "a", "b"]


def test_transaction_rolls_back_everything(storage: SQLiteStorage):
    with pytest.raises(ZeroDivisionError):
        with storage.transaction():
            storage.insert_chart(make_chart())
            storage.incr_counter(COUNTER_CHARTS)
            storage.append_event("ChartCreated", {"chart_id": "chart-1"})
            1 / 0

    assert storage.get_chart("chart-1") is None
    assert storage.get_counter(COUNTER_CHARTS) == 0
    assert storage.load_events() == []


def test_nested_failure_rolls_back_inner_only(storage: SQLiteStorage):
    with storage.transaction():
        storage.insert_chart(make_chart("outer"))
        with pytest.raises(KeyError):
            with storage.transaction():
                storage.insert_chart(make_chart("inner"))
                raise KeyError("boom")

    assert storage.get_chart("outer") is not None
    assert storage.get_chart("inner") is None


def test_rating_upsert_and_stats(storage: SQLiteStorage):
    with storage.transaction():
        storage.insert_prediction(PredictionEntry(owner=OWNER, day=19000, prediction_hash=b"\x22" * 32))
        storage.set_rating(OWNER, 19000, 2)
        storage.set_rating(OWNER, 19000, 4)
        storage.put_user_stats(OWNER, UserStats(prediction_count=1, rating_count=1, rating_sum=4))

    assert storage.get_rating(OWNER, 19000) == 4
    assert storage.get_rating(OWNER, 19001) is None
    assert storage.list_ratings(OWNER) == {19000: 4}
    assert storage.get_user_stats(OWNER) == UserStats(1, 1, 4)
    assert storage.get_user_stats("0x" + "00" * 20) == UserStats()


def test_events_are_ordered_and_filterable(storage: SQLiteStorage):
    with storage.transaction():
        first = storage.append_event("ChartCreated", {"chart_id": "a"})
        storage.append_event("ChartVerified", {"chart_id": "a"})
        storage.append_event("ChartCreated", {"chart_id": "b"})

    events = storage.load_events()
    assert [e.kind for e in events] == ["ChartCreated", "ChartVerified", "ChartCreated"]
    assert [e.payload["chart_id"] for e in storage.load_events(kind="ChartCreated")] == ["a", "b"]
    assert len(storage.load_events(since=first)) == 2


def test_unknown_counter_and_collection(storage: SQLiteStorage):
    with pytest.raises(KeyError):
        storage.get_counter("nope")
    with pytest.raises(ValueError):
        storage.count("sqlite_master")


def test_data_survives_reopen(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        with storage.transaction():
            storage.insert_chart(make_chart())
            storage.incr_counter(COUNTER_CHARTS)

    with SQLiteStorage(temp_db_path) as reopened:
        assert reopened.get_chart("chart-1") is not None
        assert reopened.get_counter(COUNTER_CHARTS) == 1


def test_duplicate_primary_key_surfaces(storage: SQLiteStorage):
    with storage.transaction():
        storage.insert_chart(make_chart())
    with pytest.raises(sqlite3.IntegrityError):
        with storage.transaction():
            storage.insert_chart(make_chart())


def test_close_releases_resources(temp_db_path: Path):
    storage = SQLiteStorage(temp_db_path)
    assert storage._conn is not None
    storage.close()

    with pytest.raises(RuntimeError, match="closed"):
        storage.get_chart("chart-1")


def test_context_manager(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        assert storage._conn is not None
    with pytest.raises(RuntimeError, match="closed"):
        storage.load_events()
