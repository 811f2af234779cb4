# chartledger/storage/sqlite.py
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from chartledger.core.canon import canonical_json_str, load_json
from chartledger.core.encoding import bytes32_hex, to_bytes32
from chartledger.core.types import Commitment, EventRecord, PredictionEntry, UserStats
from . import COUNTERS, StorageBackend

logger = logging.getLogger(__name__)

_COUNTABLE = {
    "charts": "charts",
    "owner_charts": "owner_charts",
    "registrations": "registrations",
    "predictions": "predictions",
    "ratings": "ratings",
    "events": "events",
}


class SQLiteStorage(StorageBackend):
    """SQLite host storage: one table per keyed collection, plus counters and events."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("CHARTLEDGER_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "chartledger.db"

        if str(db_path) == ":memory:":
            self.db_path = Path(":memory:")
            self.in_memory = True
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = self.db_path.resolve()
            self.in_memory = False

        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0
        self._connect()

    def _connect(self):
        target = ":memory:" if self.in_memory else str(self.db_path)
        # autocommit; transaction() issues BEGIN/COMMIT itself
        self._conn = sqlite3.connect(target, isolation_level=None)
        if not self.in_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()
        logger.debug("Opened ledger storage at %s", target)

    def _create_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS charts (
                chart_id    TEXT    PRIMARY KEY,
                data_hash   TEXT    NOT NULL,
                owner       TEXT    NOT NULL,
                created_at  INTEGER NOT NULL,
                verified    INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS owner_charts (
                owner       TEXT    NOT NULL,
                position    INTEGER NOT NULL,
                chart_id    TEXT    NOT NULL,
                PRIMARY KEY (owner, position)
            );
            CREATE TABLE IF NOT EXISTS registrations (
                owner       TEXT    PRIMARY KEY,
                commitment  TEXT    NOT NULL
            );
            CREATE TABLE IF NOT EXISTS predictions (
                owner           TEXT    NOT NULL,
                day             INTEGER NOT NULL,
                prediction_hash TEXT    NOT NULL,
                PRIMARY KEY (owner, day)
            );
            CREATE TABLE IF NOT EXISTS ratings (
                owner       TEXT    NOT NULL,
                day         INTEGER NOT NULL,
                rating      INTEGER NOT NULL,
                PRIMARY KEY (owner, day)
            );
            CREATE TABLE IF NOT EXISTS user_stats (
                owner            TEXT    PRIMARY KEY,
                prediction_count INTEGER NOT NULL DEFAULT 0,
                rating_count     INTEGER NOT NULL DEFAULT 0,
                rating_sum       INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS counters (
                name        TEXT    PRIMARY KEY,
                value       INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS events (
                sequence     INTEGER PRIMARY KEY AUTOINCREMENT,
                kind         TEXT    NOT NULL,
                payload_json TEXT    NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_charts_owner ON charts(owner);
            CREATE INDEX IF NOT EXISTS idx_events_kind  ON events(kind);
        """)
        self.conn.executemany(
            "INSERT OR IGNORE INTO counters (name, value) VALUES (?, 0)",
            [(name,) for name in COUNTERS],
        )

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStorage"]:
        """
        All-or-nothing unit of work. The outermost block owns BEGIN/COMMIT;
        nested blocks use savepoints so an inner failure that the caller
        handles does not leak partial writes.
        """
        conn = self.conn
        if self._depth == 0:
            conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._depth = 0
                conn.execute("ROLLBACK")
                raise
            self._depth = 0
            conn.execute("COMMIT")
            return

        name = f"sp_{self._depth}"
        conn.execute(f"SAVEPOINT {name}")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            conn.execute(f"ROLLBACK TO {name}")
            conn.execute(f"RELEASE {name}")
            raise
        self._depth -= 1
        conn.execute(f"RELEASE {name}")

    def _require_tx(self):
        if self._depth == 0:
            raise RuntimeError("Mutation outside of a storage transaction")

    # ── charts + owner index

    def get_chart(self, chart_id: str) -> Optional[Commitment]:
        row = self.conn.execute(
            "SELECT chart_id, data_hash, owner, created_at, verified FROM charts WHERE chart_id = ?",
            (chart_id,),
        ).fetchone()
        return _chart_from_row(row) if row else None

    def insert_chart(self, chart: Commitment) -> None:
        self._require_tx()
        self.conn.execute(
            "INSERT INTO charts (chart_id, data_hash, owner, created_at, verified) VALUES (?, ?, ?, ?, ?)",
            (chart.chart_id, bytes32_hex(chart.data_hash), chart.owner, chart.created_at, int(chart.verified)),
        )

    def set_chart_verified(self, chart_id: str) -> None:
        self._require_tx()
        self.conn.execute("UPDATE charts SET verified = 1 WHERE chart_id = ?", (chart_id,))

    def list_charts(self) -> List[Commitment]:
        cursor = self.conn.execute(
            "SELECT chart_id, data_hash, owner, created_at, verified FROM charts ORDER BY created_at, chart_id"
        )
        return [_chart_from_row(row) for row in cursor]

    def max_created_at(self) -> int:
        return self.conn.execute("SELECT COALESCE(MAX(created_at), 0) FROM charts").fetchone()[0]

    def append_owner_chart(self, owner: str, chart_id: str) -> None:
        self._require_tx()
        self.conn.execute(
            """
            INSERT INTO owner_charts (owner, position, chart_id)
            VALUES (?, (SELECT COUNT(*) FROM owner_charts WHERE owner = ?), ?)
            """,
            (owner, owner, chart_id),
        )

    def list_owner_charts(self, owner: str) -> List[str]:
        cursor = self.conn.execute(
            "SELECT chart_id FROM owner_charts WHERE owner = ? ORDER BY position ASC", (owner,)
        )
        return [row[0] for row in cursor]

    def list_indexed_owners(self) -> List[str]:
        cursor = self.conn.execute("SELECT DISTINCT owner FROM owner_charts ORDER BY owner")
        return [row[0] for row in cursor]

    # ── owner registrations

    def get_registration(self, owner: str) -> Optional[bytes]:
        row = self.conn.execute(
            "SELECT commitment FROM registrations WHERE owner = ?", (owner,)
        ).fetchone()
        return to_bytes32(row[0]) if row else None

    def insert_registration(self, owner: str, commitment: bytes) -> None:
        self._require_tx()
        self.conn.execute(
            "INSERT INTO registrations (owner, commitment) VALUES (?, ?)",
            (owner, bytes32_hex(commitment)),
        )

    # ── predictions + ratings

    def get_prediction(self, owner: str, day: int) -> Optional[PredictionEntry]:
        row = self.conn.execute(
            "SELECT prediction_hash FROM predictions WHERE owner = ? AND day = ?", (owner, day)
        ).fetchone()
        if row is None:
            return None
        return PredictionEntry(owner=owner, day=day, prediction_hash=to_bytes32(row[0]))

    def insert_prediction(self, entry: PredictionEntry) -> None:
        self._require_tx()
        self.conn.execute(
            "INSERT INTO predictions (owner, day, prediction_hash) VALUES (?, ?, ?)",
            (entry.owner, entry.day, bytes32_hex(entry.prediction_hash)),
        )

    def get_rating(self, owner: str, day: int) -> Optional[int]:
        row = self.conn.execute(
            "SELECT rating FROM ratings WHERE owner = ? AND day = ?", (owner, day)
        ).fetchone()
        return row[0] if row else None

    def set_rating(self, owner: str, day: int, value: int) -> None:
        self._require_tx()
        self.conn.execute(
            """
            INSERT INTO ratings (owner, day, rating) VALUES (?, ?, ?)
            ON CONFLICT (owner, day) DO UPDATE SET rating = excluded.rating
            """,
            (owner, day, value),
        )

    def list_ratings(self, owner: str) -> Dict[int, int]:
        cursor = self.conn.execute(
            "SELECT day, rating FROM ratings WHERE owner = ? ORDER BY day", (owner,)
        )
        return {day: rating for day, rating in cursor}

    def get_user_stats(self, owner: str) -> UserStats:
        row = self.conn.execute(
            "SELECT prediction_count, rating_count, rating_sum FROM user_stats WHERE owner = ?",
            (owner,),
        ).fetchone()
        if row is None:
            return UserStats()
        return UserStats(prediction_count=row[0], rating_count=row[1], rating_sum=row[2])

    def put_user_stats(self, owner: str, stats: UserStats) -> None:
        self._require_tx()
        self.conn.execute(
            """
            INSERT INTO user_stats (owner, prediction_count, rating_count, rating_sum)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (owner) DO UPDATE SET
                prediction_count = excluded.prediction_count,
                rating_count     = excluded.rating_count,
                rating_sum       = excluded.rating_sum
            """,
            (owner, stats.prediction_count, stats.rating_count, stats.rating_sum),
        )

    def list_stat_owners(self) -> List[str]:
        cursor = self.conn.execute("SELECT owner FROM user_stats ORDER BY owner")
        return [row[0] for row in cursor]

    # ── counters

    def get_counter(self, name: str) -> int:
        row = self.conn.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise KeyError(f"Unknown counter: {name}")
        return row[0]

    def incr_counter(self, name: str, by: int = 1) -> int:
        self._require_tx()
        cursor = self.conn.execute("UPDATE counters SET value = value + ? WHERE name = ?", (by, name))
        if cursor.rowcount != 1:
            raise KeyError(f"Unknown counter: {name}")
        return self.get_counter(name)

    def count(self, collection: str) -> int:
        table = _COUNTABLE.get(collection)
        if table is None:
            raise ValueError(f"Unknown collection: {collection}")
        return self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    # ── events

    def append_event(self, kind: str, payload: dict) -> int:
        self._require_tx()
        cursor = self.conn.execute(
            "INSERT INTO events (kind, payload_json) VALUES (?, ?)",
            (kind, canonical_json_str(payload)),
        )
        return cursor.lastrowid

    def load_events(self, kind: Optional[str] = None, since: int = 0) -> List[EventRecord]:
        if kind is None:
            cursor = self.conn.execute(
                "SELECT sequence, kind, payload_json FROM events WHERE sequence > ? ORDER BY sequence ASC",
                (since,),
            )
        else:
            cursor = self.conn.execute(
                """
                SELECT sequence, kind, payload_json FROM events
                WHERE sequence > ? AND kind = ? ORDER BY sequence ASC
                """,
                (since, kind),
            )
        return [EventRecord(sequence=seq, kind=k, payload=load_json(pj)) for seq, k, pj in cursor]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _chart_from_row(row) -> Commitment:
    chart_id, data_hash, owner, created_at, verified = row
    return Commitment(
        chart_id=chart_id,
        data_hash=to_bytes32(data_hash),
        owner=owner,
        created_at=created_at,
        verified=bool(verified),
    )
