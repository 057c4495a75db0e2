"""aiosqlite persistence for markets, matches, snapshots and edge history."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiosqlite

from edgefinder.config.constants import DB_CHUNK_SIZE
from edgefinder.core.models import (
    EdgeSnapshot,
    Entitlement,
    MarketMatch,
    MarketRecord,
    SharedDataset,
)
from edgefinder.utils.logging import get_logger


logger = get_logger("db")


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS markets (
    venue           TEXT NOT NULL,
    market_id       TEXT NOT NULL,
    title           TEXT NOT NULL,
    category        TEXT,
    yes_bid         REAL,
    yes_ask         REAL,
    no_bid          REAL,
    no_ask          REAL,
    volume          REAL,
    active          INTEGER NOT NULL,
    opens_at        REAL,
    closes_at       REAL,
    url             TEXT,
    updated_at      REAL NOT NULL,
    PRIMARY KEY (venue, market_id)
);

CREATE TABLE IF NOT EXISTS market_matches (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          TEXT,
    polymarket_id   TEXT NOT NULL,
    kalshi_id       TEXT NOT NULL,
    similarity      REAL NOT NULL,
    is_best_match   INTEGER NOT NULL,
    created_at      REAL NOT NULL
);

-- Immutable: rows are inserted once and never updated or deleted here
CREATE TABLE IF NOT EXISTS shared_datasets (
    id              TEXT PRIMARY KEY,
    pipeline_run_id TEXT,
    items           TEXT NOT NULL,
    created_at      REAL NOT NULL,
    expires_at      REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_datasets_created ON shared_datasets (created_at);

CREATE TABLE IF NOT EXISTS entitlements (
    id              TEXT PRIMARY KEY,
    wallet_address  TEXT NOT NULL,
    shared_dataset_id TEXT NOT NULL REFERENCES shared_datasets(id),
    created_at      REAL NOT NULL,
    valid_until     REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entitlements_wallet ON entitlements (wallet_address, created_at);

-- Append-only edge observations
CREATE TABLE IF NOT EXISTS edge_snapshots (
    snapshot_id     TEXT PRIMARY KEY,
    opportunity_id  TEXT NOT NULL,
    timestamp       REAL NOT NULL,
    polymarket_yes_price REAL NOT NULL,
    polymarket_no_price  REAL NOT NULL,
    kalshi_yes_price     REAL NOT NULL,
    kalshi_no_price      REAL NOT NULL,
    edge_percent    REAL NOT NULL,
    edge_strategy   TEXT NOT NULL,
    polymarket_id   TEXT,
    kalshi_id       TEXT,
    market_title    TEXT
);
CREATE INDEX IF NOT EXISTS idx_edges_opp_ts ON edge_snapshots (opportunity_id, timestamp);

CREATE TABLE IF NOT EXISTS pipeline_runs (
    id              TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    started_at      REAL NOT NULL,
    completed_at    REAL,
    stages          TEXT,
    market_matches_count INTEGER,
    shared_dataset_id TEXT,
    error_message   TEXT
);
"""


def _ts(dt: Optional[datetime]) -> Optional[float]:
    return dt.timestamp() if dt is not None else None


def _dt(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _chunks(rows: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(rows), max(1, size)):
        yield rows[i : i + size]


class Database:
    """Async persistence interface.

    ``path`` may be ``":memory:"``. Batch writes are split into chunks of
    ``chunk_size`` rows, each committed on its own; the first failing chunk
    raises and the remaining chunks of that write are not attempted.
    """

    def __init__(self, path: str = ":memory:", chunk_size: int = DB_CHUNK_SIZE):
        self.path = path
        self.chunk_size = chunk_size
        self._conn: Optional[aiosqlite.Connection] = None

    async def init(self) -> "Database":
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.debug("database initialized at %s", self.path)
        return self

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "Database":
        return await self.init()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database.init() has not been called")
        return self._conn

    async def _write_chunked(self, sql: str, rows: Sequence[Any]) -> int:
        written = 0
        for chunk in _chunks(rows, self.chunk_size):
            try:
                await self.conn.executemany(sql, chunk)
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                logger.error("Chunked write aborted after %d/%d rows", written, len(rows))
                raise
            written += len(chunk)
        return written

    # markets -------------------------------------------------------------

    async def upsert_markets(self, records: Sequence[MarketRecord], now: datetime) -> int:
        sql = """
        INSERT INTO markets (
            venue, market_id, title, category, yes_bid, yes_ask, no_bid, no_ask,
            volume, active, opens_at, closes_at, url, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (venue, market_id) DO UPDATE SET
            title = excluded.title,
            category = excluded.category,
            yes_bid = excluded.yes_bid,
            yes_ask = excluded.yes_ask,
            no_bid = excluded.no_bid,
            no_ask = excluded.no_ask,
            volume = excluded.volume,
            active = excluded.active,
            opens_at = excluded.opens_at,
            closes_at = excluded.closes_at,
            url = excluded.url,
            updated_at = excluded.updated_at
        """
        rows = [
            (
                r.venue.value,
                r.market_id,
                r.title,
                r.category,
                r.prices.yes_bid,
                r.prices.yes_ask,
                r.prices.no_bid,
                r.prices.no_ask,
                r.volume,
                int(r.active),
                _ts(r.opens_at),
                _ts(r.closes_at),
                r.url,
                _ts(now),
            )
            for r in records
        ]
        return await self._write_chunked(sql, rows)

    async def count_markets(self, venue: Optional[str] = None) -> int:
        if venue:
            cursor = await self.conn.execute("SELECT COUNT(*) FROM markets WHERE venue = ?", (venue,))
        else:
            cursor = await self.conn.execute("SELECT COUNT(*) FROM markets")
        row = await cursor.fetchone()
        return int(row[0])

    # matches -------------------------------------------------------------

    async def replace_matches(self, run_id: str, matches: Sequence[MarketMatch], now: datetime) -> int:
        """Supersede earlier best matches of the same venue-A records."""
        a_ids = sorted({m.a.market_id for m in matches})
        for chunk in _chunks(a_ids, self.chunk_size):
            marks = ",".join("?" for _ in chunk)
            await self.conn.execute(
                f"UPDATE market_matches SET is_best_match = 0 WHERE polymarket_id IN ({marks})",
                tuple(chunk),
            )
        await self.conn.commit()
        sql = """
        INSERT INTO market_matches (run_id, polymarket_id, kalshi_id, similarity, is_best_match, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """
        rows = [(run_id, m.a.market_id, m.b.market_id, m.similarity, int(m.is_best_match), _ts(now)) for m in matches]
        return await self._write_chunked(sql, rows)

    async def best_matches(self) -> List[Dict[str, Any]]:
        cursor = await self.conn.execute(
            "SELECT polymarket_id, kalshi_id, similarity, run_id FROM market_matches "
            "WHERE is_best_match = 1 ORDER BY similarity DESC, polymarket_id"
        )
        return [dict(row) for row in await cursor.fetchall()]

    # shared datasets -----------------------------------------------------

    async def insert_dataset(self, dataset: SharedDataset) -> None:
        await self.conn.execute(
            "INSERT INTO shared_datasets (id, pipeline_run_id, items, created_at, expires_at) VALUES (?, ?, ?, ?, ?)",
            (
                dataset.dataset_id,
                dataset.run_id,
                json.dumps(list(dataset.items), default=str),
                _ts(dataset.created_at),
                _ts(dataset.expires_at),
            ),
        )
        await self.conn.commit()

    @staticmethod
    def _dataset_from_row(row: aiosqlite.Row) -> SharedDataset:
        return SharedDataset(
            dataset_id=row["id"],
            run_id=row["pipeline_run_id"],
            items=tuple(json.loads(row["items"])),
            created_at=_dt(row["created_at"]),
            expires_at=_dt(row["expires_at"]),
        )

    async def latest_active_dataset(self, now: datetime) -> Optional[SharedDataset]:
        cursor = await self.conn.execute(
            "SELECT * FROM shared_datasets WHERE expires_at > ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (_ts(now),),
        )
        row = await cursor.fetchone()
        return self._dataset_from_row(row) if row else None

    async def latest_dataset(self) -> Optional[SharedDataset]:
        cursor = await self.conn.execute(
            "SELECT * FROM shared_datasets ORDER BY created_at DESC, rowid DESC LIMIT 1"
        )
        row = await cursor.fetchone()
        return self._dataset_from_row(row) if row else None

    async def get_dataset(self, dataset_id: str) -> Optional[SharedDataset]:
        cursor = await self.conn.execute("SELECT * FROM shared_datasets WHERE id = ?", (dataset_id,))
        row = await cursor.fetchone()
        return self._dataset_from_row(row) if row else None

    # entitlements --------------------------------------------------------

    async def insert_entitlement(self, ent: Entitlement) -> None:
        await self.conn.execute(
            "INSERT INTO entitlements (id, wallet_address, shared_dataset_id, created_at, valid_until) "
            "VALUES (?, ?, ?, ?, ?)",
            (ent.entitlement_id, ent.wallet_address, ent.dataset_id, _ts(ent.created_at), _ts(ent.valid_until)),
        )
        await self.conn.commit()

    async def latest_entitlement(self, wallet_address: str) -> Optional[Entitlement]:
        cursor = await self.conn.execute(
            "SELECT * FROM entitlements WHERE wallet_address = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (wallet_address,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Entitlement(
            entitlement_id=row["id"],
            wallet_address=row["wallet_address"],
            dataset_id=row["shared_dataset_id"],
            created_at=_dt(row["created_at"]),
            valid_until=_dt(row["valid_until"]),
        )

    # edge history --------------------------------------------------------

    async def insert_edge_snapshots(self, snapshots: Sequence[EdgeSnapshot]) -> int:
        sql = """
        INSERT INTO edge_snapshots (
            snapshot_id, opportunity_id, timestamp,
            polymarket_yes_price, polymarket_no_price, kalshi_yes_price, kalshi_no_price,
            edge_percent, edge_strategy, polymarket_id, kalshi_id, market_title
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        rows = [
            (
                s.snapshot_id,
                s.opportunity_id,
                _ts(s.timestamp),
                s.polymarket_yes_price,
                s.polymarket_no_price,
                s.kalshi_yes_price,
                s.kalshi_no_price,
                s.edge_percent,
                s.strategy,
                s.polymarket_id,
                s.kalshi_id,
                s.title,
            )
            for s in snapshots
        ]
        return await self._write_chunked(sql, rows)

    async def edge_snapshots_since(self, opportunity_id: str, since: datetime) -> List[EdgeSnapshot]:
        cursor = await self.conn.execute(
            "SELECT * FROM edge_snapshots WHERE opportunity_id = ? AND timestamp >= ? "
            "ORDER BY timestamp ASC, rowid ASC",
            (opportunity_id, _ts(since)),
        )
        return [
            EdgeSnapshot(
                snapshot_id=row["snapshot_id"],
                opportunity_id=row["opportunity_id"],
                timestamp=_dt(row["timestamp"]),
                polymarket_yes_price=row["polymarket_yes_price"],
                polymarket_no_price=row["polymarket_no_price"],
                kalshi_yes_price=row["kalshi_yes_price"],
                kalshi_no_price=row["kalshi_no_price"],
                edge_percent=row["edge_percent"],
                strategy=row["edge_strategy"],
                polymarket_id=row["polymarket_id"] or "",
                kalshi_id=row["kalshi_id"] or "",
                title=row["market_title"] or "",
            )
            for row in await cursor.fetchall()
        ]

    # pipeline runs -------------------------------------------------------

    async def insert_run(self, run_id: str, status: str, started_at: datetime) -> None:
        await self.conn.execute(
            "INSERT INTO pipeline_runs (id, status, started_at) VALUES (?, ?, ?)",
            (run_id, status, _ts(started_at)),
        )
        await self.conn.commit()

    async def finish_run(
        self,
        run_id: str,
        *,
        status: str,
        completed_at: datetime,
        stages: Dict[str, Any],
        match_count: int,
        dataset_id: Optional[str],
        error_message: Optional[str],
    ) -> None:
        await self.conn.execute(
            """
            UPDATE pipeline_runs
            SET status = ?, completed_at = ?, stages = ?, market_matches_count = ?,
                shared_dataset_id = ?, error_message = ?
            WHERE id = ?
            """,
            (
                status,
                _ts(completed_at),
                json.dumps(stages, default=str),
                match_count,
                dataset_id,
                error_message,
                run_id,
            ),
        )
        await self.conn.commit()

    async def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        cursor = await self.conn.execute("SELECT * FROM pipeline_runs WHERE id = ?", (run_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        out = dict(row)
        out["started_at"] = _dt(out["started_at"])
        out["completed_at"] = _dt(out["completed_at"])
        out["stages"] = json.loads(out["stages"]) if out["stages"] else {}
        return out
