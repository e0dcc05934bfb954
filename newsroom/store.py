"""SQLite persistence: simulation history, event log, rate limits, daily budget.

The coordinator never writes here. The caller persists the finished
``SimulationResult`` together with the events recorded during the run, so a
run can be listed, shown, and replayed later.
"""

import datetime as dt
import hashlib
import json
import logging
import math
import os
import platform
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from config.config_loader import BudgetConfig, RateLimitConfig
from newsroom.events import simulation_payload
from newsroom.models import SimulationResult

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS simulations (
    id               TEXT PRIMARY KEY,
    created_at       INTEGER NOT NULL,
    topic            TEXT NOT NULL,
    result_json      TEXT NOT NULL,
    cost             REAL NOT NULL DEFAULT 0,
    fingerprint_hash TEXT
);
CREATE INDEX IF NOT EXISTS idx_simulations_created_at ON simulations(created_at);

CREATE TABLE IF NOT EXISTS simulation_events (
    simulation_id TEXT NOT NULL,
    seq           INTEGER NOT NULL,
    event         TEXT NOT NULL,
    payload_json  TEXT NOT NULL,
    PRIMARY KEY (simulation_id, seq)
);

CREATE TABLE IF NOT EXISTS rate_limits (
    fingerprint_hash TEXT PRIMARY KEY,
    window_start     INTEGER NOT NULL,
    last_run_at      INTEGER NOT NULL,
    run_count        INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS budget_tracking (
    date             TEXT PRIMARY KEY,
    total_cost       REAL NOT NULL DEFAULT 0,
    simulation_count INTEGER NOT NULL DEFAULT 0
);
"""

_ID_LENGTH = 10


def new_simulation_id() -> str:
    """Return a 10-character URL-safe random id."""
    return secrets.token_urlsafe(8)[:_ID_LENGTH]


def fingerprint(*components: str) -> str:
    """SHA-256 of the given components, or of this user/host when none given."""
    if not components:
        components = (
            os.environ.get("USER") or os.environ.get("USERNAME") or "",
            platform.node(),
            platform.system(),
        )
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class StoredSimulation:
    id: str
    topic: str
    created_at: int
    cost: float
    result: dict          # simulation:complete payload
    fingerprint_hash: str | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int = 0
    remaining_seconds: int = 0
    message: str = ""


@dataclass(frozen=True)
class BudgetStatus:
    date: str
    total_cost: float
    simulation_count: int
    remaining: float


def _row_to_simulation(row: aiosqlite.Row) -> StoredSimulation:
    return StoredSimulation(
        id=row["id"],
        topic=row["topic"],
        created_at=int(row["created_at"]),
        cost=float(row["cost"]),
        result=json.loads(row["result_json"]),
        fingerprint_hash=row["fingerprint_hash"],
    )


class SimulationStore:
    """aiosqlite-backed store for completed simulations and usage limits.

    Use ``async with SimulationStore(path, budget, rate_limit) as store:`` or
    call ``await store.init()`` / ``await store.close()`` manually.
    """

    def __init__(
        self,
        db_path: Path | str,
        budget: BudgetConfig,
        rate_limit: RateLimitConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = str(db_path)
        self.budget = budget
        self.rate_limit = rate_limit
        self._clock = clock
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create tables if needed."""
        if self._db is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.debug("opening sqlite database path=%s", self.db_path)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> "SimulationStore":
        await self.init()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    def _ensure_init(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Store not initialized: call init() or use 'async with'")
        return self._db

    def _now(self) -> int:
        return int(self._clock())

    def _today(self) -> str:
        return dt.datetime.fromtimestamp(self._clock(), tz=dt.timezone.utc).date().isoformat()

    # -- simulations ----------------------------------------------------------

    async def save_simulation(
        self,
        simulation_id: str,
        result: SimulationResult,
        fingerprint_hash: str | None = None,
        events: list[tuple[str, dict]] | None = None,
    ) -> None:
        """Persist one completed run and, optionally, its event log."""
        db = self._ensure_init()
        await db.execute(
            """\
            INSERT INTO simulations (id, created_at, topic, result_json, cost, fingerprint_hash)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                simulation_id,
                self._now(),
                result.topic,
                json.dumps(simulation_payload(result)),
                result.cost,
                fingerprint_hash,
            ),
        )
        if events:
            await db.executemany(
                "INSERT INTO simulation_events (simulation_id, seq, event, payload_json) VALUES (?, ?, ?, ?)",
                [
                    (simulation_id, seq, event, json.dumps(payload, default=str))
                    for seq, (event, payload) in enumerate(events)
                ],
            )
        await db.commit()
        logger.info("Saved simulation %s (%d events)", simulation_id, len(events or ()))

    async def list_simulations(self, limit: int = 20) -> list[StoredSimulation]:
        db = self._ensure_init()
        cursor = await db.execute(
            "SELECT * FROM simulations ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [_row_to_simulation(r) for r in rows]

    async def get_simulation(self, simulation_id: str) -> StoredSimulation | None:
        db = self._ensure_init()
        cursor = await db.execute("SELECT * FROM simulations WHERE id = ?", (simulation_id,))
        row = await cursor.fetchone()
        return _row_to_simulation(row) if row is not None else None

    async def get_events(self, simulation_id: str) -> list[tuple[str, dict]]:
        """Return the recorded event log of a run in its original order."""
        db = self._ensure_init()
        cursor = await db.execute(
            "SELECT event, payload_json FROM simulation_events WHERE simulation_id = ? ORDER BY seq",
            (simulation_id,),
        )
        rows = await cursor.fetchall()
        return [(row["event"], json.loads(row["payload_json"])) for row in rows]

    # -- rate limiting --------------------------------------------------------

    async def check_rate_limit(self, fingerprint_hash: str) -> RateLimitStatus:
        """Allow a run unless this fingerprint used up its window."""
        db = self._ensure_init()
        cursor = await db.execute(
            "SELECT * FROM rate_limits WHERE fingerprint_hash = ?", (fingerprint_hash,)
        )
        record = await cursor.fetchone()
        window = int(self.rate_limit.window_hours * 3600)
        now = self._now()

        if record is None or now - record["window_start"] >= window:
            return RateLimitStatus(allowed=True, remaining=self.rate_limit.max_requests)

        used = record["run_count"]
        if used < self.rate_limit.max_requests:
            return RateLimitStatus(allowed=True, remaining=self.rate_limit.max_requests - used)

        remaining_seconds = window - (now - record["window_start"])
        return RateLimitStatus(
            allowed=False,
            remaining_seconds=remaining_seconds,
            message=f"You can run another simulation in {math.ceil(remaining_seconds / 3600)} hours",
        )

    async def record_run(self, fingerprint_hash: str) -> None:
        db = self._ensure_init()
        now = self._now()
        window = int(self.rate_limit.window_hours * 3600)
        await db.execute(
            """\
            INSERT INTO rate_limits (fingerprint_hash, window_start, last_run_at, run_count)
            VALUES (?, ?, ?, 1)
            ON CONFLICT(fingerprint_hash) DO UPDATE SET
                run_count    = CASE WHEN ? - window_start >= ? THEN 1 ELSE run_count + 1 END,
                window_start = CASE WHEN ? - window_start >= ? THEN excluded.window_start ELSE window_start END,
                last_run_at  = excluded.last_run_at
            """,
            (fingerprint_hash, now, now, now, window, now, window),
        )
        await db.commit()

    # -- budget ---------------------------------------------------------------

    async def get_daily_budget(self) -> BudgetStatus:
        db = self._ensure_init()
        today = self._today()
        cursor = await db.execute("SELECT * FROM budget_tracking WHERE date = ?", (today,))
        record = await cursor.fetchone()
        total = float(record["total_cost"]) if record is not None else 0.0
        count = int(record["simulation_count"]) if record is not None else 0
        return BudgetStatus(
            date=today,
            total_cost=total,
            simulation_count=count,
            remaining=self.budget.daily_limit - total,
        )

    async def add_to_daily_budget(self, cost: float) -> None:
        db = self._ensure_init()
        await db.execute(
            """\
            INSERT INTO budget_tracking (date, total_cost, simulation_count)
            VALUES (?, ?, 1)
            ON CONFLICT(date) DO UPDATE SET
                total_cost       = total_cost + excluded.total_cost,
                simulation_count = simulation_count + 1
            """,
            (self._today(), cost),
        )
        await db.commit()
