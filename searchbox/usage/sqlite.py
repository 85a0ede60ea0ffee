"""
SQLite usage ledger, the durable variant.

One row per user in `users` (profile + aggregate counters), one row per
(user, model) in `model_usage`, and two append-only history tables.
Every counter change is a single `col = col + ?` UPDATE inside one
transaction, so concurrent writers (several worker processes sharing the
file) add to each other instead of overwriting.

Blocking sqlite calls run in a worker thread so the event loop never
stalls on disk.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from searchbox.catalog import display_name
from searchbox.costs import IMAGE_COST, CostEstimate, estimate
from searchbox.storage.models import ModelUsage, UsageRecord, UserProfile, utc_now
from searchbox.usage.base import UsageLedger

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS users (
    uid TEXT PRIMARY KEY,
    email TEXT DEFAULT '',
    name TEXT DEFAULT '',
    created_at TEXT NOT NULL,
    plan TEXT DEFAULT 'Free',
    last_plan_change TEXT NOT NULL,
    total_payments REAL DEFAULT 0,
    total_requests INTEGER DEFAULT 0,
    successful_requests INTEGER DEFAULT 0,
    failed_requests INTEGER DEFAULT 0,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    images_generated INTEGER DEFAULT 0,
    estimated_cost REAL DEFAULT 0,
    last_updated TEXT DEFAULT NULL
);

CREATE TABLE IF NOT EXISTS model_usage (
    uid TEXT NOT NULL,
    model_name TEXT NOT NULL,
    requests INTEGER DEFAULT 0,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    cost REAL DEFAULT 0,
    PRIMARY KEY (uid, model_name),
    FOREIGN KEY (uid) REFERENCES users(uid)
);

CREATE TABLE IF NOT EXISTS chat_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uid TEXT NOT NULL,
    model_id TEXT NOT NULL,
    model_name TEXT NOT NULL,
    input_text TEXT NOT NULL,
    output_text TEXT NOT NULL,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    cost REAL DEFAULT 0,
    is_successful BOOLEAN NOT NULL,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (uid) REFERENCES users(uid)
);

CREATE TABLE IF NOT EXISTS search_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uid TEXT NOT NULL,
    query TEXT NOT NULL,
    is_successful BOOLEAN NOT NULL,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (uid) REFERENCES users(uid)
);

CREATE INDEX IF NOT EXISTS idx_chat_history_uid
    ON chat_history(uid);
CREATE INDEX IF NOT EXISTS idx_search_history_uid
    ON search_history(uid);
"""


class SQLiteUsageLedger(UsageLedger):
    """Usage ledger persisted to a single SQLite file."""

    name = "sqlite"

    def __init__(
        self,
        db_path: str,
        cache_ttl: float = 60.0,
        read_timeout: float = 5.0,
        write_timeout: float = 10.0,
    ):
        super().__init__(cache_ttl=cache_ttl, read_timeout=read_timeout)
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.write_timeout = write_timeout
        self._init_db()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite usage ledger initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.db_path), timeout=self.write_timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _ensure_user(conn: sqlite3.Connection, user_id: str):
        profile = UserProfile.for_user(user_id)
        cur = conn.execute(
            """INSERT OR IGNORE INTO users
               (uid, email, name, created_at, plan, last_plan_change, total_payments)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (profile.uid, profile.email, profile.name, profile.created_at,
             profile.plan, profile.last_plan_change, profile.total_payments),
        )
        if cur.rowcount:
            logger.info("Created user record for %s", user_id)

    @staticmethod
    def _outcome_column(succeeded: bool) -> str:
        return "successful_requests" if succeeded else "failed_requests"

    # ------------------------------------------------------------------
    # Sync bodies (run in a worker thread)
    # ------------------------------------------------------------------

    def _track_sync(self, user_id: str, model_id: str, model_name: str,
                    input_text: str, output_text: str, succeeded: bool,
                    est: CostEstimate):
        now = utc_now()
        with self._connect() as conn:
            self._ensure_user(conn, user_id)
            outcome = self._outcome_column(succeeded)
            conn.execute(
                f"""UPDATE users SET
                       total_requests = total_requests + 1,
                       {outcome} = {outcome} + 1,
                       input_tokens = input_tokens + ?,
                       output_tokens = output_tokens + ?,
                       estimated_cost = estimated_cost + ?,
                       last_updated = ?
                    WHERE uid = ?""",
                (est.input_tokens, est.output_tokens, est.cost, now, user_id),
            )
            conn.execute(
                "INSERT OR IGNORE INTO model_usage (uid, model_name) VALUES (?, ?)",
                (user_id, model_name),
            )
            conn.execute(
                """UPDATE model_usage SET
                       requests = requests + 1,
                       input_tokens = input_tokens + ?,
                       output_tokens = output_tokens + ?,
                       cost = cost + ?
                   WHERE uid = ? AND model_name = ?""",
                (est.input_tokens, est.output_tokens, est.cost, user_id, model_name),
            )

        # History is a separate best-effort write; losing it never undoes the counters.
        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO chat_history
                       (uid, model_id, model_name, input_text, output_text,
                        input_tokens, output_tokens, cost, is_successful, timestamp)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (user_id, model_id, model_name, input_text,
                     output_text if succeeded else "",
                     est.input_tokens, est.output_tokens, est.cost, succeeded, now),
                )
        except sqlite3.Error as e:
            logger.error("Failed to log chat history for %s: %s", user_id, e)

    def _track_search_sync(self, user_id: str, query: str, succeeded: bool):
        now = utc_now()
        with self._connect() as conn:
            self._ensure_user(conn, user_id)
            outcome = self._outcome_column(succeeded)
            conn.execute(
                f"""UPDATE users SET
                       total_requests = total_requests + 1,
                       {outcome} = {outcome} + 1,
                       last_updated = ?
                    WHERE uid = ?""",
                (now, user_id),
            )
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO search_history (uid, query, is_successful, timestamp) VALUES (?, ?, ?, ?)",
                    (user_id, query, succeeded, now),
                )
        except sqlite3.Error as e:
            logger.error("Failed to log search history for %s: %s", user_id, e)

    def _track_image_sync(self, user_id: str, succeeded: bool, cost: float):
        with self._connect() as conn:
            self._ensure_user(conn, user_id)
            outcome = self._outcome_column(succeeded)
            conn.execute(
                f"""UPDATE users SET
                       total_requests = total_requests + 1,
                       {outcome} = {outcome} + 1,
                       images_generated = images_generated + ?,
                       estimated_cost = estimated_cost + ?,
                       last_updated = ?
                    WHERE uid = ?""",
                (1 if succeeded else 0, cost, utc_now(), user_id),
            )

    def _read_user_sync(self, user_id: str) -> tuple[UserProfile, UsageRecord]:
        with self._connect() as conn:
            self._ensure_user(conn, user_id)
            row = conn.execute("SELECT * FROM users WHERE uid = ?", (user_id,)).fetchone()
            model_rows = conn.execute(
                "SELECT * FROM model_usage WHERE uid = ?", (user_id,),
            ).fetchall()

        profile = UserProfile(
            uid=row["uid"],
            email=row["email"] or "",
            name=row["name"] or "",
            created_at=row["created_at"],
            plan=row["plan"] or "Free",
            last_plan_change=row["last_plan_change"],
            total_payments=row["total_payments"] or 0,
        )
        record = UsageRecord(
            total_requests=row["total_requests"],
            successful_requests=row["successful_requests"],
            failed_requests=row["failed_requests"],
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
            images_generated=row["images_generated"],
            estimated_cost=row["estimated_cost"],
            model_usage={
                m["model_name"]: ModelUsage(
                    requests=m["requests"],
                    input_tokens=m["input_tokens"],
                    output_tokens=m["output_tokens"],
                    cost=m["cost"],
                )
                for m in model_rows
            },
            last_updated=row["last_updated"],
        )
        return profile, record

    async def _run(self, fn, *args):
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.write_timeout)

    # ------------------------------------------------------------------
    # UsageLedger interface
    # ------------------------------------------------------------------

    async def track(
        self,
        user_id: str,
        model_id: str,
        input_text: str,
        output_text: str,
        succeeded: bool,
    ) -> CostEstimate:
        model_name = display_name(model_id)
        est = estimate(model_name, input_text, output_text)
        try:
            await self._run(
                self._track_sync, user_id, model_id, model_name,
                input_text, output_text, succeeded, est,
            )
        except Exception as e:
            logger.error("Failed to track chat request for %s: %s", user_id, e)
        finally:
            self.cache.invalidate(user_id)
        return est

    async def track_search(self, user_id: str, query: str, succeeded: bool) -> None:
        try:
            await self._run(self._track_search_sync, user_id, query, succeeded)
        except Exception as e:
            logger.error("Failed to track web search for %s: %s", user_id, e)
        finally:
            self.cache.invalidate(user_id)

    async def track_image(self, user_id: str, prompt: str, succeeded: bool) -> float:
        cost = IMAGE_COST if succeeded else 0.0
        try:
            await self._run(self._track_image_sync, user_id, succeeded, cost)
        except Exception as e:
            logger.error("Failed to track image generation for %s: %s", user_id, e)
            return 0.0
        finally:
            self.cache.invalidate(user_id)
        return cost

    async def _read_user(self, user_id: str) -> tuple[UserProfile, UsageRecord]:
        return await asyncio.to_thread(self._read_user_sync, user_id)

    def get_chat_history(self, user_id: str, limit: int = 50) -> list[dict]:
        """Most recent chat history entries for a user, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM chat_history WHERE uid = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_search_history(self, user_id: str, limit: int = 50) -> list[dict]:
        """Most recent search history entries for a user, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM search_history WHERE uid = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]
