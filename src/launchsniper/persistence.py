"""SQLite ledger for trades, positions, daily stats and the token blacklist."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import aiosqlite

from .logging import get_logger
from .models import DailyStat, Position, Trade, TradeSide, TradeStatus

log = get_logger("ledger")

DEFAULT_DB_PATH = Path("data/trades.db")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_utc() -> str:
    """Ledger day key (YYYY-MM-DD, UTC)."""
    return utcnow().date().isoformat()


class Database:
    """Async SQLite ledger.

    The execution pipeline is the only writer of trades and positions. All
    accumulating updates (position spend, daily stats) are single
    INSERT ... ON CONFLICT DO UPDATE statements that add deltas in place, so
    concurrent writers never lose an update.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        """Initialize database.

        Args:
            db_path: Path to SQLite database file (":memory:" allowed)
        """
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to database and create tables."""
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")

        await self._create_tables()
        log.info("Database connected", path=str(self.db_path))

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        await self._conn.executescript("""
            -- Append-only: one row per attempt, status moves pending -> confirmed|failed once
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                asset_id TEXT NOT NULL,
                symbol TEXT,
                name TEXT,
                side TEXT NOT NULL CHECK (side IN ('BUY', 'SELL')),
                sol_amount REAL NOT NULL,
                token_amount REAL,
                price REAL,
                tx_ref TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'confirmed', 'failed')),
                reason TEXT,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                asset_id TEXT NOT NULL,
                symbol TEXT,
                name TEXT,
                entry_price REAL,
                amount_tokens REAL,
                amount_sol_spent REAL,
                current_price REAL,
                pnl_percent REAL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'closed')),
                entry_reason TEXT,
                exit_reason TEXT,
                created_at TIMESTAMP NOT NULL,
                closed_at TIMESTAMP
            );

            -- At most one open position per asset; closed rows are history
            CREATE UNIQUE INDEX IF NOT EXISTS idx_positions_open_asset
                ON positions(asset_id) WHERE status = 'open';

            CREATE TABLE IF NOT EXISTS daily_stats (
                date TEXT PRIMARY KEY,
                trades_count INTEGER DEFAULT 0,
                wins INTEGER DEFAULT 0,
                losses INTEGER DEFAULT 0,
                total_pnl_sol REAL DEFAULT 0,
                volume_sol REAL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS token_blacklist (
                asset_id TEXT PRIMARY KEY,
                reason TEXT,
                created_at TIMESTAMP NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_trades_created ON trades(created_at);
            CREATE INDEX IF NOT EXISTS idx_trades_asset ON trades(asset_id);
            CREATE INDEX IF NOT EXISTS idx_positions_status ON positions(status);
        """)
        await self._conn.commit()

    async def _fetchall(self, sql: str, params: tuple = ()) -> List[Any]:
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchall()

    async def _fetchone(self, sql: str, params: tuple = ()) -> Optional[Any]:
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    # ========== Trade Operations ==========

    async def insert_trade(
        self,
        asset_id: str,
        side: TradeSide,
        sol_amount: float,
        token_amount: float = 0.0,
        price: float = 0.0,
        status: TradeStatus = TradeStatus.PENDING,
        reason: Optional[str] = None,
        tx_ref: Optional[str] = None,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> int:
        """Append a trade row and return its id."""
        async with self._lock:
            cursor = await self._conn.execute(
                """
                INSERT INTO trades (
                    asset_id, symbol, name, side, sol_amount, token_amount,
                    price, tx_ref, status, reason, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    asset_id, symbol, name, side.value, sol_amount, token_amount,
                    price, tx_ref, status.value, reason, utcnow().isoformat(),
                ),
            )
            await self._conn.commit()
            return cursor.lastrowid

    async def mark_trade_confirmed(self, trade_id: int, tx_ref: str) -> bool:
        """Move a pending trade to confirmed. Returns False if it was not pending."""
        async with self._lock:
            cursor = await self._conn.execute(
                """
                UPDATE trades SET status = 'confirmed', tx_ref = ?
                WHERE id = ? AND status = 'pending'
                """,
                (tx_ref, trade_id),
            )
            await self._conn.commit()
            return cursor.rowcount == 1

    async def mark_trade_failed(
        self,
        trade_id: int,
        reason: str,
        tx_ref: Optional[str] = None,
    ) -> bool:
        """Move a pending trade to failed, recording the cause."""
        async with self._lock:
            cursor = await self._conn.execute(
                """
                UPDATE trades SET status = 'failed', reason = ?, tx_ref = COALESCE(?, tx_ref)
                WHERE id = ? AND status = 'pending'
                """,
                (reason, tx_ref, trade_id),
            )
            await self._conn.commit()
            return cursor.rowcount == 1

    async def get_trade(self, trade_id: int) -> Optional[Trade]:
        row = await self._fetchone("SELECT * FROM trades WHERE id = ?", (trade_id,))
        return Trade.from_row(row) if row else None

    async def get_trades_for_asset(self, asset_id: str) -> List[Trade]:
        rows = await self._fetchall(
            "SELECT * FROM trades WHERE asset_id = ? ORDER BY id",
            (asset_id,),
        )
        return [Trade.from_row(r) for r in rows]

    async def get_recent_trades(self, limit: int = 20) -> List[Trade]:
        rows = await self._fetchall(
            "SELECT * FROM trades ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        return [Trade.from_row(r) for r in rows]

    # ========== Position Operations ==========

    async def upsert_open_position(
        self,
        asset_id: str,
        entry_price: float,
        amount_tokens: float,
        amount_sol_spent: float,
        entry_reason: Optional[str] = None,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        """Open a position or merge a repeat buy into the open one.

        Repeat buys add to amount_sol_spent and amount_tokens; entry_price
        becomes the size-weighted average of all fills.
        """
        async with self._lock:
            await self._conn.execute(
                """
                INSERT INTO positions (
                    asset_id, symbol, name, entry_price, amount_tokens,
                    amount_sol_spent, status, entry_reason, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'open', ?, ?)
                ON CONFLICT(asset_id) WHERE status = 'open' DO UPDATE SET
                    amount_sol_spent = amount_sol_spent + excluded.amount_sol_spent,
                    amount_tokens = amount_tokens + excluded.amount_tokens,
                    entry_price = CASE
                        WHEN amount_tokens + excluded.amount_tokens > 0
                        THEN (amount_sol_spent + excluded.amount_sol_spent)
                             / (amount_tokens + excluded.amount_tokens)
                        ELSE entry_price
                    END,
                    entry_reason = excluded.entry_reason
                """,
                (
                    asset_id, symbol, name, entry_price, amount_tokens,
                    amount_sol_spent, entry_reason, utcnow().isoformat(),
                ),
            )
            await self._conn.commit()

    async def close_position(
        self,
        asset_id: str,
        exit_reason: str,
        pnl_percent: float,
    ) -> bool:
        """Close the open position, freezing pnl_percent. Returns False if none was open."""
        async with self._lock:
            cursor = await self._conn.execute(
                """
                UPDATE positions
                SET status = 'closed', exit_reason = ?, pnl_percent = ?, closed_at = ?
                WHERE asset_id = ? AND status = 'open'
                """,
                (exit_reason, pnl_percent, utcnow().isoformat(), asset_id),
            )
            await self._conn.commit()
            return cursor.rowcount == 1

    async def update_position_price(
        self,
        asset_id: str,
        current_price: float,
        pnl_percent: float,
    ) -> None:
        """Mark an open position to market."""
        async with self._lock:
            await self._conn.execute(
                """
                UPDATE positions SET current_price = ?, pnl_percent = ?
                WHERE asset_id = ? AND status = 'open'
                """,
                (current_price, pnl_percent, asset_id),
            )
            await self._conn.commit()

    async def get_open_position(self, asset_id: str) -> Optional[Position]:
        row = await self._fetchone(
            "SELECT * FROM positions WHERE asset_id = ? AND status = 'open'",
            (asset_id,),
        )
        return Position.from_row(row) if row else None

    async def get_open_positions(self) -> List[Position]:
        rows = await self._fetchall(
            "SELECT * FROM positions WHERE status = 'open' ORDER BY created_at"
        )
        return [Position.from_row(r) for r in rows]

    async def count_open_positions(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS n FROM positions WHERE status = 'open'")
        return row["n"] if row else 0

    async def get_all_positions(self) -> List[Position]:
        rows = await self._fetchall("SELECT * FROM positions ORDER BY created_at DESC")
        return [Position.from_row(r) for r in rows]

    # ========== Daily Stats ==========

    async def accumulate_daily_stats(
        self,
        trades: int = 0,
        wins: int = 0,
        losses: int = 0,
        pnl_sol: float = 0.0,
        volume_sol: float = 0.0,
        day: Optional[str] = None,
    ) -> None:
        """Add deltas to the day's row, creating it if needed."""
        async with self._lock:
            await self._conn.execute(
                """
                INSERT INTO daily_stats (date, trades_count, wins, losses, total_pnl_sol, volume_sol)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    trades_count = trades_count + excluded.trades_count,
                    wins = wins + excluded.wins,
                    losses = losses + excluded.losses,
                    total_pnl_sol = total_pnl_sol + excluded.total_pnl_sol,
                    volume_sol = volume_sol + excluded.volume_sol
                """,
                (day or today_utc(), trades, wins, losses, pnl_sol, volume_sol),
            )
            await self._conn.commit()

    async def get_today_stats(self) -> DailyStat:
        row = await self._fetchone("SELECT * FROM daily_stats WHERE date = ?", (today_utc(),))
        if not row:
            return DailyStat(date=today_utc())
        return _daily_stat_from_row(row)

    async def get_daily_stats(self, limit: int = 7) -> List[DailyStat]:
        rows = await self._fetchall(
            "SELECT * FROM daily_stats ORDER BY date DESC LIMIT ?",
            (limit,),
        )
        return [_daily_stat_from_row(r) for r in rows]

    # ========== Blacklist ==========

    async def is_blacklisted(self, asset_id: str) -> bool:
        row = await self._fetchone(
            "SELECT 1 FROM token_blacklist WHERE asset_id = ?",
            (asset_id,),
        )
        return row is not None

    async def add_to_blacklist(self, asset_id: str, reason: str) -> None:
        """Record an asset permanently. The first reason recorded wins."""
        async with self._lock:
            await self._conn.execute(
                "INSERT OR IGNORE INTO token_blacklist (asset_id, reason, created_at) VALUES (?, ?, ?)",
                (asset_id, reason, utcnow().isoformat()),
            )
            await self._conn.commit()


def _daily_stat_from_row(row: Any) -> DailyStat:
    return DailyStat(
        date=row["date"],
        trades_count=row["trades_count"],
        wins=row["wins"],
        losses=row["losses"],
        total_pnl_sol=row["total_pnl_sol"],
        volume_sol=row["volume_sol"],
    )
