"""Periodic re-evaluation of open positions against exit rules.

Valuation uses a single source of truth: a sell-direction quote for the
raw token balance currently held. The same balance read decides the
zero-balance trigger, so the monitor never mixes balance presence with
a separately sourced price.

Triggers are evaluated in priority order, first match wins:
    1. balance is zero        -> force close as a total loss
    2. held longer than max   -> sell "timeout"
    3. pnl <= -stop_loss      -> sell "stop loss"
    4. pnl >= take_profit     -> sell "take profit"
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from .config import LAMPORTS_PER_SOL, SOL_MINT, TradingConfig
from .execution import OrderExecutionPipeline
from .logging import get_logger
from .metrics import EXITS_TRIGGERED_TOTAL
from .models import Position, TradeResult
from .persistence import Database

log = get_logger("exit_monitor")


class ExitMonitor:
    """Timer-driven exit checks, independent of ingestion."""

    def __init__(
        self,
        config: TradingConfig,
        db: Database,
        pipeline: OrderExecutionPipeline,
    ):
        self.config = config
        self.db = db
        self.pipeline = pipeline
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._log = log

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        self._log.info(
            "Exit monitor started",
            interval_seconds=self.config.monitor_interval_seconds,
            stop_loss_percent=self.config.stop_loss_percent,
            take_profit_percent=self.config.take_profit_percent,
            max_hold_minutes=self.config.max_hold_minutes,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._log.info("Exit monitor stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.check_positions()
            except Exception as e:
                self._log.error("Exit check failed", error=str(e))
            await asyncio.sleep(self.config.monitor_interval_seconds)

    async def check_positions(self) -> List[Optional[TradeResult]]:
        """Evaluate every open position once, concurrently.

        Returns one entry per position: the exit result, or None when no
        trigger fired or the position could not be evaluated.
        """
        positions = await self.db.get_open_positions()
        if not positions:
            return []

        outcomes = await asyncio.gather(
            *(self.check_position(p) for p in positions),
            return_exceptions=True,
        )

        results: List[Optional[TradeResult]] = []
        for position, outcome in zip(positions, outcomes):
            if isinstance(outcome, BaseException):
                self._log.error(
                    "Position check failed",
                    asset_id=position.asset_id,
                    symbol=position.label,
                    error=str(outcome),
                )
                results.append(None)
            else:
                results.append(outcome)
        return results

    async def check_position(self, position: Position) -> Optional[TradeResult]:
        if self.pipeline.locks.locked(position.asset_id):
            # A buy or sell is already running for this asset
            return None

        raw_balance = await self.pipeline.wallet.token_balance(position.asset_id)
        if raw_balance <= 0:
            return await self._exit(position, "zero_balance", "Zero balance")

        if self.held_too_long(position):
            # Age does not depend on a price
            return await self._exit(position, "timeout", "Timeout")

        quote = await self.pipeline.swap.quote(
            position.asset_id,
            SOL_MINT,
            raw_balance,
            self.config.max_slippage_bps,
        )
        tokens = raw_balance / 10 ** self.config.token_decimals
        current_price = (quote.out_amount / LAMPORTS_PER_SOL) / tokens
        pnl_percent = await self.pipeline.mark_position(position, current_price)

        self._log.debug(
            "Position valued",
            asset_id=position.asset_id,
            symbol=position.label,
            price=current_price,
            pnl_percent=round(pnl_percent, 2),
        )

        trigger = self.exit_trigger(position, pnl_percent)
        if trigger is None:
            return None
        return await self._exit(position, *trigger)

    def held_too_long(self, position: Position, now: Optional[datetime] = None) -> bool:
        if position.created_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        created_at = position.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return now - created_at > timedelta(minutes=self.config.max_hold_minutes)

    def exit_trigger(
        self,
        position: Position,
        pnl_percent: float,
        now: Optional[datetime] = None,
    ) -> Optional[Tuple[str, str]]:
        """Return (trigger, reason) for the first rule that fires, else None."""
        if self.held_too_long(position, now):
            return "timeout", "Timeout"

        if pnl_percent <= -self.config.stop_loss_percent:
            return "stop_loss", "Stop loss"

        if pnl_percent >= self.config.take_profit_percent:
            return "take_profit", "Take profit"

        return None

    async def _exit(self, position: Position, trigger: str, reason: str) -> TradeResult:
        EXITS_TRIGGERED_TOTAL.labels(trigger=trigger).inc()
        self._log.info(
            "Exit triggered",
            asset_id=position.asset_id,
            symbol=position.label,
            trigger=trigger,
            pnl_percent=round(position.pnl_percent, 2),
        )
        if trigger == "zero_balance":
            return await self.pipeline.force_close(position.asset_id, reason)
        return await self.pipeline.sell(position.asset_id, reason)
