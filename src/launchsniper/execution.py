"""Order execution pipeline.

Every buy and sell runs the same per-attempt state machine:

    REQUESTED -> QUOTED -> SUBMITTED -> CONFIRMED | FAILED

The pipeline is the only writer of trade and position rows. A pending
trade row is written before anything is submitted, so every attempt that
got as far as a quote leaves exactly one row that ends confirmed or
failed. Positions are only touched after confirmation.

Buys and sells of the same asset are serialized with a per-asset lock.
Buys of different assets share the admission slot reservation, so the
position cap and balance check hold while buys are in flight.
Failures from collaborators never escape: they come back as a
TradeResult with success=False.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Protocol

from .client.jupiter import Quote, Signer
from .config import LAMPORTS_PER_SOL, SOL_MINT, TradingConfig
from .events import EventTypes, TradeEventEmitter
from .logging import get_logger
from .metrics import (
    OPEN_POSITIONS,
    REALIZED_PNL_SOL,
    TRADE_AMOUNT_SOL,
    TRADE_ERRORS_TOTAL,
    TRADES_TOTAL,
)
from .models import ExecutionState, Position, TradeResult, TradeSide, TradeStatus
from .persistence import Database
from .risk.admission import AdmissionController

log = get_logger("execution")


class SwapClient(Protocol):
    async def quote(
        self, input_mint: str, output_mint: str, amount: int, max_slippage_bps: int
    ) -> Quote: ...

    async def submit(self, quote: Quote, signer: Signer) -> str: ...

    async def confirm(self, tx_ref: str) -> None: ...


class TradingWallet(Signer, Protocol):
    async def balance(self) -> float: ...

    async def token_balance(self, asset_id: str) -> int: ...


class KeyedLock:
    """One asyncio.Lock per key, created on first use."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield


def _error_message(error: Exception) -> str:
    return str(error) or type(error).__name__


class OrderExecutionPipeline:
    """Quote, submit and confirm swaps and keep the ledger consistent."""

    def __init__(
        self,
        config: TradingConfig,
        db: Database,
        swap: SwapClient,
        wallet: TradingWallet,
        admission: AdmissionController,
        events: Optional[TradeEventEmitter] = None,
    ):
        self.config = config
        self.db = db
        self.swap = swap
        self.wallet = wallet
        self.admission = admission
        self.events = events or TradeEventEmitter()
        self.locks = KeyedLock()
        self._log = log

    @property
    def _token_scale(self) -> int:
        return 10 ** self.config.token_decimals

    # ========== Buy ==========

    async def buy(
        self,
        asset_id: str,
        reason: str,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> TradeResult:
        """Buy trade_amount_sol worth of an asset."""
        async with self.locks.hold(asset_id):
            try:
                return await self._buy(asset_id, reason, symbol, name)
            except Exception as e:
                self._log.error("Buy failed unexpectedly", asset_id=asset_id, error=str(e))
                TRADE_ERRORS_TOTAL.labels(side="BUY", stage="internal").inc()
                return TradeResult(
                    success=False,
                    side=TradeSide.BUY,
                    asset_id=asset_id,
                    state=ExecutionState.FAILED,
                    reason=_error_message(e),
                )

    async def _buy(
        self,
        asset_id: str,
        reason: str,
        symbol: Optional[str],
        name: Optional[str],
    ) -> TradeResult:
        result = TradeResult(success=False, side=TradeSide.BUY, asset_id=asset_id)

        async with self.admission.reserve() as decision:
            if not decision.allowed:
                TRADES_TOTAL.labels(side="BUY", status="denied").inc()
                result.reason = decision.reason
                return result
            return await self._execute_buy(result, reason, symbol, name)

    async def _execute_buy(
        self,
        result: TradeResult,
        reason: str,
        symbol: Optional[str],
        name: Optional[str],
    ) -> TradeResult:
        asset_id = result.asset_id
        amount_sol = self.config.trade_amount_sol
        result.sol_amount = amount_sol
        self._log.info(
            "Buying token",
            asset_id=asset_id,
            symbol=symbol,
            amount_sol=amount_sol,
            reason=reason,
        )

        try:
            quote = await self.swap.quote(
                SOL_MINT,
                asset_id,
                self.config.trade_amount_lamports,
                self.config.max_slippage_bps,
            )
        except Exception as e:
            message = f"Quote failed: {_error_message(e)}"
            result.trade_id = await self.db.insert_trade(
                asset_id,
                TradeSide.BUY,
                amount_sol,
                status=TradeStatus.FAILED,
                reason=message,
                symbol=symbol,
                name=name,
            )
            return await self._fail(result, "quote", message)

        result.state = ExecutionState.QUOTED
        result.token_amount = quote.out_amount / self._token_scale
        result.price = amount_sol / result.token_amount if result.token_amount > 0 else 0.0

        result.trade_id = await self.db.insert_trade(
            asset_id,
            TradeSide.BUY,
            amount_sol,
            token_amount=result.token_amount,
            price=result.price,
            reason=reason,
            symbol=symbol,
            name=name,
        )
        await self.events.emit(EventTypes.TRADE_CREATED, {
            "trade_id": result.trade_id,
            "asset_id": asset_id,
            "symbol": symbol,
            "side": TradeSide.BUY.value,
            "sol_amount": amount_sol,
            "status": TradeStatus.PENDING.value,
        })

        if not await self._submit_and_confirm(quote, result):
            return result

        await self.db.mark_trade_confirmed(result.trade_id, result.tx_ref)
        await self.db.upsert_open_position(
            asset_id,
            entry_price=result.price,
            amount_tokens=result.token_amount,
            amount_sol_spent=amount_sol,
            entry_reason=reason,
            symbol=symbol,
            name=name,
        )
        await self.db.accumulate_daily_stats(trades=1, volume_sol=amount_sol)

        result.success = True
        TRADES_TOTAL.labels(side="BUY", status="confirmed").inc()
        TRADE_AMOUNT_SOL.labels(side="BUY").observe(amount_sol)
        OPEN_POSITIONS.set(await self.db.count_open_positions())

        await self._emit_confirmed(result)
        position = await self.db.get_open_position(asset_id)
        if position is not None:
            await self.events.emit(EventTypes.POSITION_OPENED, position.to_dict())

        self._log.info(
            "Buy confirmed",
            asset_id=asset_id,
            symbol=symbol,
            tx_ref=result.tx_ref,
            tokens=result.token_amount,
            price=result.price,
        )
        return result

    # ========== Sell ==========

    async def sell(self, asset_id: str, reason: str) -> TradeResult:
        """Sell the full held balance of an asset and close its position."""
        async with self.locks.hold(asset_id):
            try:
                return await self._sell(asset_id, reason)
            except Exception as e:
                self._log.error("Sell failed unexpectedly", asset_id=asset_id, error=str(e))
                TRADE_ERRORS_TOTAL.labels(side="SELL", stage="internal").inc()
                return TradeResult(
                    success=False,
                    side=TradeSide.SELL,
                    asset_id=asset_id,
                    state=ExecutionState.FAILED,
                    reason=_error_message(e),
                )

    async def _sell(self, asset_id: str, reason: str) -> TradeResult:
        result = TradeResult(success=False, side=TradeSide.SELL, asset_id=asset_id)

        position = await self.db.get_open_position(asset_id)
        if position is None:
            result.reason = "No open position"
            return result

        try:
            raw_balance = await self.wallet.token_balance(asset_id)
        except Exception as e:
            result.state = ExecutionState.FAILED
            result.reason = f"Token balance unavailable: {_error_message(e)}"
            TRADE_ERRORS_TOTAL.labels(side="SELL", stage="balance").inc()
            self._log.error("Sell aborted", asset_id=asset_id, reason=result.reason)
            return result

        if raw_balance <= 0:
            return await self._close_worthless(position, reason)

        self._log.info(
            "Selling token",
            asset_id=asset_id,
            symbol=position.symbol,
            raw_balance=raw_balance,
            reason=reason,
        )
        result.token_amount = raw_balance / self._token_scale

        try:
            quote = await self.swap.quote(
                asset_id,
                SOL_MINT,
                raw_balance,
                self.config.max_slippage_bps,
            )
        except Exception as e:
            message = f"Quote failed: {_error_message(e)}"
            result.trade_id = await self.db.insert_trade(
                asset_id,
                TradeSide.SELL,
                0.0,
                token_amount=result.token_amount,
                status=TradeStatus.FAILED,
                reason=message,
                symbol=position.symbol,
                name=position.name,
            )
            return await self._fail(result, "quote", message)

        result.state = ExecutionState.QUOTED
        received = quote.out_amount / LAMPORTS_PER_SOL
        result.sol_amount = received
        result.price = received / result.token_amount

        result.trade_id = await self.db.insert_trade(
            asset_id,
            TradeSide.SELL,
            received,
            token_amount=result.token_amount,
            price=result.price,
            reason=reason,
            symbol=position.symbol,
            name=position.name,
        )
        await self.events.emit(EventTypes.TRADE_CREATED, {
            "trade_id": result.trade_id,
            "asset_id": asset_id,
            "symbol": position.symbol,
            "side": TradeSide.SELL.value,
            "sol_amount": received,
            "status": TradeStatus.PENDING.value,
        })

        if not await self._submit_and_confirm(quote, result):
            return result

        spent = position.amount_sol_spent
        pnl_sol = received - spent
        pnl_percent = (pnl_sol / spent * 100) if spent > 0 else 0.0

        await self.db.mark_trade_confirmed(result.trade_id, result.tx_ref)
        await self.db.close_position(asset_id, reason, pnl_percent)
        await self.db.accumulate_daily_stats(
            trades=1,
            wins=1 if pnl_sol > 0 else 0,
            losses=1 if pnl_sol < 0 else 0,
            pnl_sol=pnl_sol,
            volume_sol=received,
        )

        if pnl_sol < 0:
            self.admission.record_loss(abs(pnl_sol))
        else:
            self.admission.record_win(pnl_sol)

        result.success = True
        result.pnl_sol = pnl_sol
        result.pnl_percent = pnl_percent
        result.position_closed = True

        TRADES_TOTAL.labels(side="SELL", status="confirmed").inc()
        TRADE_AMOUNT_SOL.labels(side="SELL").observe(received)
        REALIZED_PNL_SOL.observe(pnl_sol)
        OPEN_POSITIONS.set(await self.db.count_open_positions())

        await self._emit_confirmed(result)
        await self._emit_closed(asset_id, reason, pnl_sol, pnl_percent)

        self._log.info(
            "Sell confirmed",
            asset_id=asset_id,
            symbol=position.symbol,
            tx_ref=result.tx_ref,
            received_sol=round(received, 6),
            pnl_sol=round(pnl_sol, 6),
            pnl_percent=round(pnl_percent, 2),
            reason=reason,
        )
        return result

    async def force_close(self, asset_id: str, reason: str) -> TradeResult:
        """Close a position as a total loss without attempting a swap."""
        async with self.locks.hold(asset_id):
            position = await self.db.get_open_position(asset_id)
            if position is None:
                return TradeResult(
                    success=False,
                    side=TradeSide.SELL,
                    asset_id=asset_id,
                    reason="No open position",
                )
            return await self._close_worthless(position, reason)

    async def _close_worthless(self, position: Position, reason: str) -> TradeResult:
        spent = position.amount_sol_spent
        exit_reason = f"{reason} (no tokens held)"

        await self.db.close_position(position.asset_id, exit_reason, -100.0)
        await self.db.accumulate_daily_stats(losses=1, pnl_sol=-spent)
        self.admission.record_loss(spent)

        REALIZED_PNL_SOL.observe(-spent)
        OPEN_POSITIONS.set(await self.db.count_open_positions())
        await self._emit_closed(position.asset_id, exit_reason, -spent, -100.0)

        self._log.warning(
            "Position closed as total loss",
            asset_id=position.asset_id,
            symbol=position.symbol,
            spent_sol=spent,
            reason=reason,
        )
        return TradeResult(
            success=False,
            side=TradeSide.SELL,
            asset_id=position.asset_id,
            reason="No tokens to sell",
            pnl_sol=-spent,
            pnl_percent=-100.0,
            position_closed=True,
        )

    # ========== Valuation ==========

    async def mark_position(self, position: Position, current_price: float) -> float:
        """Record a mark-to-market price and return the resulting PnL percent."""
        if position.entry_price > 0:
            pnl_percent = (current_price - position.entry_price) / position.entry_price * 100
        else:
            pnl_percent = 0.0
        await self.db.update_position_price(position.asset_id, current_price, pnl_percent)
        position.current_price = current_price
        position.pnl_percent = pnl_percent
        return pnl_percent

    # ========== Helpers ==========

    async def _submit_and_confirm(self, quote: Quote, result: TradeResult) -> bool:
        """Submit and wait for settlement. Marks the trade failed on error."""
        stage = "submit"
        try:
            result.tx_ref = await self.swap.submit(quote, self.wallet)
            result.state = ExecutionState.SUBMITTED
            stage = "confirm"
            await self.swap.confirm(result.tx_ref)
        except Exception as e:
            message = f"{stage.capitalize()} failed: {_error_message(e)}"
            await self.db.mark_trade_failed(result.trade_id, message, result.tx_ref)
            await self.events.emit(EventTypes.TRADE_UPDATED, {
                "trade_id": result.trade_id,
                "asset_id": result.asset_id,
                "status": TradeStatus.FAILED.value,
                "reason": message,
            })
            await self._fail(result, stage, message)
            return False

        result.state = ExecutionState.CONFIRMED
        return True

    async def _fail(self, result: TradeResult, stage: str, message: str) -> TradeResult:
        result.state = ExecutionState.FAILED
        result.reason = message
        TRADES_TOTAL.labels(side=result.side.value, status="failed").inc()
        TRADE_ERRORS_TOTAL.labels(side=result.side.value, stage=stage).inc()
        self._log.error(
            "Trade failed",
            side=result.side.value,
            asset_id=result.asset_id,
            stage=stage,
            trade_id=result.trade_id,
            tx_ref=result.tx_ref,
            error=message,
        )
        return result

    async def _emit_confirmed(self, result: TradeResult) -> None:
        await self.events.emit(EventTypes.TRADE_UPDATED, {
            "trade_id": result.trade_id,
            "asset_id": result.asset_id,
            "status": TradeStatus.CONFIRMED.value,
            "tx_ref": result.tx_ref,
        })
        await self.events.emit(
            EventTypes.STATS_UPDATED, (await self.db.get_today_stats()).to_dict()
        )

    async def _emit_closed(
        self, asset_id: str, reason: str, pnl_sol: float, pnl_percent: float
    ) -> None:
        await self.events.emit(EventTypes.POSITION_CLOSED, {
            "asset_id": asset_id,
            "exit_reason": reason,
            "pnl_sol": pnl_sol,
            "pnl_percent": pnl_percent,
        })
