"""Exit monitor tests: trigger priority, boundaries and failure isolation."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import REGISTRY

from launchsniper.exit_monitor import ExitMonitor
from launchsniper.models import Position, PositionStatus, TradeSide, TradeStatus
from launchsniper.retry import QuoteError
from tests.fixtures import ASSET_A, ASSET_B, ASSET_C


@pytest.fixture
def monitor(trading_config, db, pipeline) -> ExitMonitor:
    return ExitMonitor(trading_config, db, pipeline)


def make_position(created_minutes_ago: float = 1.0, entry_price: float = 1.0) -> Position:
    return Position(
        id=1,
        asset_id=ASSET_A,
        entry_price=entry_price,
        amount_tokens=1.0,
        amount_sol_spent=1.0,
        status=PositionStatus.OPEN,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=created_minutes_ago),
    )


def pnl_at(price: float, entry: float = 1.0) -> float:
    return (price - entry) / entry * 100


def timeout_exits() -> float:
    return REGISTRY.get_sample_value(
        "launchsniper_exits_triggered_total", {"trigger": "timeout"}
    ) or 0.0


class TestExitTriggers:
    """Priority order, first match wins."""

    def test_stop_loss_boundary_is_inclusive(self, monitor):
        position = make_position()

        assert monitor.exit_trigger(position, pnl_at(0.50)) == ("stop_loss", "Stop loss")
        assert monitor.exit_trigger(position, pnl_at(0.49)) == ("stop_loss", "Stop loss")
        assert monitor.exit_trigger(position, pnl_at(0.51)) is None

    def test_take_profit_boundary_is_inclusive(self, monitor):
        position = make_position()

        assert monitor.exit_trigger(position, pnl_at(2.0)) == ("take_profit", "Take profit")
        assert monitor.exit_trigger(position, pnl_at(1.99)) is None

    def test_timeout_beats_price_triggers(self, monitor, trading_config):
        position = make_position(created_minutes_ago=trading_config.max_hold_minutes + 1)

        assert monitor.exit_trigger(position, pnl_at(0.2)) == ("timeout", "Timeout")
        assert monitor.exit_trigger(position, pnl_at(1.0)) == ("timeout", "Timeout")

    def test_naive_timestamps_treated_as_utc(self, monitor, trading_config):
        position = make_position()
        position.created_at = (
            datetime.now(timezone.utc) - timedelta(minutes=trading_config.max_hold_minutes + 5)
        ).replace(tzinfo=None)

        assert monitor.exit_trigger(position, 0.0) == ("timeout", "Timeout")


class TestCheckPositions:
    """End-to-end monitor passes against the ledger."""

    @pytest.mark.asyncio
    async def test_no_positions(self, monitor):
        assert await monitor.check_positions() == []

    @pytest.mark.asyncio
    async def test_marks_price_without_exiting(self, monitor, pipeline, db, mock_swap):
        mock_swap.set_price(ASSET_A, 0.0001)
        await pipeline.buy(ASSET_A, "entry")
        mock_swap.set_price(ASSET_A, 0.00012)

        results = await monitor.check_positions()

        assert results == [None]
        position = await db.get_open_position(ASSET_A)
        assert position.current_price == pytest.approx(0.00012)
        assert position.pnl_percent == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_stop_loss_sells(self, monitor, pipeline, db, mock_swap, admission):
        mock_swap.set_price(ASSET_A, 0.0001)
        await pipeline.buy(ASSET_A, "entry")
        mock_swap.set_price(ASSET_A, 0.00005)

        results = await monitor.check_positions()

        assert results[0].success is True
        assert await db.get_open_position(ASSET_A) is None
        closed = (await db.get_all_positions())[0]
        assert closed.exit_reason == "Stop loss"
        assert closed.pnl_percent == pytest.approx(-50.0)
        assert admission.daily_loss == pytest.approx(0.05)

    @pytest.mark.asyncio
    async def test_zero_balance_force_closes(self, monitor, pipeline, db, mock_swap, mock_wallet, admission):
        await pipeline.buy(ASSET_A, "entry")
        mock_wallet.token_balances[ASSET_A] = 0
        submits_before = len(mock_swap.submitted)

        results = await monitor.check_positions()

        assert results[0].position_closed is True
        assert results[0].pnl_percent == -100.0
        assert len(mock_swap.submitted) == submits_before
        assert admission.daily_loss == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_others(
        self, monitor, pipeline, db, mock_swap, mock_wallet, trading_config
    ):
        for asset_id in (ASSET_A, ASSET_B, ASSET_C):
            mock_swap.set_price(asset_id, 0.0001)
            await pipeline.buy(asset_id, "entry")

        mock_wallet.token_balance_errors[ASSET_A] = RuntimeError("rpc timeout")
        mock_swap.set_price(ASSET_B, 0.00001)
        mock_swap.set_price(ASSET_C, 0.0003)

        results = await monitor.check_positions()

        assert len(results) == 3
        assert await db.get_open_position(ASSET_A) is not None
        assert await db.get_open_position(ASSET_B) is None
        assert await db.get_open_position(ASSET_C) is None

    @pytest.mark.asyncio
    async def test_timeout_attempted_without_sell_route(self, monitor, pipeline, db, mock_swap, trading_config):
        await pipeline.buy(ASSET_A, "entry")
        trading_config.max_hold_minutes = 0
        mock_swap.quote_errors[ASSET_A] = QuoteError("No route found")
        before = timeout_exits()

        results = await monitor.check_positions()

        assert results[0].success is False
        assert results[0].reason.startswith("Quote failed")
        assert timeout_exits() == before + 1
        sells = [t for t in await db.get_trades_for_asset(ASSET_A) if t.side == TradeSide.SELL]
        assert len(sells) == 1
        assert sells[0].status == TradeStatus.FAILED
        assert sells[0].reason.startswith("Quote failed")
        assert await db.get_open_position(ASSET_A) is not None

    @pytest.mark.asyncio
    async def test_skips_asset_with_trade_in_flight(self, monitor, pipeline, db, mock_swap):
        await pipeline.buy(ASSET_A, "entry")
        mock_swap.set_price(ASSET_A, 0.00001)

        async with pipeline.locks.hold(ASSET_A):
            results = await monitor.check_positions()

        assert results == [None]
        assert await db.get_open_position(ASSET_A) is not None


class TestMonitorLoop:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, monitor, pipeline, db, mock_swap):
        mock_swap.set_price(ASSET_A, 0.0001)
        await pipeline.buy(ASSET_A, "entry")
        mock_swap.set_price(ASSET_A, 0.0003)

        monitor.start()
        assert monitor.is_running
        for _ in range(50):
            await asyncio.sleep(0.02)
            if await db.get_open_position(ASSET_A) is None:
                break
        await monitor.stop()

        assert not monitor.is_running
        closed = (await db.get_all_positions())[0]
        assert closed.exit_reason == "Take profit"
