"""Agent orchestration tests with the wallet and swap clients mocked out."""

from unittest.mock import AsyncMock, patch

import pytest

from launchsniper.agent import SniperAgent
from launchsniper.client.paper import PaperSwapClient
from launchsniper.config import AppConfig, NetworkSettings, TradingConfig
from launchsniper.persistence import Database
from launchsniper.retry import ConfigurationError
from tests.fixtures import ASSET_A, ASSET_B
from tests.fixtures.mock_swap import MockSwapClient
from tests.fixtures.mock_wallet import MockWallet


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        network=NetworkSettings(private_key="unused", database_path=tmp_path / "agent.db"),
        trading=TradingConfig(trade_amount_sol=0.1),
    )


@pytest.fixture
async def agent(app_config):
    wallet = MockWallet()
    with patch("launchsniper.agent.SolanaWallet.from_settings", return_value=wallet):
        sniper = SniperAgent(app_config)
        await sniper.open()

    swap = MockSwapClient(wallet=wallet)
    sniper.swap = swap
    sniper.pipeline.swap = swap
    sniper.market_data.info = AsyncMock(return_value=None)
    yield sniper
    await sniper.close()


class TestAgentLifecycle:

    @pytest.mark.asyncio
    async def test_missing_signer_is_fatal(self, tmp_path):
        config = AppConfig(
            network=NetworkSettings(private_key="", database_path=tmp_path / "x.db"),
            trading=TradingConfig(),
        )
        sniper = SniperAgent(config)

        with pytest.raises(ConfigurationError):
            await sniper.open()

    @pytest.mark.asyncio
    async def test_dry_run_uses_paper_swaps(self, app_config):
        app_config.trading.dry_run = True
        with patch("launchsniper.agent.SolanaWallet.from_settings", return_value=MockWallet()):
            sniper = SniperAgent(app_config)
            await sniper.open()

        assert isinstance(sniper.swap, PaperSwapClient)
        await sniper.close()

    @pytest.mark.asyncio
    async def test_dry_run_restart_restores_paper_holdings(self, app_config):
        app_config.trading.dry_run = True
        ledger = Database(app_config.network.database_path)
        await ledger.connect()
        await ledger.upsert_open_position(ASSET_A, 0.0001, 1000.0, 0.1)
        await ledger.close()

        with patch("launchsniper.agent.SolanaWallet.from_settings", return_value=MockWallet()):
            sniper = SniperAgent(app_config)
            await sniper.open()

        assert await sniper.wallet.token_balance(ASSET_A) == 1_000_000_000
        assert await sniper.wallet.balance() == pytest.approx(9.9)
        await sniper.close()


class TestOperatorOperations:

    @pytest.mark.asyncio
    async def test_manual_buy_requires_passing_evaluation(self, agent):
        # No launchpad flags or liquidity for a manual lookup
        result = await agent.buy(ASSET_A)

        assert result.success is False
        assert result.reason == "Insufficient liquidity"
        assert await agent.db.get_trades_for_asset(ASSET_A) == []

    @pytest.mark.asyncio
    async def test_evaluate_reports_checks(self, agent):
        report = await agent.evaluate(ASSET_A)

        assert report["candidate"]["asset_id"] == ASSET_A
        assert report["evaluation"]["passed"] is False
        assert len(report["evaluation"]["checks"]) == 4

    @pytest.mark.asyncio
    async def test_sell_all_closes_everything(self, agent):
        await agent.pipeline.buy(ASSET_A, "entry")
        await agent.pipeline.buy(ASSET_B, "entry")

        results = await agent.sell_all(pause_seconds=0)

        assert [r.success for r in results] == [True, True]
        assert await agent.db.count_open_positions() == 0

    @pytest.mark.asyncio
    async def test_status_snapshot(self, agent):
        await agent.pipeline.buy(ASSET_A, "entry")

        status = await agent.get_status()

        assert status["wallet"]["balance_sol"] == 10.0
        assert len(status["positions"]) == 1
        assert status["recent_trades"][0]["status"] == "confirmed"
        assert status["daily_stats"][0]["trades_count"] == 1
        assert status["risk"]["daily_loss"] == 0.0
        assert status["ingestion"]["running"] is False
        assert status["config"]["trade_amount_sol"] == 0.1
