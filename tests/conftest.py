"""Shared pytest fixtures for launch sniper tests.

Provides:
- Trading configuration with test-friendly defaults
- A real aiosqlite ledger in a temp directory
- Mock wallet and swap clients
- Fully wired admission controller, scorer and execution pipeline
"""

import pytest

from launchsniper.config import TradingConfig
from launchsniper.events import TradeEventEmitter
from launchsniper.execution import OrderExecutionPipeline
from launchsniper.persistence import Database
from launchsniper.risk import AdmissionController, RiskScorer
from tests.fixtures.mock_swap import MockSwapClient
from tests.fixtures.mock_wallet import MockWallet


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def trading_config() -> TradingConfig:
    """Default trading config."""
    return TradingConfig(
        trade_amount_sol=0.1,
        max_positions=10,
        max_daily_loss_sol=0.3,
        buy_cooldown_seconds=120,
        monitor_interval_seconds=0.01,
    )


# =============================================================================
# Ledger
# =============================================================================

@pytest.fixture
async def db(tmp_path):
    """Real SQLite ledger, fresh per test."""
    database = Database(tmp_path / "trades.db")
    await database.connect()
    yield database
    await database.close()


# =============================================================================
# External collaborators
# =============================================================================

@pytest.fixture
def mock_wallet() -> MockWallet:
    wallet = MockWallet(balance_sol=10.0)
    yield wallet
    wallet.reset()


@pytest.fixture
def mock_swap(mock_wallet) -> MockSwapClient:
    return MockSwapClient(wallet=mock_wallet)


# =============================================================================
# Wired components
# =============================================================================

@pytest.fixture
def admission(trading_config, mock_wallet, db) -> AdmissionController:
    return AdmissionController(trading_config, mock_wallet, db)


@pytest.fixture
def scorer(trading_config, db) -> RiskScorer:
    return RiskScorer(trading_config, db)


@pytest.fixture
def events() -> TradeEventEmitter:
    return TradeEventEmitter()


@pytest.fixture
def pipeline(trading_config, db, mock_swap, mock_wallet, admission, events) -> OrderExecutionPipeline:
    return OrderExecutionPipeline(trading_config, db, mock_swap, mock_wallet, admission, events)
