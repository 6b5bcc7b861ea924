"""Configuration management for the Launch Sniper agent."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"


class NetworkSettings(BaseSettings):
    """Wallet, endpoint and process configuration."""

    # Wallet Configuration
    private_key: str = Field(default="", description="Base58 encoded Solana keypair")

    # Network Configuration
    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana JSON-RPC URL"
    )
    rpc_wss: str = Field(
        default="wss://api.mainnet-beta.solana.com",
        description="Solana RPC websocket URL"
    )
    jupiter_api_url: str = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter quote/swap API base URL"
    )
    dexscreener_api_url: str = Field(
        default="https://api.dexscreener.com/latest/dex/tokens",
        description="DexScreener token lookup URL"
    )
    feed_url: str = Field(
        default="wss://pumpportal.fun/api/data",
        description="PumpPortal websocket for new token launches"
    )

    # HTTP Proxy
    http_proxy: Optional[str] = Field(
        default=None,
        description="HTTP proxy URL for outbound API calls"
    )
    request_timeout_seconds: float = Field(default=15.0, description="HTTP request timeout")

    # Storage
    database_path: Path = Field(
        default=Path("data/trades.db"),
        description="SQLite ledger path"
    )

    # Logging / metrics
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Enable JSON structured logging")
    metrics_port: int = Field(default=0, description="Prometheus port (0 = disabled)")

    model_config = {"env_prefix": "SNIPER_"}


@dataclass
class TradingConfig:
    """Trading, risk and monitoring parameters."""

    # Sizing
    trade_amount_sol: float = 0.04
    max_positions: int = 10
    fee_buffer_multiplier: float = 1.10  # Balance must cover trade size plus 10% for fees

    # Exits
    stop_loss_percent: float = 50.0
    take_profit_percent: float = 100.0
    max_hold_minutes: float = 60.0
    monitor_interval_seconds: float = 30.0

    # Execution
    max_slippage_bps: int = 500  # 5%
    token_decimals: int = 6  # Pump.fun mints use 6 decimals

    # Risk
    max_daily_loss_sol: float = 0.3
    min_liquidity_sol: float = 5.0
    min_safety_score: int = 2

    # Ingestion
    buy_cooldown_seconds: float = 120.0
    dedup_capacity: int = 1000
    feed_max_reconnect_attempts: int = 5
    feed_reconnect_delay_seconds: float = 5.0

    # Mode
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> "TradingConfig":
        """Load configuration from environment variables."""
        return cls(
            trade_amount_sol=float(os.getenv("TRADE_AMOUNT_SOL", "0.04")),
            max_positions=int(os.getenv("MAX_POSITIONS", "10")),
            fee_buffer_multiplier=float(os.getenv("FEE_BUFFER_MULTIPLIER", "1.10")),
            stop_loss_percent=float(os.getenv("STOP_LOSS_PERCENT", "50")),
            take_profit_percent=float(os.getenv("TAKE_PROFIT_PERCENT", "100")),
            max_hold_minutes=float(os.getenv("MAX_HOLD_MINUTES", "60")),
            monitor_interval_seconds=float(os.getenv("MONITOR_INTERVAL_SECONDS", "30")),
            max_slippage_bps=int(os.getenv("MAX_SLIPPAGE_BPS", "500")),
            token_decimals=int(os.getenv("TOKEN_DECIMALS", "6")),
            max_daily_loss_sol=float(os.getenv("MAX_DAILY_LOSS_SOL", "0.3")),
            min_liquidity_sol=float(os.getenv("MIN_LIQUIDITY_SOL", "5")),
            min_safety_score=int(os.getenv("MIN_SAFETY_SCORE", "2")),
            buy_cooldown_seconds=float(os.getenv("BUY_COOLDOWN_SECONDS", "120")),
            dedup_capacity=int(os.getenv("DEDUP_CAPACITY", "1000")),
            feed_max_reconnect_attempts=int(os.getenv("FEED_MAX_RECONNECT_ATTEMPTS", "5")),
            feed_reconnect_delay_seconds=float(os.getenv("FEED_RECONNECT_DELAY", "5")),
            dry_run=os.getenv("DRY_RUN", "false").lower() == "true",
        )

    @property
    def trade_amount_lamports(self) -> int:
        """Trade size in lamports."""
        return int(self.trade_amount_sol * LAMPORTS_PER_SOL)


@dataclass
class AppConfig:
    """Main application configuration."""

    network: NetworkSettings
    trading: TradingConfig

    @classmethod
    def load(cls) -> "AppConfig":
        """Load all configuration from environment."""
        from dotenv import load_dotenv
        load_dotenv()

        return cls(
            network=NetworkSettings(),
            trading=TradingConfig.from_env(),
        )


def load_config() -> AppConfig:
    """Convenience function to load configuration."""
    return AppConfig.load()
