"""Agent orchestrator: wires the ledger, clients, risk controls and loops."""

import asyncio
import signal
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from prometheus_client import start_http_server

from . import __version__
from .client.feed import LaunchFeed
from .client.jupiter import JupiterClient
from .client.market_data import DexScreenerClient
from .client.paper import PaperSwapClient, PaperWallet
from .client.wallet import SolanaWallet
from .config import AppConfig
from .events import TradeEventEmitter
from .execution import OrderExecutionPipeline
from .exit_monitor import ExitMonitor
from .ingestion import EventIngestor
from .logging import get_logger
from .metrics import OPEN_POSITIONS, init_metrics
from .models import TradeResult, TradeSide
from .persistence import Database
from .risk import AdmissionController, RiskScorer

log = get_logger("agent")


class SniperAgent:
    """Main orchestrator for the launch sniper."""

    def __init__(self, config: AppConfig):
        """Initialize the agent.

        Args:
            config: Application configuration
        """
        self.config = config
        self._running = False
        self._opened = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in open)
        self.db = Database(config.network.database_path)
        self.events = TradeEventEmitter()
        self.wallet: Optional[SolanaWallet] = None
        self.swap = None
        self.market_data: Optional[DexScreenerClient] = None
        self.admission: Optional[AdmissionController] = None
        self.scorer: Optional[RiskScorer] = None
        self.pipeline: Optional[OrderExecutionPipeline] = None
        self.ingestor: Optional[EventIngestor] = None
        self.monitor: Optional[ExitMonitor] = None
        self.feed: Optional[LaunchFeed] = None
        self._feed_task: Optional[asyncio.Task] = None

    async def open(self) -> None:
        """Connect the ledger and build all components.

        Raises:
            ConfigurationError: No usable signer is configured.
        """
        if self._opened:
            return

        network = self.config.network
        trading = self.config.trading

        # Fatal before anything else is touched
        wallet = SolanaWallet.from_settings(network)
        await self.db.connect()

        jupiter = JupiterClient(
            base_url=network.jupiter_api_url,
            confirmer=wallet,
            timeout=network.request_timeout_seconds,
            http_proxy=network.http_proxy,
        )
        if trading.dry_run:
            self.wallet = PaperWallet(wallet)
            self.wallet.restore(await self.db.get_open_positions(), trading.token_decimals)
            self.swap = PaperSwapClient(jupiter, self.wallet)
        else:
            self.wallet = wallet
            self.swap = jupiter

        self.market_data = DexScreenerClient(
            base_url=network.dexscreener_api_url,
            timeout=network.request_timeout_seconds,
            http_proxy=network.http_proxy,
        )
        self.admission = AdmissionController(trading, self.wallet, self.db)
        self.scorer = RiskScorer(trading, self.db)
        self.pipeline = OrderExecutionPipeline(
            trading, self.db, self.swap, self.wallet, self.admission, self.events
        )
        self.ingestor = EventIngestor(
            trading, self.db, self.scorer, self.pipeline, self.market_data
        )
        self.monitor = ExitMonitor(trading, self.db, self.pipeline)
        self.feed = LaunchFeed(
            ws_url=network.feed_url,
            max_reconnect_attempts=trading.feed_max_reconnect_attempts,
            reconnect_delay=trading.feed_reconnect_delay_seconds,
        )
        self.feed.on_launch(self.ingestor.on_event)

        OPEN_POSITIONS.set(await self.db.count_open_positions())
        self._opened = True
        log.info("All components initialized")

    async def close(self) -> None:
        """Release clients and the ledger connection."""
        if not self._opened:
            return
        if self.swap is not None:
            await self.swap.close()
        if self.market_data is not None:
            await self.market_data.close()
        if self.wallet is not None:
            await self.wallet.close()
        await self.db.close()
        self._opened = False

    async def start(self) -> None:
        """Run ingestion and the exit monitor until shutdown."""
        await self.open()
        self._running = True

        init_metrics(version=__version__, dry_run=self.config.trading.dry_run)
        if self.config.network.metrics_port:
            start_http_server(self.config.network.metrics_port)
            log.info("Metrics server started", port=self.config.network.metrics_port)

        self._register_signals()
        await self._log_startup_info()

        try:
            self.monitor.start()
            self._feed_task = asyncio.create_task(self.feed.run())
            self._feed_task.add_done_callback(self._on_feed_done)
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def _on_feed_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("Feed task crashed, ingestion stopped", error=str(error))
        elif self.feed.exhausted:
            log.error("Ingestion stopped, exit monitor still running")

    async def stop(self) -> None:
        """Stop the agent gracefully."""
        if not self._running:
            return

        log.info("Stopping Launch Sniper")
        self._running = False
        self._shutdown_event.set()

        if self.feed:
            await self.feed.disconnect()
        if self._feed_task:
            self._feed_task.cancel()
            try:
                await self._feed_task
            except asyncio.CancelledError:
                pass
            self._feed_task = None

        if self.monitor:
            await self.monitor.stop()
        if self.ingestor:
            await self.ingestor.drain()

        await self.close()
        log.info("Launch Sniper stopped")

    def _register_signals(self) -> None:
        """Register signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.create_task(self._handle_signal(s)),
            )

    async def _handle_signal(self, sig: signal.Signals) -> None:
        log.info("Received shutdown signal", signal=sig.name)
        self._shutdown_event.set()

    async def _log_startup_info(self) -> None:
        trading = self.config.trading

        try:
            balance = await self.wallet.balance()
        except Exception as e:
            balance = None
            log.warning("Could not read wallet balance", error=str(e))

        log.info(
            "Wallet",
            public_key=self.wallet.public_key,
            balance_sol=balance,
        )
        log.info(
            "Trading Configuration",
            trade_amount=f"{trading.trade_amount_sol} SOL",
            max_positions=trading.max_positions,
            stop_loss=f"{trading.stop_loss_percent}%",
            take_profit=f"{trading.take_profit_percent}%",
            max_hold=f"{trading.max_hold_minutes} min",
            max_daily_loss=f"{trading.max_daily_loss_sol} SOL",
            slippage_bps=trading.max_slippage_bps,
        )
        if trading.dry_run:
            log.warning("DRY RUN MODE - No real swaps will be executed")

    # ========== Operator operations ==========

    async def evaluate(self, asset_id: str) -> Dict[str, Any]:
        """Enrich and score an asset without trading it."""
        candidate = await self.ingestor.enrich(asset_id)
        evaluation = await self.scorer.evaluate(candidate)
        return {
            "candidate": asdict(candidate),
            "evaluation": {
                "passed": evaluation.passed,
                "score": evaluation.score,
                "reason": evaluation.reason,
                "checks": [asdict(c) for c in evaluation.checks],
            },
        }

    async def buy(self, asset_id: str, reason: str = "Manual test buy") -> TradeResult:
        """Evaluate then buy an asset, bypassing the feed cooldown."""
        candidate = await self.ingestor.enrich(asset_id)
        evaluation = await self.scorer.evaluate(candidate)
        if not evaluation.passed:
            log.info("Manual buy rejected", asset_id=asset_id, reason=evaluation.reason)
            return TradeResult(
                success=False,
                side=TradeSide.BUY,
                asset_id=asset_id,
                reason=evaluation.reason,
            )
        return await self.pipeline.buy(
            asset_id, reason, symbol=candidate.symbol, name=candidate.name
        )

    async def sell(self, asset_id: str, reason: str = "Manual sell") -> TradeResult:
        return await self.pipeline.sell(asset_id, reason)

    async def sell_all(
        self,
        reason: str = "Manual sell all",
        pause_seconds: float = 2.0,
    ) -> List[TradeResult]:
        """Sell every open position one at a time."""
        positions = await self.db.get_open_positions()
        log.info("Selling all open positions", count=len(positions))

        results = []
        for i, position in enumerate(positions):
            if i and pause_seconds:
                await asyncio.sleep(pause_seconds)
            result = await self.pipeline.sell(position.asset_id, reason)
            log.info(
                "Sell-all result",
                asset_id=position.asset_id,
                symbol=position.label,
                success=result.success,
                reason=result.reason,
                pnl_percent=result.pnl_percent,
            )
            results.append(result)
        return results

    async def get_status(self) -> Dict[str, Any]:
        """Snapshot for operator surfaces."""
        try:
            balance = await self.wallet.balance()
        except Exception as e:
            log.warning("Could not read wallet balance", error=str(e))
            balance = None

        positions = await self.db.get_open_positions()
        trades = await self.db.get_recent_trades(20)
        stats = await self.db.get_daily_stats(7)
        feed_connected = self.feed.is_connected if self.feed else False

        return {
            "version": __version__,
            "wallet": {"public_key": self.wallet.public_key, "balance_sol": balance},
            "positions": [p.to_dict() for p in positions],
            "recent_trades": [t.to_dict() for t in trades],
            "daily_stats": [s.to_dict() for s in stats],
            "risk": self.admission.get_status(),
            "ingestion": self.ingestor.get_status(
                feed_connected=feed_connected,
                running=bool(self.feed and self.feed.is_running),
            ),
            "config": asdict(self.config.trading),
        }
