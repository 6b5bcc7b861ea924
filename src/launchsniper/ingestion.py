"""Launch event ingestion: dedup, enrichment, scoring and buy dispatch."""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Set

from .client.feed import LaunchEvent
from .client.market_data import DexScreenerClient
from .config import TradingConfig
from .execution import OrderExecutionPipeline
from .logging import get_logger
from .metrics import CANDIDATES_TOTAL
from .models import Evaluation, TokenCandidate, TradeResult
from .persistence import Database
from .risk.scorer import MAX_SCORE, RiskScorer

log = get_logger("ingestion")


class DedupSet:
    """Bounded set of recently seen ids.

    Remembers insertion order. When it grows past capacity the oldest half
    is evicted in one sweep, so membership is approximately FIFO.
    """

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, key: str) -> bool:
        """Mark key as seen. Returns False if it had already been seen."""
        if key in self._seen:
            return False
        self._seen[key] = None
        if len(self._seen) > self.capacity:
            for _ in range(self.capacity // 2):
                self._seen.popitem(last=False)
        return True


class EventIngestor:
    """Turns launch events into buy attempts.

    Each accepted event is handled in its own task so a slow lookup or
    swap never holds up the feed. Dedup and the buy cooldown are
    checked and updated without yielding to the event loop, so two tasks
    can never both pass them.
    """

    def __init__(
        self,
        config: TradingConfig,
        db: Database,
        scorer: RiskScorer,
        pipeline: OrderExecutionPipeline,
        market_data: Optional[DexScreenerClient] = None,
    ):
        self.config = config
        self.db = db
        self.scorer = scorer
        self.pipeline = pipeline
        self.market_data = market_data
        self.dedup = DedupSet(config.dedup_capacity)

        self._last_buy_attempt: Optional[float] = None
        self._tasks: Set[asyncio.Task] = set()
        self.processed_count = 0
        self._log = log

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def on_event(self, event: LaunchEvent) -> Optional[asyncio.Task]:
        """Accept a feed event. Returns the handling task, or None if a duplicate."""
        if not self.dedup.add(event.asset_id):
            CANDIDATES_TOTAL.labels(outcome="duplicate").inc()
            return None

        self.processed_count += 1
        self._log.info(
            "New token detected",
            asset_id=event.asset_id,
            symbol=event.symbol,
            name=event.name,
        )

        task = asyncio.create_task(self.handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for in-flight event handling to finish."""
        if not self._tasks:
            return
        self._log.info("Waiting for in-flight candidates", count=len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()

    async def handle(self, event: LaunchEvent) -> Optional[TradeResult]:
        """Enrich, score and (maybe) buy one candidate."""
        try:
            candidate = await self.enrich(
                event.asset_id,
                symbol=event.symbol,
                name=event.name,
                bonding_curve_sol=event.bonding_curve_sol,
                launchpad=True,
            )
            evaluation = await self.scorer.evaluate(candidate)
        except Exception as e:
            CANDIDATES_TOTAL.labels(outcome="error").inc()
            self._log.error("Candidate evaluation failed", asset_id=event.asset_id, error=str(e))
            return None

        if not evaluation.passed:
            await self._reject(candidate, evaluation)
            return None

        now = time.monotonic()
        if (
            self._last_buy_attempt is not None
            and now - self._last_buy_attempt < self.config.buy_cooldown_seconds
        ):
            wait = self.config.buy_cooldown_seconds - (now - self._last_buy_attempt)
            CANDIDATES_TOTAL.labels(outcome="cooldown").inc()
            self._log.info(
                "Buy cooldown active, candidate dropped",
                asset_id=candidate.asset_id,
                symbol=candidate.symbol,
                wait_seconds=round(wait),
            )
            return None
        self._last_buy_attempt = now

        CANDIDATES_TOTAL.labels(outcome="accepted").inc()
        self._log.info(
            "Attempting buy",
            asset_id=candidate.asset_id,
            symbol=candidate.symbol,
            score=evaluation.score,
        )
        return await self.pipeline.buy(
            candidate.asset_id,
            f"New token launch - Score: {evaluation.score}/{MAX_SCORE}",
            symbol=candidate.symbol,
            name=candidate.name,
        )

    async def _reject(self, candidate: TokenCandidate, evaluation: Evaluation) -> None:
        CANDIDATES_TOTAL.labels(outcome="rejected").inc()
        self._log.info(
            "Candidate rejected",
            asset_id=candidate.asset_id,
            symbol=candidate.symbol,
            score=evaluation.score,
            reason=evaluation.reason,
        )
        if evaluation.should_blacklist:
            await self.db.add_to_blacklist(candidate.asset_id, evaluation.reason)

    async def enrich(
        self,
        asset_id: str,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
        bonding_curve_sol: Optional[float] = None,
        launchpad: bool = False,
    ) -> TokenCandidate:
        """Build a candidate from the event plus whatever market data is available.

        Lookup failures are tolerated. The bonding-curve SOL reported by the
        launchpad overrides the market-data liquidity estimate, and launchpad
        mints have mint and freeze authority disabled by construction.
        """
        candidate = TokenCandidate(asset_id=asset_id, symbol=symbol, name=name)

        if self.market_data is not None:
            try:
                info = await self.market_data.info(asset_id)
            except Exception as e:
                info = None
                self._log.debug("Market data unavailable", asset_id=asset_id, error=str(e))
            if info is not None:
                candidate.liquidity_sol = info.liquidity_sol
                candidate.symbol = candidate.symbol or info.symbol
                candidate.name = candidate.name or info.name

        if bonding_curve_sol:
            candidate.liquidity_sol = bonding_curve_sol

        if launchpad:
            candidate.mint_disabled = True
            candidate.freeze_disabled = True

        return candidate

    def get_status(self, feed_connected: bool = False, running: bool = False) -> Dict[str, Any]:
        return {
            "running": running,
            "feed_connected": feed_connected,
            "processed_tokens": self.processed_count,
            "tracked_tokens": len(self.dedup),
            "in_flight": self.in_flight,
        }
