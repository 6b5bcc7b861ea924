"""Admission controller: the budget gate in front of every buy."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional, Protocol

from ..config import TradingConfig
from ..logging import get_logger
from ..metrics import ADMISSION_DENIED_TOTAL, DAILY_LOSS_SOL
from ..models import AdmissionDecision
from ..persistence import Database

log = get_logger("admission")


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class BalanceSource(Protocol):
    async def balance(self) -> float: ...


@dataclass
class RiskBudget:
    """Realized loss accumulated today.

    Lives in memory only. A restart rebuilds it at zero, and it resets on
    the first check after the UTC date changes.
    """

    daily_loss: float = 0.0
    reset_date: date = field(default_factory=_utc_today)

    def roll(self, today: date) -> bool:
        """Reset when the day has changed. Returns True if it reset."""
        if today != self.reset_date:
            self.daily_loss = 0.0
            self.reset_date = today
            return True
        return False


class AdmissionController:
    """Gates prospective buys against the loss budget, wallet and position cap.

    Checks short-circuit in order: daily loss, balance (trade size times
    the fee buffer), then open-position count.

    Buys admitted through reserve() hold a slot until they confirm or
    fail. Held slots count toward the position cap and the required
    balance, so concurrent buys for different assets cannot overrun
    either budget.
    """

    def __init__(
        self,
        config: TradingConfig,
        wallet: BalanceSource,
        db: Database,
        budget: Optional[RiskBudget] = None,
    ):
        self.config = config
        self.wallet = wallet
        self.db = db
        self.budget = budget or RiskBudget()
        self._lock = asyncio.Lock()
        self._pending = 0
        self._log = log

    @property
    def pending_buys(self) -> int:
        return self._pending

    @property
    def daily_loss(self) -> float:
        self._roll()
        return self.budget.daily_loss

    def _roll(self) -> None:
        if self.budget.roll(_utc_today()):
            DAILY_LOSS_SOL.set(0)
            self._log.info("Daily loss budget reset", date=self.budget.reset_date.isoformat())

    async def can_trade(self) -> AdmissionDecision:
        """Decide whether a new buy may proceed.

        External lookups that fail deny the trade rather than raise.
        """
        self._roll()

        if self.budget.daily_loss >= self.config.max_daily_loss_sol:
            return self._deny(
                "daily_loss",
                f"Daily loss limit reached ({self.budget.daily_loss:.4f} SOL)",
            )

        try:
            balance = await self.wallet.balance()
        except Exception as e:
            return self._deny("balance", f"Balance unavailable: {e}")

        per_trade = self.config.trade_amount_sol * self.config.fee_buffer_multiplier
        required = per_trade * (self._pending + 1)
        if balance < required:
            return self._deny("balance", f"Insufficient balance ({balance:.4f} SOL)")

        open_count = await self.db.count_open_positions() + self._pending
        if open_count >= self.config.max_positions:
            return self._deny(
                "max_positions",
                f"Max positions reached ({open_count}/{self.config.max_positions})",
            )

        return AdmissionDecision(allowed=True)

    @asynccontextmanager
    async def reserve(self) -> AsyncIterator[AdmissionDecision]:
        """Admit a buy and hold its slot for the duration of the block.

        Checks are serialized, and an allowed decision counts as an open
        position until the block exits.
        """
        async with self._lock:
            decision = await self.can_trade()
            if decision.allowed:
                self._pending += 1
        try:
            yield decision
        finally:
            if decision.allowed:
                self._pending -= 1

    def _deny(self, check: str, reason: str) -> AdmissionDecision:
        ADMISSION_DENIED_TOTAL.labels(check=check).inc()
        self._log.info("Trade not admitted", check=check, reason=reason)
        return AdmissionDecision(allowed=False, reason=reason, check=check)

    def record_loss(self, amount: float) -> None:
        """Add a realized loss (positive SOL amount) to today's budget."""
        self._roll()
        self.budget.daily_loss += abs(amount)
        DAILY_LOSS_SOL.set(self.budget.daily_loss)
        self._log.warning(
            "Loss recorded",
            amount=round(abs(amount), 6),
            daily_loss=round(self.budget.daily_loss, 6),
            max_daily_loss=self.config.max_daily_loss_sol,
        )

    def record_win(self, amount: float) -> None:
        # Gains never restore the loss budget
        self._log.info("Win recorded", amount=round(amount, 6))

    def get_status(self) -> Dict[str, Any]:
        self._roll()
        return {
            "daily_loss": self.budget.daily_loss,
            "max_daily_loss": self.config.max_daily_loss_sol,
            "remaining_risk": max(self.config.max_daily_loss_sol - self.budget.daily_loss, 0.0),
            "pending_buys": self._pending,
            "reset_date": self.budget.reset_date.isoformat(),
        }
