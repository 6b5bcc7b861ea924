"""Domain types shared by the ledger, risk and execution layers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TradeSide(str, Enum):
    """Direction of a swap relative to SOL."""

    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    """Ledger status of a trade row.

    Rows start PENDING and move exactly once to CONFIRMED or FAILED.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PositionStatus(str, Enum):
    """Lifecycle status of a position row."""

    OPEN = "open"
    CLOSED = "closed"


class ExecutionState(str, Enum):
    """Per-attempt order state machine.

    REQUESTED -> QUOTED -> SUBMITTED -> CONFIRMED | FAILED
    """

    REQUESTED = "requested"
    QUOTED = "quoted"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class Trade:
    """One row of the append-only trade ledger."""

    id: int
    asset_id: str
    side: TradeSide
    sol_amount: float
    token_amount: float
    price: float
    status: TradeStatus
    reason: Optional[str] = None
    tx_ref: Optional[str] = None
    symbol: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Trade":
        """Build from an aiosqlite.Row."""
        return cls(
            id=row["id"],
            asset_id=row["asset_id"],
            side=TradeSide(row["side"]),
            sol_amount=row["sol_amount"],
            token_amount=row["token_amount"] or 0.0,
            price=row["price"] or 0.0,
            status=TradeStatus(row["status"]),
            reason=row["reason"],
            tx_ref=row["tx_ref"],
            symbol=row["symbol"],
            name=row["name"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "symbol": self.symbol,
            "name": self.name,
            "side": self.side.value,
            "sol_amount": self.sol_amount,
            "token_amount": self.token_amount,
            "price": self.price,
            "tx_ref": self.tx_ref,
            "status": self.status.value,
            "reason": self.reason,
            "created_at": self.created_at,
        }


@dataclass
class Position:
    """Holding in one asset. At most one OPEN row per asset."""

    id: int
    asset_id: str
    entry_price: float
    amount_tokens: float
    amount_sol_spent: float
    status: PositionStatus
    current_price: Optional[float] = None
    pnl_percent: float = 0.0
    entry_reason: Optional[str] = None
    exit_reason: Optional[str] = None
    symbol: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "Position":
        """Build from an aiosqlite.Row."""
        return cls(
            id=row["id"],
            asset_id=row["asset_id"],
            entry_price=row["entry_price"] or 0.0,
            amount_tokens=row["amount_tokens"] or 0.0,
            amount_sol_spent=row["amount_sol_spent"] or 0.0,
            status=PositionStatus(row["status"]),
            current_price=row["current_price"],
            pnl_percent=row["pnl_percent"] or 0.0,
            entry_reason=row["entry_reason"],
            exit_reason=row["exit_reason"],
            symbol=row["symbol"],
            name=row["name"],
            created_at=_parse_timestamp(row["created_at"]),
            closed_at=_parse_timestamp(row["closed_at"]),
        )

    @property
    def label(self) -> str:
        """Short human label for logs."""
        return self.symbol or self.asset_id[:8]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "symbol": self.symbol,
            "name": self.name,
            "entry_price": self.entry_price,
            "amount_tokens": self.amount_tokens,
            "amount_sol_spent": self.amount_sol_spent,
            "current_price": self.current_price,
            "pnl_percent": self.pnl_percent,
            "status": self.status.value,
            "entry_reason": self.entry_reason,
            "exit_reason": self.exit_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }


@dataclass
class DailyStat:
    """Accumulated counters for one calendar day."""

    date: str
    trades_count: int = 0
    wins: int = 0
    losses: int = 0
    total_pnl_sol: float = 0.0
    volume_sol: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "trades_count": self.trades_count,
            "wins": self.wins,
            "losses": self.losses,
            "total_pnl_sol": self.total_pnl_sol,
            "volume_sol": self.volume_sol,
        }


@dataclass
class TokenCandidate:
    """A newly launched token plus whatever enrichment could be gathered.

    Flags are tri-state: None means the signal is unknown.
    """

    asset_id: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    liquidity_sol: Optional[float] = None
    is_honeypot: Optional[bool] = None
    mint_disabled: Optional[bool] = None
    freeze_disabled: Optional[bool] = None

    @property
    def label(self) -> str:
        return self.symbol or self.asset_id[:8]


@dataclass
class SafetyCheck:
    """Outcome of a single scorer heuristic."""

    name: str
    passed: bool
    value: Optional[float] = None


@dataclass
class Evaluation:
    """Risk scorer verdict for a candidate."""

    passed: bool
    score: int = 0
    reason: Optional[str] = None
    checks: List[SafetyCheck] = field(default_factory=list)

    @property
    def should_blacklist(self) -> bool:
        """Only honeypot and explicit-blacklist failures are recorded permanently."""
        if self.passed or not self.reason:
            return False
        reason = self.reason.lower()
        return "honeypot" in reason or "blacklist" in reason


@dataclass
class AdmissionDecision:
    """Result of the pre-trade admission gate."""

    allowed: bool
    reason: Optional[str] = None
    check: Optional[str] = None  # Which gate refused: daily_loss, balance, max_positions


@dataclass
class TradeResult:
    """Structured outcome of a buy or sell attempt. Never raised."""

    success: bool
    side: TradeSide
    asset_id: str
    state: ExecutionState = ExecutionState.REQUESTED
    reason: Optional[str] = None
    tx_ref: Optional[str] = None
    trade_id: Optional[int] = None
    sol_amount: float = 0.0
    token_amount: float = 0.0
    price: float = 0.0
    pnl_sol: Optional[float] = None
    pnl_percent: Optional[float] = None
    position_closed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "side": self.side.value,
            "asset_id": self.asset_id,
            "state": self.state.value,
            "reason": self.reason,
            "tx_ref": self.tx_ref,
            "trade_id": self.trade_id,
            "sol_amount": self.sol_amount,
            "token_amount": self.token_amount,
            "price": self.price,
            "pnl_sol": self.pnl_sol,
            "pnl_percent": self.pnl_percent,
            "position_closed": self.position_closed,
        }


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse the ISO-8601 UTC timestamps the ledger writes."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
