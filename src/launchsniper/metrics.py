"""Prometheus metrics for the Launch Sniper agent."""

from prometheus_client import Counter, Gauge, Histogram, Info

# Agent info
AGENT_INFO = Info("launchsniper_agent", "Launch Sniper agent information")

# Trading metrics
TRADES_TOTAL = Counter(
    "launchsniper_trades_total",
    "Trade attempts by side and terminal status",
    ["side", "status"],
)

TRADE_AMOUNT_SOL = Histogram(
    "launchsniper_trade_amount_sol",
    "Confirmed trade amounts in SOL",
    ["side"],
    buckets=[0.01, 0.02, 0.05, 0.1, 0.2, 0.5, 1, 2, 5],
)

TRADE_ERRORS_TOTAL = Counter(
    "launchsniper_trade_errors_total",
    "Failed trade attempts by stage",
    ["side", "stage"],
)

ADMISSION_DENIED_TOTAL = Counter(
    "launchsniper_admission_denied_total",
    "Buys refused by the admission controller",
    ["check"],
)

# Candidate metrics
CANDIDATES_TOTAL = Counter(
    "launchsniper_candidates_total",
    "New-token candidates by ingestion outcome",
    ["outcome"],
)

# Exit metrics
EXITS_TRIGGERED_TOTAL = Counter(
    "launchsniper_exits_triggered_total",
    "Exit triggers fired by the position monitor",
    ["trigger"],
)

# P&L / risk metrics
DAILY_LOSS_SOL = Gauge(
    "launchsniper_daily_loss_sol",
    "Realized loss accumulated against today's risk budget",
)

REALIZED_PNL_SOL = Histogram(
    "launchsniper_realized_pnl_sol",
    "Realized PnL per closed position in SOL",
    buckets=[-1, -0.5, -0.1, -0.05, -0.01, 0, 0.01, 0.05, 0.1, 0.5, 1],
)

OPEN_POSITIONS = Gauge(
    "launchsniper_open_positions",
    "Number of open positions",
)

# Connection metrics
FEED_CONNECTED = Gauge(
    "launchsniper_feed_connected",
    "Launch feed connection status (1=connected, 0=disconnected)",
)

FEED_RECONNECTS = Counter(
    "launchsniper_feed_reconnects_total",
    "Total launch feed reconnection attempts",
)

API_REQUEST_DURATION = Histogram(
    "launchsniper_api_request_duration_seconds",
    "External API request duration in seconds",
    ["service", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)


def init_metrics(version: str = "0.1.0", dry_run: bool = False) -> None:
    """Initialize agent info metrics.

    Args:
        version: Agent version
        dry_run: Whether running in dry-run mode
    """
    AGENT_INFO.info({
        "version": version,
        "dry_run": str(dry_run).lower(),
    })
