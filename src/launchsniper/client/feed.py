"""WebSocket client for the PumpPortal new-token launch stream."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import orjson
import websockets
from websockets.exceptions import ConnectionClosed

from ..logging import get_logger
from ..metrics import FEED_CONNECTED, FEED_RECONNECTS

log = get_logger("feed")


@dataclass
class LaunchEvent:
    """A newly launched token as announced by the feed."""

    asset_id: str
    signature: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    bonding_curve_sol: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> Optional["LaunchEvent"]:
        """Parse a feed message. Returns None for anything that isn't a launch."""
        mint = data.get("mint")
        signature = data.get("signature")
        if not mint or not signature:
            return None

        curve_sol = data.get("vSolInBondingCurve")
        try:
            bonding_curve_sol = float(curve_sol) if curve_sol is not None else None
        except (TypeError, ValueError):
            bonding_curve_sol = None

        return cls(
            asset_id=mint,
            signature=signature,
            symbol=data.get("symbol"),
            name=data.get("name"),
            bonding_curve_sol=bonding_curve_sol,
            raw=data,
        )


LaunchCallback = Callable[[LaunchEvent], Union[None, Awaitable[None]]]


class LaunchFeed:
    """Subscribes to new token launches and hands each one to a callback.

    Reconnects with a fixed delay up to max_reconnect_attempts consecutive
    failures. A successful connection resets the counter. Once the budget
    is spent the feed marks itself exhausted and run() returns.
    """

    def __init__(
        self,
        ws_url: str = "wss://pumpportal.fun/api/data",
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 5.0,
    ):
        """Initialize the feed.

        Args:
            ws_url: PumpPortal websocket URL
            max_reconnect_attempts: Consecutive failures tolerated before giving up
            reconnect_delay: Seconds between reconnection attempts
        """
        self.ws_url = ws_url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay

        self._ws: Optional[Any] = None
        self._connected = False
        self._running = False
        self._reconnect_attempts = 0
        self.exhausted = False
        self.events_received = 0

        self._on_launch: Optional[LaunchCallback] = None

    @property
    def is_connected(self) -> bool:
        return self._connected and self._ws is not None

    @property
    def is_running(self) -> bool:
        return self._running

    def on_launch(self, callback: LaunchCallback) -> None:
        """Register callback for launch events."""
        self._on_launch = callback

    async def connect(self) -> bool:
        """Open the websocket and subscribe to new tokens.

        Returns:
            True if connection successful
        """
        try:
            self._ws = await websockets.connect(
                self.ws_url,
                ping_interval=20,
                ping_timeout=10,
            )
            await self._ws.send(orjson.dumps({"method": "subscribeNewToken"}).decode())
        except Exception as e:
            log.error("Feed connection failed", url=self.ws_url, error=str(e))
            self._connected = False
            FEED_CONNECTED.set(0)
            return False

        self._connected = True
        self._reconnect_attempts = 0
        FEED_CONNECTED.set(1)
        log.info("Feed connected, subscribed to new tokens", url=self.ws_url)
        return True

    async def disconnect(self) -> None:
        """Stop the run loop and close the connection."""
        self._running = False
        self._connected = False
        FEED_CONNECTED.set(0)

        if self._ws:
            await self._ws.close()
            self._ws = None

        log.info("Feed disconnected")

    async def run(self) -> None:
        """Connect and dispatch messages until stopped or out of reconnects."""
        self._running = True
        self.exhausted = False
        first_attempt = True

        while self._running:
            if not self.is_connected:
                if not first_attempt:
                    self._reconnect_attempts += 1
                    if self._reconnect_attempts > self.max_reconnect_attempts:
                        self._give_up()
                        return
                    FEED_RECONNECTS.inc()
                    log.warning(
                        "Reconnecting feed",
                        attempt=self._reconnect_attempts,
                        max_attempts=self.max_reconnect_attempts,
                        delay=self.reconnect_delay,
                    )
                    await asyncio.sleep(self.reconnect_delay)
                    if not self._running:
                        return
                first_attempt = False

                if not await self.connect():
                    continue

            try:
                await self._process_messages()
                # Server closed the stream cleanly
                log.warning("Feed stream ended")
            except ConnectionClosed:
                log.warning("Feed connection closed")
            except Exception as e:
                log.error("Feed error", error=str(e))

            self._connected = False
            self._ws = None
            FEED_CONNECTED.set(0)

    def _give_up(self) -> None:
        self.exhausted = True
        self._running = False
        self._connected = False
        FEED_CONNECTED.set(0)
        log.error(
            "Feed reconnect attempts exhausted, ingestion stopped",
            attempts=self.max_reconnect_attempts,
        )

    async def _process_messages(self) -> None:
        async for message in self._ws:
            if not self._running:
                return
            try:
                data = orjson.loads(message)
            except orjson.JSONDecodeError:
                log.debug("Ignoring non-JSON feed frame")
                continue

            if not isinstance(data, dict):
                continue

            event = LaunchEvent.from_message(data)
            if event is None:
                continue

            self.events_received += 1
            await self._dispatch(event)

    async def _dispatch(self, event: LaunchEvent) -> None:
        if not self._on_launch:
            return
        try:
            result = self._on_launch(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            log.error("Launch callback error", asset_id=event.asset_id, error=str(e))
