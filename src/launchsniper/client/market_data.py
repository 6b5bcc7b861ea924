"""DexScreener client for best-effort token metadata and liquidity."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..logging import get_logger
from ..metrics import API_REQUEST_DURATION
from ..retry import classify_http_error, retry_transient

log = get_logger("market_data")

# Rough conversion used to express pool liquidity in SOL
DEFAULT_USD_PER_SOL = 200.0


@dataclass
class TokenInfo:
    """Market-data view of a token."""

    asset_id: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    liquidity_sol: Optional[float] = None
    price_usd: Optional[float] = None


class DexScreenerClient:
    """Client for the DexScreener token endpoint."""

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com/latest/dex/tokens",
        timeout: float = 10.0,
        http_proxy: Optional[str] = None,
        usd_per_sol: float = DEFAULT_USD_PER_SOL,
    ):
        """Initialize the DexScreener client.

        Args:
            base_url: Token lookup endpoint
            timeout: Per-request timeout in seconds
            http_proxy: Optional HTTP proxy URL
            usd_per_sol: Conversion rate for the liquidity estimate
        """
        self.base_url = base_url.rstrip("/")
        self.usd_per_sol = usd_per_sol
        self._client = httpx.AsyncClient(timeout=timeout, proxy=http_proxy)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def info(self, asset_id: str) -> Optional[TokenInfo]:
        """Get token info from the first listed pair.

        Returns:
            TokenInfo, or None if the token has no pairs yet
        """
        data = await self._fetch(asset_id)
        if not data:
            return None

        pairs = data.get("pairs") or []
        if not pairs:
            return None

        pair = pairs[0]
        base_token = pair.get("baseToken") or {}
        liquidity_usd = (pair.get("liquidity") or {}).get("usd")
        price_usd = pair.get("priceUsd")

        return TokenInfo(
            asset_id=asset_id,
            symbol=base_token.get("symbol"),
            name=base_token.get("name"),
            liquidity_sol=liquidity_usd / self.usd_per_sol if liquidity_usd else None,
            price_usd=float(price_usd) if price_usd else None,
        )

    @retry_transient(max_attempts=2, log_context={"service": "dexscreener"})
    async def _fetch(self, asset_id: str) -> Optional[Dict[str, Any]]:
        started = time.monotonic()
        try:
            response = await self._client.get(f"{self.base_url}/{asset_id}")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise classify_http_error(e, "DexScreener lookup failed")
        except httpx.HTTPError as e:
            raise classify_http_error(e, "DexScreener lookup failed")
        finally:
            API_REQUEST_DURATION.labels(service="dexscreener", operation="info").observe(
                time.monotonic() - started
            )
