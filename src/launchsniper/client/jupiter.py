"""Jupiter aggregator client: quotes and swap execution."""

import base64
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..logging import get_logger
from ..metrics import API_REQUEST_DURATION
from ..retry import (
    PermanentError,
    QuoteError,
    SniperError,
    SwapError,
    classify_http_error,
    retry_transient,
)

log = get_logger("jupiter")


class Signer(Protocol):
    """What the swap client needs from a wallet."""

    public_key: str

    def sign(self, tx_bytes: bytes) -> bytes: ...

    async def send_transaction(self, signed_tx: bytes) -> str: ...

    async def confirm_transaction(self, tx_ref: str) -> None: ...


@dataclass
class Quote:
    """Price/route estimate for converting in_amount of one mint into another.

    Amounts are raw base units. The price may move before execution.
    """

    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    slippage_bps: int
    route: List[Dict[str, Any]] = field(default_factory=list)
    price_impact_pct: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Quote":
        try:
            return cls(
                input_mint=data["inputMint"],
                output_mint=data["outputMint"],
                in_amount=int(data["inAmount"]),
                out_amount=int(data["outAmount"]),
                slippage_bps=int(data.get("slippageBps", 0)),
                route=data.get("routePlan", []),
                price_impact_pct=float(data.get("priceImpactPct") or 0.0),
                raw=data,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteError("Malformed quote response", cause=e)


class JupiterClient:
    """Client for the Jupiter v6 quote and swap APIs."""

    def __init__(
        self,
        base_url: str = "https://quote-api.jup.ag/v6",
        confirmer: Optional[Signer] = None,
        timeout: float = 15.0,
        http_proxy: Optional[str] = None,
    ):
        """Initialize the Jupiter client.

        Args:
            base_url: Jupiter API base URL
            confirmer: Wallet whose RPC connection confirms submitted swaps
            timeout: Per-request timeout in seconds
            http_proxy: Optional HTTP proxy URL
        """
        self.base_url = base_url.rstrip("/")
        self._confirmer = confirmer
        self._client = httpx.AsyncClient(timeout=timeout, proxy=http_proxy)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    @retry_transient(log_context={"service": "jupiter", "operation": "quote"})
    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        max_slippage_bps: int,
    ) -> Quote:
        """Request a swap quote.

        Raises:
            QuoteError: No route, bad request or malformed response
            TransientError: Network fault persisted through retries
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(max_slippage_bps),
        }

        started = time.monotonic()
        try:
            response = await self._client.get(f"{self.base_url}/quote", params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = classify_http_error(e, "Jupiter quote failed")
            if isinstance(error, PermanentError):
                raise QuoteError(error.message, cause=e)
            raise error
        finally:
            API_REQUEST_DURATION.labels(service="jupiter", operation="quote").observe(
                time.monotonic() - started
            )

        data = response.json()
        if "error" in data:
            raise QuoteError(f"Jupiter quote rejected: {data['error']}")
        return Quote.from_api(data)

    @retry_transient(log_context={"service": "jupiter", "operation": "swap"})
    async def _build_swap_transaction(self, quote: Quote, user_public_key: str) -> bytes:
        """Ask Jupiter to build the swap transaction for a quote."""
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        try:
            response = await self._client.post(f"{self.base_url}/swap", json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = classify_http_error(e, "Jupiter swap build failed")
            if isinstance(error, PermanentError):
                raise SwapError(error.message, cause=e)
            raise error

        swap_tx = response.json().get("swapTransaction")
        if not swap_tx:
            raise SwapError("Jupiter swap response missing transaction")
        return base64.b64decode(swap_tx)

    async def submit(self, quote: Quote, signer: Signer) -> str:
        """Build, sign and send the swap for a quote.

        Returns:
            Transaction signature (tx_ref)
        """
        tx_bytes = await self._build_swap_transaction(quote, signer.public_key)
        try:
            signed = signer.sign(tx_bytes)
        except Exception as e:
            raise SwapError("Signing swap transaction failed", cause=e)

        tx_ref = await signer.send_transaction(signed)
        log.info("Transaction sent", tx_ref=tx_ref)
        return tx_ref

    async def confirm(self, tx_ref: str) -> None:
        """Wait for settlement of a submitted swap.

        Raises:
            ConfirmationError: Transaction failed or was not confirmed
        """
        if self._confirmer is None:
            raise SniperError("No confirmer configured for swap client")
        await self._confirmer.confirm_transaction(tx_ref)
