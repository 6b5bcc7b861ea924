"""Mock quote/swap client for testing.

Prices are SOL per whole token, set per asset. Confirmed swaps move raw
token balances on the attached MockWallet the way a real fill would.
"""

import asyncio
from typing import Dict, List, Optional

from launchsniper.client.jupiter import Quote
from launchsniper.config import LAMPORTS_PER_SOL, SOL_MINT

TOKEN_SCALE = 10 ** 6


class MockSwapClient:
    """Controllable stand-in for JupiterClient."""

    def __init__(self, wallet=None, default_price: float = 0.0001):
        self.wallet = wallet
        self.default_price = default_price
        self.prices: Dict[str, float] = {}

        self.quote_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.confirm_error: Optional[Exception] = None
        self.quote_errors: Dict[str, Exception] = {}
        self.confirm_delay: float = 0.0

        self.quotes: List[Quote] = []
        self.submitted: List[Quote] = []
        self.confirmed: List[str] = []
        self._pending: Dict[str, Quote] = {}

    def set_price(self, asset_id: str, price: float) -> None:
        self.prices[asset_id] = price

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        max_slippage_bps: int,
    ) -> Quote:
        asset_id = output_mint if input_mint == SOL_MINT else input_mint
        if self.quote_error:
            raise self.quote_error
        if asset_id in self.quote_errors:
            raise self.quote_errors[asset_id]

        price = self.prices.get(asset_id, self.default_price)
        if input_mint == SOL_MINT:
            out_amount = int(amount / LAMPORTS_PER_SOL / price * TOKEN_SCALE)
        else:
            out_amount = int(amount / TOKEN_SCALE * price * LAMPORTS_PER_SOL)

        quote = Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=out_amount,
            slippage_bps=max_slippage_bps,
        )
        self.quotes.append(quote)
        return quote

    async def submit(self, quote: Quote, signer) -> str:
        if self.submit_error:
            raise self.submit_error
        tx_ref = f"mock-tx-{len(self.submitted) + 1}"
        self.submitted.append(quote)
        self._pending[tx_ref] = quote
        return tx_ref

    async def confirm(self, tx_ref: str) -> None:
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if self.confirm_error:
            raise self.confirm_error
        self.confirmed.append(tx_ref)

        quote = self._pending.pop(tx_ref)
        if self.wallet is None:
            return
        balances = self.wallet.token_balances
        if quote.output_mint != SOL_MINT:
            balances[quote.output_mint] = balances.get(quote.output_mint, 0) + quote.out_amount
        if quote.input_mint != SOL_MINT:
            balances[quote.input_mint] = max(balances.get(quote.input_mint, 0) - quote.in_amount, 0)

    async def close(self) -> None:
        return None
