"""Paper trading for dry runs.

Quotes still come from the live quote service. Submission and
confirmation are simulated. Simulated fills adjust a SOL offset on top of
the real wallet balance and a set of in-memory token holdings, so
admission and sells see what paper trades spent and acquired.
"""

import uuid
from typing import Dict, Iterable


from ..config import LAMPORTS_PER_SOL, SOL_MINT
from ..logging import get_logger
from ..models import Position
from .jupiter import JupiterClient, Quote, Signer
from .wallet import SolanaWallet

log = get_logger("paper")


class PaperWallet:
    """Wallet facade whose balances reflect simulated fills."""

    def __init__(self, wallet: SolanaWallet):
        self._wallet = wallet
        self._holdings: Dict[str, int] = {}
        self._lamports_delta = 0

    @property
    def public_key(self) -> str:
        return self._wallet.public_key

    async def close(self) -> None:
        await self._wallet.close()

    async def balance(self) -> float:
        real = await self._wallet.balance()
        return max(real + self._lamports_delta / LAMPORTS_PER_SOL, 0.0)

    async def token_balance(self, asset_id: str) -> int:
        return self._holdings.get(asset_id, 0)

    def apply_fill(self, quote: Quote) -> None:
        if quote.input_mint == SOL_MINT:
            self._lamports_delta -= quote.in_amount
        else:
            remaining = self._holdings.get(quote.input_mint, 0) - quote.in_amount
            self._holdings[quote.input_mint] = max(remaining, 0)

        if quote.output_mint == SOL_MINT:
            self._lamports_delta += quote.out_amount
        else:
            self._holdings[quote.output_mint] = (
                self._holdings.get(quote.output_mint, 0) + quote.out_amount
            )

    def restore(self, positions: Iterable[Position], token_decimals: int) -> None:
        """Rebuild holdings and spent SOL from the ledger's open positions.

        Realized paper PnL from earlier runs is not carried over.
        """
        scale = 10 ** token_decimals
        self._holdings = {}
        self._lamports_delta = 0
        for position in positions:
            self._holdings[position.asset_id] = int(round(position.amount_tokens * scale))
            self._lamports_delta -= int(round(position.amount_sol_spent * LAMPORTS_PER_SOL))
        if self._holdings:
            log.info(
                "Paper holdings restored",
                positions=len(self._holdings),
                spent_sol=round(-self._lamports_delta / LAMPORTS_PER_SOL, 6),
            )


class PaperSwapClient:
    """Drop-in replacement for JupiterClient that never touches the chain."""

    def __init__(self, quotes: JupiterClient, wallet: PaperWallet):
        self._quotes = quotes
        self._wallet = wallet
        self._submitted: Dict[str, Quote] = {}

    async def close(self) -> None:
        await self._quotes.close()

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        max_slippage_bps: int,
    ) -> Quote:
        return await self._quotes.quote(input_mint, output_mint, amount, max_slippage_bps)

    async def submit(self, quote: Quote, signer: Signer) -> str:
        tx_ref = f"paper-{uuid.uuid4().hex}"
        self._submitted[tx_ref] = quote
        log.info(
            "DRY RUN swap",
            tx_ref=tx_ref,
            input_mint=quote.input_mint,
            output_mint=quote.output_mint,
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
        )
        return tx_ref

    async def confirm(self, tx_ref: str) -> None:
        quote = self._submitted.pop(tx_ref, None)
        if quote is not None:
            self._wallet.apply_fill(quote)
