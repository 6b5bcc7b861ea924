"""Solana wallet: balances, signing and transaction submission over JSON-RPC."""

from typing import Dict, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from ..config import LAMPORTS_PER_SOL, NetworkSettings
from ..logging import get_logger
from ..retry import ConfigurationError, ConfirmationError, WalletError

log = get_logger("wallet")

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")


class SolanaWallet:
    """Signer plus the RPC connection it submits through.

    Token balances are returned in raw base units so they can be fed
    straight back into a quote request.
    """

    def __init__(self, keypair: Keypair, rpc_url: str):
        """Initialize the wallet.

        Args:
            keypair: Signing keypair
            rpc_url: Solana JSON-RPC URL
        """
        self._keypair = keypair
        self._client = AsyncClient(rpc_url, commitment=Confirmed)
        self._log = log

    @classmethod
    def from_settings(cls, settings: NetworkSettings) -> "SolanaWallet":
        """Load the keypair from settings.

        Raises:
            ConfigurationError: No key configured or the key does not decode.
        """
        if not settings.private_key:
            raise ConfigurationError("No wallet private key configured (SNIPER_PRIVATE_KEY)")
        try:
            keypair = Keypair.from_base58_string(settings.private_key.strip())
        except Exception as e:
            raise ConfigurationError("Wallet private key is not a valid base58 keypair", cause=e)

        wallet = cls(keypair, settings.rpc_url)
        log.info("Wallet loaded", public_key=wallet.public_key)
        return wallet

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    async def close(self) -> None:
        await self._client.close()

    async def balance(self) -> float:
        """SOL balance of the wallet."""
        try:
            response = await self._client.get_balance(self._keypair.pubkey())
        except Exception as e:
            raise WalletError("Balance lookup failed", cause=e)
        return (response.value or 0) / LAMPORTS_PER_SOL

    async def token_balance(self, asset_id: str) -> int:
        """Raw token amount held for a mint, summed over all token accounts."""
        try:
            mint = Pubkey.from_string(asset_id)
            response = await self._client.get_token_accounts_by_owner_json_parsed(
                self._keypair.pubkey(),
                TokenAccountOpts(mint=mint),
            )
        except Exception as e:
            raise WalletError(f"Token balance lookup failed for {asset_id}", cause=e)

        total = 0
        for account in response.value or []:
            parsed = account.account.data.parsed
            try:
                total += int(parsed["info"]["tokenAmount"]["amount"])
            except (KeyError, TypeError, ValueError):
                self._log.warning("Unparseable token account", asset_id=asset_id)
        return total

    def sign(self, tx_bytes: bytes) -> bytes:
        """Sign a serialized versioned transaction built by a swap service."""
        unsigned = VersionedTransaction.from_bytes(tx_bytes)
        signed = VersionedTransaction(unsigned.message, [self._keypair])
        return bytes(signed)

    async def send_transaction(self, signed_tx: bytes) -> str:
        """Submit a signed transaction, returning its signature."""
        try:
            response = await self._client.send_raw_transaction(
                signed_tx,
                opts=TxOpts(skip_preflight=True, max_retries=3),
            )
        except Exception as e:
            raise WalletError("Transaction submission failed", cause=e)
        return str(response.value)

    async def confirm_transaction(self, tx_ref: str) -> None:
        """Wait for confirmation.

        Raises:
            ConfirmationError: Transaction errored on-chain or was never confirmed.
        """
        try:
            response = await self._client.confirm_transaction(
                Signature.from_string(tx_ref),
                commitment=Confirmed,
            )
        except Exception as e:
            raise ConfirmationError(f"Confirmation failed for {tx_ref}", cause=e)

        status: Optional[object] = response.value[0] if response.value else None
        if status is None:
            raise ConfirmationError(f"No status returned for {tx_ref}")
        if status.err is not None:
            raise ConfirmationError(f"Transaction {tx_ref} failed: {status.err}")

    async def token_holdings(self) -> Dict[str, int]:
        """Raw balances of every SPL token account the wallet owns, keyed by mint."""
        try:
            response = await self._client.get_token_accounts_by_owner_json_parsed(
                self._keypair.pubkey(),
                TokenAccountOpts(program_id=TOKEN_PROGRAM_ID),
            )
        except Exception as e:
            raise WalletError("Token account lookup failed", cause=e)

        holdings: Dict[str, int] = {}
        for account in response.value or []:
            info = account.account.data.parsed.get("info", {})
            mint = info.get("mint")
            amount = int(info.get("tokenAmount", {}).get("amount", 0))
            if mint:
                holdings[mint] = holdings.get(mint, 0) + amount
        return holdings
