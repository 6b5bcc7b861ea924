"""Mock wallet for testing.

Holds a SOL balance and raw token balances in memory, and records calls so
tests can assert on what the pipeline asked for.
"""

from typing import Dict, List, Optional


class MockWallet:
    """Controllable stand-in for SolanaWallet."""

    def __init__(self, balance_sol: float = 10.0):
        self.public_key = "MockWa11et1111111111111111111111111111111111"
        self.balance_sol = balance_sol
        self.token_balances: Dict[str, int] = {}
        self.balance_error: Optional[Exception] = None
        self.token_balance_errors: Dict[str, Exception] = {}
        self.calls: List[str] = []

    async def balance(self) -> float:
        self.calls.append("balance")
        if self.balance_error:
            raise self.balance_error
        return self.balance_sol

    async def token_balance(self, asset_id: str) -> int:
        self.calls.append(f"token_balance:{asset_id}")
        if asset_id in self.token_balance_errors:
            raise self.token_balance_errors[asset_id]
        return self.token_balances.get(asset_id, 0)

    def sign(self, tx_bytes: bytes) -> bytes:
        return tx_bytes

    async def send_transaction(self, signed_tx: bytes) -> str:
        return "mock-signature"

    async def confirm_transaction(self, tx_ref: str) -> None:
        return None

    async def close(self) -> None:
        return None

    def reset(self) -> None:
        self.token_balances.clear()
        self.token_balance_errors.clear()
        self.balance_error = None
        self.calls.clear()
