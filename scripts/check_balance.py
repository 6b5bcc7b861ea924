#!/usr/bin/env python3
"""Show the wallet's SOL balance and every token account it holds."""
import asyncio

from launchsniper.client.wallet import SolanaWallet
from launchsniper.config import NetworkSettings


async def main():
    settings = NetworkSettings()
    wallet = SolanaWallet.from_settings(settings)

    print(f"Wallet: {wallet.public_key}")
    balance = await wallet.balance()
    print(f"Balance: {balance:.4f} SOL")

    holdings = await wallet.token_holdings()
    held = {mint: amount for mint, amount in holdings.items() if amount > 0}
    print(f"\nToken accounts with a balance: {len(held)}")
    for mint, amount in sorted(held.items()):
        print(f"  {mint}: {amount}")

    await wallet.close()


if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv()
    asyncio.run(main())
