#!/usr/bin/env python3
"""Print open positions and today's stats straight from the ledger."""
import asyncio

from launchsniper.config import load_config
from launchsniper.persistence import Database


async def main():
    config = load_config()
    db = Database(config.network.database_path)
    await db.connect()

    positions = await db.get_open_positions()
    print(f"Open positions: {len(positions)}")
    for p in positions:
        created = p.created_at.isoformat() if p.created_at else "?"
        print(
            f"- {p.label}: {p.amount_sol_spent:.4f} SOL, "
            f"pnl {p.pnl_percent:+.1f}%, created: {created}"
        )

    stats = await db.get_today_stats()
    print(
        f"\nToday ({stats.date}): {stats.trades_count} trades, "
        f"{stats.wins}W/{stats.losses}L, pnl {stats.total_pnl_sol:+.4f} SOL"
    )

    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
