"""Launch Sniper - Entry Point

Usage:
    python -m launchsniper [--dry-run] [--log-level LEVEL] [--log-file PATH] [COMMAND]

Commands:
    run            - Start ingestion and the exit monitor (default)
    status         - Print a JSON status snapshot
    sell-all       - Sell every open position
    evaluate MINT  - Score a token without trading it
    buy MINT       - Evaluate then buy a token
    sell MINT      - Sell a held token

Examples:
    python -m launchsniper
    python -m launchsniper --dry-run --log-level DEBUG
    python -m launchsniper evaluate <mint>
"""

import argparse
import asyncio
import sys

import orjson

from launchsniper import __version__


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="launch-sniper",
        description="Autonomous new-token sniping agent for Solana",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Launch Sniper {__version__}",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Simulate swaps instead of submitting them",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )

    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("run", help="Start the agent")
    subparsers.add_parser("status", help="Print a status snapshot")

    sell_all = subparsers.add_parser("sell-all", help="Sell every open position")
    sell_all.add_argument(
        "--pause",
        type=float,
        default=2.0,
        help="Seconds to wait between sells",
    )

    for name, help_text in (
        ("evaluate", "Score a token without trading"),
        ("buy", "Evaluate then buy a token"),
        ("sell", "Sell a held token"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("asset_id", help="Token mint address")

    return parser.parse_args(argv)


def _print_json(data) -> None:
    print(orjson.dumps(data, option=orjson.OPT_INDENT_2, default=str).decode())


async def run_command(args: argparse.Namespace) -> int:
    """Load configuration and execute the requested command."""
    from launchsniper.agent import SniperAgent
    from launchsniper.config import load_config
    from launchsniper.logging import setup_logging
    from launchsniper.retry import ConfigurationError

    config = load_config()
    if args.dry_run is not None:
        config.trading.dry_run = args.dry_run

    log = setup_logging(
        level=args.log_level or config.network.log_level,
        json_output=config.network.log_json,
        log_file=args.log_file,
        dry_run=config.trading.dry_run,
    )

    command = args.command or "run"
    agent = SniperAgent(config)

    try:
        if command == "run":
            log.info("Starting Launch Sniper", version=__version__, dry_run=config.trading.dry_run)
            await agent.start()
            return 0

        await agent.open()
        try:
            if command == "status":
                _print_json(await agent.get_status())
            elif command == "sell-all":
                results = await agent.sell_all(pause_seconds=args.pause)
                _print_json([r.to_dict() for r in results])
            elif command == "evaluate":
                _print_json(await agent.evaluate(args.asset_id))
            elif command == "buy":
                result = await agent.buy(args.asset_id)
                _print_json(result.to_dict())
                return 0 if result.success else 2
            elif command == "sell":
                result = await agent.sell(args.asset_id)
                _print_json(result.to_dict())
                return 0 if result.success else 2
        finally:
            await agent.close()
        return 0

    except ConfigurationError as e:
        log.error("Configuration error", error=str(e))
        return 1
    except KeyboardInterrupt:
        log.info("Shutdown requested")
        await agent.stop()
        return 0
    except Exception as e:
        log.error("Fatal error", error=str(e))
        return 1


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    try:
        sys.exit(asyncio.run(run_command(args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
