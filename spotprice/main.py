#!/usr/bin/env python3
"""Spot Price.

Queries several price sources concurrently for one trading pair, reconciles
their answers into a consensus price and prints the result as JSON.

Configure with CLI arguments or environment variables (CLI args take precedence).
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from .src.AggregatorConfig import AggregatorConfig
from .src.CurrencyPair import InvalidRequest
from .src.PriceAggregator import PriceAggregator
from .src.Reducer import REDUCERS, get_reducer
from .src.SourceInvoker import RetryPolicy
from .src.sources import get_available_sources

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_REQUEST = 1
EXIT_INSUFFICIENT_SOURCES = 2
EXIT_INTERRUPTED = 130


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: coingecko=demo:CG-abc123,binance=xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Parse API keys from individual environment variables.

    Looks for: API_KEY_COINGECKO, API_KEY_BINANCE, etc.

    :returns: Dict mapping source names to API keys.
    """
    api_keys = {}
    prefixes = ["API_KEY_", "APIKEY_"]

    for key, value in os.environ.items():
        for prefix in prefixes:
            if key.startswith(prefix) and value:
                source = key[len(prefix):].lower()
                api_keys[source] = value
                break

    return api_keys


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated option into stripped, lowercase items."""
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment variable defaults."""
    available_sources = get_available_sources()

    parser = argparse.ArgumentParser(
        description="Spot Price: consensus price from multiple sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # Median of Binance and CoinGecko for ADA/USDT
  python -m spotprice.main --pair ada/usdt --sources binance,coingecko

  # Mean with outlier rejection across four sources, at least three agreeing
  python -m spotprice.main --pair btc/usd --strategy mean_outlier \\
      --sources coinbase,kraken,coingecko,binance --min-sources 3

  # Binance is authoritative, CoinGecko only covers outages
  python -m spotprice.main --pair ada/usdt --strategy primary \\
      --sources binance,coingecko --priority binance,coingecko

Environment variables (CLI args take precedence):
  PAIR, SOURCES, STRATEGY, PRIORITY, MIN_SOURCES, MAX_DEVIATION_PERCENT,
  DEADLINE_MS, FETCH_TIMEOUT, MAX_RETRIES, API_KEYS, API_KEY_COINGECKO, etc.
""",
    )

    parser.add_argument(
        "--pair",
        type=str,
        help="Trading pair to price (e.g., ada/usdt)",
        default=os.environ.get("PAIR") or "ada/usdt",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "binance,coingecko",
    )

    parser.add_argument(
        "--strategy",
        type=str,
        choices=sorted(REDUCERS),
        help="Consensus strategy (default: median)",
        default=os.environ.get("STRATEGY") or "median",
    )

    parser.add_argument(
        "--priority",
        type=str,
        help="Comma-separated source priority for the primary strategy (default: --sources order)",
        default=os.environ.get("PRIORITY"),
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum sources required for a consensus price (default: 1)",
        default=int(os.environ.get("MIN_SOURCES") or "1"),
    )

    parser.add_argument(
        "--max-deviation",
        dest="max_deviation",
        type=float,
        help="Max price deviation percent before excluding outlier (default: 5.0)",
        default=float(os.environ.get("MAX_DEVIATION_PERCENT") or "5.0"),
    )

    parser.add_argument(
        "--deadline-ms",
        dest="deadline_ms",
        type=int,
        help="Overall deadline for the aggregation in milliseconds (default: 5000)",
        default=int(os.environ.get("DEADLINE_MS") or "5000"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual fetch requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--max-retries",
        dest="max_retries",
        type=int,
        help="Retries for rate-limited or network failures per source (default: 1)",
        default=int(os.environ.get("MAX_RETRIES") or "1"),
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., coingecko=demo:CG-abc)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def build_config(args: argparse.Namespace) -> AggregatorConfig:
    """Create the aggregator configuration from parsed arguments.

    :param args: Parsed CLI arguments.
    :returns: Immutable configuration.
    :raises ValueError: On unknown sources or invalid options.
    """
    sources = split_csv(args.sources)
    priority = split_csv(args.priority) or sources

    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    return AggregatorConfig.from_names(
        sources,
        api_keys=api_keys,
        fetch_timeout=args.fetch_timeout,
        reducer=get_reducer(
            args.strategy,
            max_deviation_percent=args.max_deviation,
            priority=priority,
        ),
        min_sources=args.min_sources,
        retry=RetryPolicy(max_retries=args.max_retries),
    )


async def run(config: AggregatorConfig, pair: str, deadline_ms: int) -> int:
    """Run one aggregation, print the JSON result and return the exit code."""
    async with PriceAggregator(config) as aggregator:
        result = await aggregator.get_price(pair, deadline_ms)

    print(json.dumps(result.to_dict(), indent=2))
    return EXIT_OK if result.success else EXIT_INSUFFICIENT_SOURCES


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Spot Price CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.min_sources < 1:
        parser.error("--min-sources must be at least 1")

    if args.deadline_ms < 1:
        parser.error("--deadline-ms must be at least 1")

    if args.max_retries < 0:
        parser.error("--max-retries must not be negative")

    if not split_csv(args.sources):
        parser.error("At least one source must be specified")

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    logger.debug(
        f"Pair={args.pair} sources={list(config.source_names)} strategy={args.strategy} "
        f"min_sources={args.min_sources} deadline={args.deadline_ms}ms"
    )

    try:
        exit_code = asyncio.run(run(config, args.pair, args.deadline_ms))
    except InvalidRequest as e:
        logger.error(f"Invalid request: {e}")
        exit_code = EXIT_INVALID_REQUEST
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = EXIT_INTERRUPTED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
