"""
Price sources for multiple exchange and aggregator APIs.

This module provides a unified interface for fetching spot prices from
various exchanges and aggregator APIs.

Usage:
    from spotprice.src.sources import get_source, get_available_sources

    # Get list of available sources
    available = get_available_sources()
    # ['binance', 'coinbase', 'coingecko', 'kraken']

    # Create a source instance and fetch within a deadline
    source = get_source("binance")
    result = await source.fetch(CurrencyPair("ada", "usdt"), deadline=loop.time() + 3)

    # For sources with API keys
    source = get_source("coingecko", api_key="demo:CG-xxxxx")
"""

# Import base classes and utilities
from .base import (
    SOURCE_REGISTRY,
    BaseSource,
    SourceError,
    SourceHTTPError,
    get_available_sources,
    get_source,
    parse_price,
    register_source,
)

# Import all source implementations to trigger registration
from .binance import BinanceSource
from .coinbase import CoinbaseSource
from .coingecko import CoinGeckoSource
from .kraken import KrakenSource

__all__ = [
    # Base classes
    "BaseSource",
    "SourceError",
    "SourceHTTPError",
    "parse_price",
    # Registry functions
    "register_source",
    "get_source",
    "get_available_sources",
    "SOURCE_REGISTRY",
    # Source implementations
    "BinanceSource",
    "CoinbaseSource",
    "CoinGeckoSource",
    "KrakenSource",
]
