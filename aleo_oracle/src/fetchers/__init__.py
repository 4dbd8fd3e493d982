"""
Price fetchers for multiple exchanges.

This module provides a unified interface for fetching spot prices from
centralized exchanges and aggregator APIs. Every fetcher maps canonical
pair names ("ETH/USD") to its own symbols and returns a PriceObservation
or None.

Usage:
    from aleo_oracle.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['binance', 'bybit', 'coinbase', 'coingecko', 'cryptocompare', 'gateio',
    #  'huobi', 'kraken', 'kucoin', 'okx']

    # Create a fetcher instance
    fetcher = get_fetcher("kraken")
    observation = await fetcher.fetch_price("BTC/USD")

    # Point a fetcher at a different API root
    fetcher = get_fetcher("binance", base_url="https://api.binance.us")
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .binance import BinanceFetcher
from .bybit import BybitFetcher
from .coinbase import CoinbaseFetcher
from .coingecko import CoinGeckoFetcher
from .cryptocompare import CryptoCompareFetcher
from .gateio import GateIOFetcher
from .huobi import HuobiFetcher
from .kraken import KrakenFetcher
from .kucoin import KuCoinFetcher
from .okx import OKXFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "BinanceFetcher",
    "BybitFetcher",
    "CoinbaseFetcher",
    "CoinGeckoFetcher",
    "CryptoCompareFetcher",
    "GateIOFetcher",
    "HuobiFetcher",
    "KrakenFetcher",
    "KuCoinFetcher",
    "OKXFetcher",
]
