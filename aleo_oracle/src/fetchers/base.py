"""Base fetcher interface and shared HTTP client management.

All price fetchers inherit from BaseFetcher and implement the fetch() method.
A shared httpx.AsyncClient is used across all fetchers to avoid connection
overhead; tests may inject their own client instead.

Every failure mode of an exchange (network error, HTTP error, malformed
payload, non-positive price, unmapped pair) collapses into ``None`` so the
aggregator can treat each fetcher uniformly as "contributed or did not".

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myexchange"
        BASE_URL = "https://api.example.com"
        HEALTH_PATH = "/ping"
        SYMBOL_MAP = {"ETH/USD": "ETHUSD"}

        async def fetch(self, pair: str) -> float | None:
            symbol = self.get_symbol(pair)
            response = await self._get(f"{self.base_url}/ticker/{symbol}")
            return float(response.json()["price"])
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..ConsensusPrice import PriceObservation

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFetcher(ABC):
    """Abstract base class for exchange price fetchers.

    Subclasses must implement:
        - name: Class variable identifying the exchange (e.g., "binance")
        - fetch(): Async method returning the raw price for a canonical pair

    :cvar name: Unique identifier for this fetcher.
    :cvar BASE_URL: Default exchange API root.
    :cvar HEALTH_PATH: Path probed by health_check().
    :cvar SYMBOL_MAP: Canonical pair name to exchange symbol.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :cvar HEALTH_TIMEOUT: Timeout for health probes in seconds.
    :ivar base_url: Exchange API root in use.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""
    BASE_URL: ClassVar[str] = ""
    HEALTH_PATH: ClassVar[str] = ""
    SYMBOL_MAP: ClassVar[dict[str, str]] = {}

    DEFAULT_TIMEOUT = 5.0
    HEALTH_TIMEOUT = 3.0

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the fetcher.

        :param base_url: Optional override of the exchange API root.
        :param timeout: Request timeout in seconds (default: 5).
        :param client: Optional HTTP client; the shared client is used if omitted.
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseFetcher._shared_client is None or BaseFetcher._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, connect=5.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if BaseFetcher._shared_client is not None and not BaseFetcher._shared_client.is_closed:
            await BaseFetcher._shared_client.aclose()
            BaseFetcher._shared_client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client used for requests."""
        return self._client if self._client is not None else self.get_shared_client()

    def get_symbol(self, pair: str) -> str | None:
        """Map a canonical pair to this exchange's symbol.

        :param pair: Canonical pair name (e.g., "ETH/USD").
        :returns: Exchange symbol, or None if the pair is not listed here.
        """
        return self.SYMBOL_MAP.get(pair)

    def supports_pair(self, pair: str) -> bool:
        """Check if this fetcher quotes the given pair.

        :param pair: Canonical pair name.
        :returns: True if pair is supported.
        """
        return self.get_symbol(pair) is not None

    @abstractmethod
    async def fetch(self, pair: str) -> float | None:
        """Fetch the current raw price for a trading pair.

        :param pair: Canonical pair name (e.g., "ETH/USD").
        :returns: Current price as float, or None if fetch failed.
        """
        pass

    async def fetch_price(self, pair: str) -> PriceObservation | None:
        """Fetch one observation for a pair.

        :param pair: Canonical pair name.
        :returns: PriceObservation, or None if the exchange did not contribute.
        """
        if not self.supports_pair(pair):
            logger.debug(f"[{self.name}] Unsupported pair {pair}")
            return None

        price = await self.fetch(pair)
        return self._observe(pair, price)

    def _observe(
        self, pair: str, price: float | None, timestamp: int | None = None
    ) -> PriceObservation | None:
        """Validate a raw price and wrap it as an observation.

        :param pair: Canonical pair name.
        :param price: Raw price from the exchange.
        :param timestamp: Observation time in ms (default: now).
        :returns: PriceObservation, or None if the price is unusable.
        """
        if price is None:
            return None
        if not math.isfinite(price) or price <= 0:
            logger.warning(f"[{self.name}] Invalid price for {pair}: {price}")
            return None
        return PriceObservation(
            pair=pair,
            price=price,
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            source=self.name,
        )

    @property
    def supports_batch(self) -> bool:
        """Check if this fetcher supports batch fetching multiple pairs.

        Override in subclasses that implement fetch_batch() with actual
        batch API calls.

        :returns: True if batch fetching is supported.
        """
        return False

    async def fetch_batch(self, pairs: list[str]) -> dict[str, PriceObservation | None]:
        """Fetch observations for multiple trading pairs.

        Default implementation falls back to sequential individual fetches.

        :param pairs: Canonical pair names to fetch.
        :returns: Dict mapping pair to observation or None.
        """
        results: dict[str, PriceObservation | None] = {}
        for pair in pairs:
            results[pair] = await self.fetch_price(pair)
        return results

    async def health_check(self) -> bool:
        """Probe the exchange's status endpoint.

        :returns: True if the exchange answered and reported itself healthy.
        """
        if not self.HEALTH_PATH:
            return True
        try:
            response = await self._get(
                f"{self.base_url}{self.HEALTH_PATH}", timeout=self.HEALTH_TIMEOUT
            )
            return self.is_healthy_response(response.json())
        except FetcherError as e:
            logger.debug(f"[{self.name}] Health check failed: {e}")
            return False
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.debug(f"[{self.name}] Health check returned malformed payload: {e}")
            return False

    def is_healthy_response(self, data: Any) -> bool:
        """Interpret a health endpoint payload.

        Override for exchanges that report status inside a 200 response.

        :param data: Decoded JSON body of the health endpoint.
        :returns: True if healthy.
        """
        return True

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :param timeout: Optional per-request timeout (default: self.timeout).
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network/timeout errors.
        """
        try:
            response = await self.client.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout or self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FetcherHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

    async def _get_json(self, url: str, *, params: dict | None = None) -> Any:
        """GET a URL and decode the JSON body.

        :raises FetcherError: On transport or HTTP errors.
        :raises ValueError: If the body is not JSON.
        """
        response = await self._get(url, params=params)
        return response.json()


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name defined.

    .. code-block:: python

        @register_fetcher
        class KrakenFetcher(BaseFetcher):
            name = "kraken"
            ...
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(name: str, base_url: str | None = None, **kwargs: Any) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "coinbase", "kraken").
    :param base_url: Optional override of the exchange API root.
    :param kwargs: Extra constructor arguments (timeout, client, ...).
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](base_url=base_url, **kwargs)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
