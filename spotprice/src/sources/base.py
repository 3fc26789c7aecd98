"""Base price source interface and HTTP helpers.

All price sources inherit from BaseSource and implement ``fetch_price()``,
which returns a Decimal price or raises :class:`SourceError`. The public
``fetch()`` wraps it with the deadline and classifies every ordinary
failure into a :class:`SourceFailure`, so callers never see exceptions for
network or parse problems.

.. code-block:: python

    @register_source
    class MySource(BaseSource):
        name = "mysource"

        async def fetch_price(self, pair: CurrencyPair) -> Decimal:
            response = await self._get(f"https://api.example.com/{pair.base}/{pair.quote}")
            return parse_price(self._json(response)["price"])
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

from ..AggregationResult import FailureKind, PriceObservation, SourceFailure
from ..CurrencyPair import CurrencyPair

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Classified failure raised inside a source adapter.

    :ivar kind: Failure classification reported to the aggregator.
    """

    def __init__(self, kind: FailureKind, message: str):
        """Initialize the error.

        :param kind: Failure classification.
        :param message: Error detail.
        """
        self.kind = kind
        super().__init__(message)


class SourceHTTPError(SourceError):
    """Raised when an HTTP request returns a non-2xx status.

    429 (and Binance's 418 ban) map to rate limiting, 5xx to network errors,
    any other status to an invalid response.

    :ivar status_code: HTTP status code from the failed request.
    :ivar body: Truncated response body.
    """

    def __init__(self, status_code: int, body: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param body: Error message from response.
        """
        self.status_code = status_code
        self.body = body
        if status_code in (418, 429):
            kind = FailureKind.RATE_LIMITED
        elif status_code >= 500:
            kind = FailureKind.NETWORK_ERROR
        else:
            kind = FailureKind.INVALID_RESPONSE
        super().__init__(kind, f"HTTP {status_code}: {body}")


def parse_price(value: Any) -> Decimal:
    """Convert a raw API price value to Decimal.

    Strings are parsed as-is; floats go through ``str()`` so that ``0.35``
    stays ``Decimal('0.35')``.

    :param value: Price as returned by the API.
    :returns: Parsed price (positivity is checked by the caller).
    :raises SourceError: If the value is not numeric.
    """
    if isinstance(value, bool) or value is None:
        raise SourceError(FailureKind.INVALID_RESPONSE, f"Not a price: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise SourceError(FailureKind.INVALID_RESPONSE, f"Not a price: {value!r}") from e


class BaseSource(ABC):
    """Abstract base class for price sources.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "binance")
        - fetch_price(): Async method returning the price for a pair

    Each instance owns its HTTP client, so instances are independent and
    safe to share across concurrent aggregation calls.

    :cvar name: Unique identifier for this source.
    :cvar DEFAULT_TIMEOUT: Default per-request timeout in seconds.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the source.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 10).
        :param client: Optional HTTP client; one is created lazily if omitted.
        :raises ValueError: If timeout is not positive.
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"[{self.name}] timeout must be positive, got {timeout}")
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._client = client
        self._owns_client = client is None

    @property
    def has_api_key(self) -> bool:
        """Check if this source has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client for this source."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, pair: CurrencyPair, deadline: float) -> PriceObservation | SourceFailure:
        """Fetch a price for ``pair`` without blocking past ``deadline``.

        :param pair: Pair to price.
        :param deadline: Absolute event loop time (``loop.time()``) by which
            the call must return.
        :returns: An observation, or a classified failure.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        remaining = deadline - started
        if remaining <= 0:
            return SourceFailure(self.name, FailureKind.TIMEOUT, "Deadline already passed", 0)

        budget = min(remaining, self.timeout)
        try:
            price = await asyncio.wait_for(self.fetch_price(pair), timeout=budget)
        except SourceError as e:
            logger.debug(f"[{self.name}] {pair}: {e.kind.value}: {e}")
            return SourceFailure(self.name, e.kind, str(e))
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return SourceFailure(self.name, FailureKind.TIMEOUT, f"No response within {budget:.3f}s")
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"[{self.name}] {pair}: unparseable response: {e!r}")
            return SourceFailure(self.name, FailureKind.INVALID_RESPONSE, f"Unparseable response: {e!r}")

        if not price.is_finite() or price <= 0:
            logger.warning(f"[{self.name}] {pair}: rejecting non-positive price {price}")
            return SourceFailure(
                self.name, FailureKind.INVALID_RESPONSE, f"Non-positive or non-finite price: {price}"
            )

        return PriceObservation(
            source=self.name,
            price=price,
            observed_at=datetime.now(timezone.utc),
            latency=loop.time() - started,
        )

    @abstractmethod
    async def fetch_price(self, pair: CurrencyPair) -> Decimal:
        """Fetch the current price for a trading pair.

        :param pair: Pair to price.
        :returns: Current price.
        :raises SourceError: On any classified failure.
        """
        pass

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using this source's client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises SourceHTTPError: On non-2xx response.
        :raises SourceError: On network/timeout errors.
        """
        try:
            response = await self.client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise SourceError(FailureKind.TIMEOUT, f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise SourceError(FailureKind.NETWORK_ERROR, f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise SourceHTTPError(response.status_code, response.text[:200])
        return response

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body.

        :raises SourceError: If the body is not valid JSON.
        """
        try:
            return response.json()
        except ValueError as e:
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Malformed JSON: {e}") from e


# Registry of available sources (populated by subclass imports)
SOURCE_REGISTRY: dict[str, type[BaseSource]] = {}


def register_source(cls: type[BaseSource]) -> type[BaseSource]:
    """Decorator to register a source class in the registry.

    :param cls: Source class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If source has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Source {cls.__name__} must define a 'name' class variable")
    SOURCE_REGISTRY[cls.name] = cls
    return cls


def get_source(
    name: str,
    api_key: str | None = None,
    timeout: float | None = None,
) -> BaseSource:
    """Get a source instance by name.

    :param name: Source name (e.g., "binance", "coingecko").
    :param api_key: Optional API key.
    :param timeout: Optional per-request timeout in seconds.
    :returns: Source instance.
    :raises ValueError: If source name is unknown.
    """
    if name not in SOURCE_REGISTRY:
        available = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{name}'. Available: {available}")
    return SOURCE_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_sources() -> list[str]:
    """Get list of available source names.

    :returns: Sorted list of registered source names.
    """
    return sorted(SOURCE_REGISTRY.keys())
