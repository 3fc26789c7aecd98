"""Coinbase Exchange source.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
Rate Limit: High (no key required)
"""

import logging
from decimal import Decimal

from ..AggregationResult import FailureKind
from ..CurrencyPair import CurrencyPair
from .base import BaseSource, SourceError, SourceHTTPError, parse_price, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinbaseSource(BaseSource):
    """Source for Coinbase Exchange API.

    No API key required for public ticker endpoint. Unknown products are
    answered with HTTP 404.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_price(self, pair: CurrencyPair) -> Decimal:
        """Fetch price from Coinbase Exchange.

        :param pair: Pair to price (e.g., ada/usd).
        :returns: Last traded price.
        :raises SourceError: On unknown product, HTTP or parse failure.
        """
        symbol = f"{pair.base.upper()}-{pair.quote.upper()}"

        try:
            response = await self._get(f"{self.BASE_URL}/products/{symbol}/ticker")
        except SourceHTTPError as e:
            if e.status_code == 404:
                raise SourceError(FailureKind.UNSUPPORTED_PAIR, f"Product {symbol} not found") from e
            raise

        data = self._json(response)
        if not isinstance(data, dict) or "price" not in data:
            logger.warning(f"[coinbase] No price in response for {symbol}: {data}")
            raise SourceError(FailureKind.INVALID_RESPONSE, f"No price for {symbol}")

        return parse_price(data["price"])
