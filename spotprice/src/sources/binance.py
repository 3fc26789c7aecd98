"""Binance spot ticker source.

Endpoint: https://api.binance.com/api/v3/ticker/price?symbol={BASE}{QUOTE}
Rate Limit: High (no key required for public endpoints); 429 on excess,
418 once the IP is banned.
"""

import json
import logging
from decimal import Decimal

from ..AggregationResult import FailureKind
from ..CurrencyPair import CurrencyPair
from .base import BaseSource, SourceError, SourceHTTPError, parse_price, register_source

logger = logging.getLogger(__name__)


@register_source
class BinanceSource(BaseSource):
    """Source for Binance public ticker prices.

    Binance lists pairs as concatenated upper-case symbols, e.g. ADA/USDT
    becomes ``ADAUSDT``. Unknown symbols are answered with HTTP 400 and
    error code -1121.
    """

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"

    # Binance error code for "Invalid symbol."
    INVALID_SYMBOL_CODE = -1121

    @staticmethod
    def symbol_for(pair: CurrencyPair) -> str:
        """Return the Binance symbol for a pair (e.g., "ADAUSDT")."""
        return f"{pair.base.upper()}{pair.quote.upper()}"

    async def fetch_price(self, pair: CurrencyPair) -> Decimal:
        """Fetch price from Binance.

        :param pair: Pair to price (e.g., ada/usdt).
        :returns: Last traded price.
        :raises SourceError: On unsupported symbol, HTTP or parse failure.
        """
        symbol = self.symbol_for(pair)
        url = f"{self.BASE_URL}/ticker/price"

        try:
            response = await self._get(url, params={"symbol": symbol})
        except SourceHTTPError as e:
            if e.status_code == 400 and self._error_code(e.body) == self.INVALID_SYMBOL_CODE:
                raise SourceError(
                    FailureKind.UNSUPPORTED_PAIR, f"Symbol {symbol} not listed"
                ) from e
            raise

        data = self._json(response)
        if not isinstance(data, dict) or "price" not in data:
            logger.warning(f"[binance] No price for {symbol}: {data}")
            raise SourceError(FailureKind.INVALID_RESPONSE, f"No price for {symbol}")

        return parse_price(data["price"])

    @staticmethod
    def _error_code(body: str) -> int | None:
        """Extract Binance's numeric error code from an error body."""
        try:
            code = json.loads(body).get("code")
        except (ValueError, AttributeError):
            return None
        return code if isinstance(code, int) else None
