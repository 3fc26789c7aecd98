"""Kraken source.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={BASE}{QUOTE}
Rate Limit: High (no key required)
"""

import logging
from decimal import Decimal

from ..AggregationResult import FailureKind
from ..CurrencyPair import CurrencyPair
from .base import BaseSource, SourceError, parse_price, register_source

logger = logging.getLogger(__name__)


@register_source
class KrakenSource(BaseSource):
    """Source for Kraken public API.

    Kraken reports errors in a JSON ``error`` list with HTTP 200, so
    classification happens on the body rather than the status code.
    """

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"

    # Kraken uses non-standard ticker symbols
    SYMBOL_MAP = {
        "btc": "XBT",  # Kraken uses XBT instead of BTC
        "doge": "XDG",
    }

    def symbol_for(self, pair: CurrencyPair) -> str:
        """Return the Kraken pair name (e.g., "XBTUSD")."""
        kraken_base = self.SYMBOL_MAP.get(pair.base, pair.base.upper())
        kraken_quote = self.SYMBOL_MAP.get(pair.quote, pair.quote.upper())
        return f"{kraken_base}{kraken_quote}"

    async def fetch_price(self, pair: CurrencyPair) -> Decimal:
        """Fetch price from Kraken.

        :param pair: Pair to price (e.g., btc/usd).
        :returns: Last trade closed price.
        :raises SourceError: On unknown pair, API error or parse failure.
        """
        kraken_pair = self.symbol_for(pair)
        response = await self._get(f"{self.BASE_URL}/Ticker", params={"pair": kraken_pair})
        data = self._json(response)

        if not isinstance(data, dict):
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Unexpected body: {data}")

        errors = data.get("error") or []
        if errors:
            if any("Unknown asset pair" in str(err) for err in errors):
                raise SourceError(FailureKind.UNSUPPORTED_PAIR, f"Unknown asset pair {kraken_pair}")
            if any("Too many requests" in str(err) or "Rate limit" in str(err) for err in errors):
                raise SourceError(FailureKind.RATE_LIMITED, f"Rate limited: {errors}")
            logger.warning(f"[kraken] API error for {kraken_pair}: {errors}")
            raise SourceError(FailureKind.INVALID_RESPONSE, f"API error: {errors}")

        result = data.get("result") or {}
        if not isinstance(result, dict):
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Malformed result for {kraken_pair}")
        if not result:
            raise SourceError(FailureKind.INVALID_RESPONSE, f"No result for {kraken_pair}")

        # Kraken may return an alternate key (e.g., XXBTZUSD), so take the only entry
        pair_data = list(result.values())[0]

        # 'c' is the last trade closed array: [price, lot volume]
        try:
            price = pair_data["c"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Malformed ticker: {e}") from e
        return parse_price(price)
