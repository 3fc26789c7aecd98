"""CoinGecko aggregator source.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies={quote}
Rate Limit: 30 calls/min (free), higher with API key
"""

import logging
from decimal import Decimal

from ..AggregationResult import FailureKind
from ..CurrencyPair import CurrencyPair
from .base import BaseSource, SourceError, parse_price, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinGeckoSource(BaseSource):
    """Source for the CoinGecko simple price API.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    Pro keys need no prefix: API_KEY_COINGECKO=xxxxx
    """

    name = "coingecko"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    # Map common symbols to CoinGecko IDs
    COIN_IDS = {
        "ada": "cardano",
        "btc": "bitcoin",
        "eth": "ethereum",
        "usdt": "tether",
        "usdc": "usd-coin",
        "sol": "solana",
        "xrp": "ripple",
        "dot": "polkadot",
        "atom": "cosmos",
        "link": "chainlink",
        "ltc": "litecoin",
        "doge": "dogecoin",
        "matic": "matic-network",
        "avax": "avalanche-2",
    }

    def __init__(self, api_key: str | None = None, timeout: float | None = None, client=None):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]  # Strip "demo:" prefix
        super().__init__(api_key=api_key, timeout=timeout, client=client)

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if not self.has_api_key:
            return self.BASE_URL_FREE
        return self.BASE_URL_FREE if self._is_demo else self.BASE_URL_PRO

    @property
    def api_header(self) -> tuple[str, str] | None:
        """Return appropriate header name and value for API key."""
        if not self.api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return (header_name, self.api_key)

    async def fetch_price(self, pair: CurrencyPair) -> Decimal:
        """Fetch price from CoinGecko.

        :param pair: Pair to price (e.g., ada/usdt).
        :returns: Current price.
        :raises SourceError: On unknown coin, missing quote, HTTP or parse failure.
        """
        coin_id = self.COIN_IDS.get(pair.base)
        if not coin_id:
            raise SourceError(FailureKind.UNSUPPORTED_PAIR, f"Unknown coin: {pair.base}")

        headers = {}
        if self.api_header:
            header_name, header_value = self.api_header
            headers[header_name] = header_value

        response = await self._get(
            f"{self.base_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": pair.quote},
            headers=headers if headers else None,
        )
        data = self._json(response)

        if not isinstance(data, dict) or coin_id not in data:
            logger.warning(f"[coingecko] Coin {coin_id} not in response: {data}")
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Coin {coin_id} not in response")

        quotes = data[coin_id]
        if not isinstance(quotes, dict):
            raise SourceError(FailureKind.INVALID_RESPONSE, f"Malformed quotes for {coin_id}: {quotes}")

        if pair.quote not in quotes:
            raise SourceError(
                FailureKind.UNSUPPORTED_PAIR,
                f"Quote {pair.quote} not available for {coin_id}",
            )

        return parse_price(quotes[pair.quote])
