"""CurrencyPair: Validated trading pair identifying what is being priced.

Symbols are stripped and normalized to lowercase so that ``ADA/USDT`` and
``ada/usdt`` refer to the same pair.

.. code-block:: python

    >>> pair = CurrencyPair("ADA", "USDT")
    >>> str(pair)
    'ada/usdt'
    >>> CurrencyPair.from_string("btc/usd").base
    'btc'
"""

from __future__ import annotations

from dataclasses import dataclass


class InvalidRequest(ValueError):
    """Raised when a price request is malformed, before any source is queried."""

    pass


@dataclass(frozen=True)
class CurrencyPair:
    """An immutable base/quote trading pair.

    :ivar base: Base currency symbol (lowercase), e.g. "ada".
    :ivar quote: Quote currency symbol (lowercase), e.g. "usdt".
    """

    base: str
    quote: str

    def __post_init__(self) -> None:
        """Normalize symbols and enforce pair invariants.

        :raises InvalidRequest: If a symbol is blank or base equals quote.
        """
        if not isinstance(self.base, str) or not isinstance(self.quote, str):
            raise InvalidRequest("Pair symbols must be strings")

        base = self.base.strip().lower()
        quote = self.quote.strip().lower()

        if not base or not quote:
            raise InvalidRequest(
                f"Pair symbols must be non-blank (got base={self.base!r}, quote={self.quote!r})"
            )
        if base == quote:
            raise InvalidRequest(f"Base and quote must differ (got {base}/{quote})")

        # Frozen dataclass: bypass __setattr__ to store normalized values
        object.__setattr__(self, "base", base)
        object.__setattr__(self, "quote", quote)

    def __str__(self) -> str:
        """Return the canonical "base/quote" form."""
        return f"{self.base}/{self.quote}"

    @classmethod
    def from_string(cls, pair_str: str) -> CurrencyPair:
        """Parse a pair string in format "base/quote" (or "base-quote").

        :param pair_str: Pair string like "ada/usdt" or "BTC-USD".
        :returns: New CurrencyPair instance.
        :raises InvalidRequest: If pair string format is invalid.

        .. code-block:: python

            >>> CurrencyPair.from_string("ADA-USDT")
            CurrencyPair(base='ada', quote='usdt')
        """
        if not isinstance(pair_str, str):
            raise InvalidRequest(f"Invalid pair {pair_str!r}. Expected 'base/quote'")

        separator = "/" if "/" in pair_str else "-"
        parts = pair_str.split(separator)
        if len(parts) != 2:
            raise InvalidRequest(
                f"Invalid pair format '{pair_str}'. Expected 'base/quote' (e.g., 'ada/usdt')"
            )
        return cls(parts[0], parts[1])
