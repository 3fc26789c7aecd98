"""Unit tests for CurrencyPair."""

import dataclasses

import pytest

from spotprice.src.CurrencyPair import CurrencyPair, InvalidRequest


class TestCurrencyPairBasics:
    """Test basic CurrencyPair functionality."""

    def test_init_normalizes_to_lowercase(self) -> None:
        """Symbols should be normalized to lowercase."""
        pair = CurrencyPair("ADA", "USDT")
        assert pair.base == "ada"
        assert pair.quote == "usdt"

    def test_init_strips_whitespace(self) -> None:
        """Surrounding whitespace should be removed."""
        pair = CurrencyPair(" ada ", "\tusdt\n")
        assert str(pair) == "ada/usdt"

    def test_str_format(self) -> None:
        """String format should be 'base/quote'."""
        assert str(CurrencyPair("eth", "usd")) == "eth/usd"

    def test_repr(self) -> None:
        """Repr should show normalized fields."""
        pair = CurrencyPair("ADA", "usdt")
        assert repr(pair) == "CurrencyPair(base='ada', quote='usdt')"

    def test_equality_ignores_case(self) -> None:
        """Pairs with same base/quote should be equal regardless of case."""
        assert CurrencyPair("btc", "usd") == CurrencyPair("BTC", "USD")
        assert hash(CurrencyPair("btc", "usd")) == hash(CurrencyPair("BTC", "USD"))

    def test_inequality(self) -> None:
        """Different pairs should not be equal."""
        assert CurrencyPair("btc", "usd") != CurrencyPair("eth", "usd")

    def test_usable_as_dict_key(self) -> None:
        """CurrencyPair should work as dictionary key."""
        d: dict[CurrencyPair, str] = {}
        d[CurrencyPair("btc", "usd")] = "value1"
        d[CurrencyPair("BTC", "USD")] = "value2"  # Should overwrite

        assert len(d) == 1
        assert d[CurrencyPair("btc", "usd")] == "value2"

    def test_immutable(self) -> None:
        """Fields cannot be reassigned."""
        pair = CurrencyPair("ada", "usdt")
        with pytest.raises(dataclasses.FrozenInstanceError):
            pair.base = "btc"  # type: ignore[misc]


class TestCurrencyPairValidation:
    """Test pair invariants."""

    @pytest.mark.parametrize("base,quote", [("", "usd"), ("btc", ""), ("   ", "usd")])
    def test_blank_symbol_rejected(self, base: str, quote: str) -> None:
        """Blank symbols should raise InvalidRequest."""
        with pytest.raises(InvalidRequest, match="non-blank"):
            CurrencyPair(base, quote)

    def test_same_base_and_quote_rejected(self) -> None:
        """Base equal to quote (after normalization) should raise."""
        with pytest.raises(InvalidRequest, match="must differ"):
            CurrencyPair("USDT", "usdt")

    def test_non_string_rejected(self) -> None:
        """Non-string symbols should raise."""
        with pytest.raises(InvalidRequest):
            CurrencyPair(None, "usd")  # type: ignore[arg-type]

    def test_invalid_request_is_value_error(self) -> None:
        """InvalidRequest should be catchable as ValueError."""
        assert issubclass(InvalidRequest, ValueError)


class TestCurrencyPairFromString:
    """Test CurrencyPair.from_string() parsing."""

    def test_valid_pair(self) -> None:
        """Parse valid pair string."""
        pair = CurrencyPair.from_string("ada/usdt")
        assert pair == CurrencyPair("ada", "usdt")

    def test_mixed_case(self) -> None:
        """Mixed case should be normalized."""
        pair = CurrencyPair.from_string("AdA/UsDt")
        assert pair.base == "ada"
        assert pair.quote == "usdt"

    def test_dash_separator(self) -> None:
        """Dash separated pairs should be accepted."""
        assert CurrencyPair.from_string("BTC-USD") == CurrencyPair("btc", "usd")

    def test_invalid_no_separator(self) -> None:
        """String without separator should raise InvalidRequest."""
        with pytest.raises(InvalidRequest, match="Invalid pair format"):
            CurrencyPair.from_string("btcusd")

    def test_invalid_too_many_slashes(self) -> None:
        """String with too many slashes should raise InvalidRequest."""
        with pytest.raises(InvalidRequest, match="Invalid pair format"):
            CurrencyPair.from_string("btc/usd/extra")

    def test_invalid_empty(self) -> None:
        """Empty string should raise InvalidRequest."""
        with pytest.raises(InvalidRequest, match="Invalid pair format"):
            CurrencyPair.from_string("")

    def test_invalid_only_slash(self) -> None:
        """Single slash splits into two blank symbols and is rejected."""
        with pytest.raises(InvalidRequest, match="non-blank"):
            CurrencyPair.from_string("/")
