"""Unit tests for the aggregation value types."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from spotprice.src.AggregationResult import (
    AggregationResult,
    FailureKind,
    PriceObservation,
    QualityScore,
    SourceFailure,
)
from spotprice.src.CurrencyPair import CurrencyPair


class TestFailureKind:
    """Test failure classification helpers."""

    def test_transient_kinds(self) -> None:
        """Only network errors and rate limiting are transient."""
        transient = {k for k in FailureKind if k.is_transient}
        assert transient == {FailureKind.NETWORK_ERROR, FailureKind.RATE_LIMITED}


class TestPriceObservation:
    """Test observation invariants."""

    @pytest.mark.parametrize("price", ["0", "-1", "NaN", "Infinity"])
    def test_rejects_bad_price(self, price) -> None:
        with pytest.raises(ValueError, match="price must be positive"):
            PriceObservation("a", Decimal(price), datetime.now(timezone.utc), 0.0)


class TestQualityScore:
    """Test quality score computation."""

    def test_from_observations(self, observation) -> None:
        score = QualityScore.from_observations(
            [observation("a", 99), observation("b", 102)], Decimal("100")
        )
        assert score.agreement_count == 2
        assert score.max_deviation == Decimal("0.02")

    def test_empty(self) -> None:
        score = QualityScore.from_observations([], Decimal("100"))
        assert score == QualityScore()
        assert score.agreement_count == 0

    def test_is_acceptable(self) -> None:
        score = QualityScore(agreement_count=3, max_deviation=Decimal("0.02"))
        assert score.is_acceptable(max_deviation_percent=2.0)
        assert not score.is_acceptable(max_deviation_percent=1.5)
        assert not score.is_acceptable(max_deviation_percent=5.0, min_agreement=4)


class TestAggregationResult:
    """Test the result object."""

    def test_failed_result(self) -> None:
        result = AggregationResult(pair=CurrencyPair("ada", "usdt"), consensus_price=None)
        assert not result.success
        assert result.error == "insufficient_sources"

    def test_to_dict_is_json_serializable(self, observation) -> None:
        result = AggregationResult(
            pair=CurrencyPair("ada", "usdt"),
            consensus_price=Decimal("0.3521"),
            contributing_sources=(observation("binance", "0.3521", latency=0.0425),),
            failures=(SourceFailure("kraken", FailureKind.UNSUPPORTED_PAIR, "Unknown asset pair"),),
            quality=QualityScore(1, Decimal(0)),
            strategy="median",
        )
        data = json.loads(json.dumps(result.to_dict()))

        assert data["pair"] == "ada/usdt"
        assert data["consensus_price"] == "0.3521"
        assert data["error"] is None
        assert data["contributing_sources"][0]["source"] == "binance"
        assert data["contributing_sources"][0]["latency_ms"] == 42.5
        assert data["failures"] == [
            {
                "source": "kraken",
                "kind": "unsupported_pair",
                "message": "Unknown asset pair",
                "attempts": 1,
            }
        ]
