"""Unit tests for the consensus strategies."""

from decimal import Decimal

import pytest

from spotprice.src.Reducer import (
    MeanWithOutlierRejectionReducer,
    MedianReducer,
    PrimaryWithFallbackReducer,
    get_reducer,
)


class TestMedianReducer:
    """Test median consensus."""

    def test_simple_median_odd(self, observation) -> None:
        """Median of odd number of values."""
        obs = [observation("a", 100), observation("b", 102), observation("c", 101)]
        outcome = MedianReducer().reduce(obs)

        assert outcome.price == Decimal("101")
        assert outcome.quality.agreement_count == 3

    def test_simple_median_even(self, observation) -> None:
        """Median of even number of values is the mean of the middle two."""
        outcome = MedianReducer().reduce([observation("a", 100), observation("b", 101)])

        assert outcome.price == Decimal("100.5")
        assert outcome.quality.agreement_count == 2

    def test_single_observation(self, observation) -> None:
        """A single observation is its own median with zero deviation."""
        outcome = MedianReducer().reduce([observation("a", "0.3521")])

        assert outcome.price == Decimal("0.3521")
        assert outcome.quality.max_deviation == 0
        assert outcome.excluded == ()

    @pytest.mark.parametrize(
        "prices",
        [
            [1, 2, 3],
            [5, 5, 5, 5],
            [0.001, 1000, 3],
            [10, 20],
            ["0.35", "0.351", "0.349", "0.36", "0.2"],
        ],
    )
    def test_median_within_range(self, observation, prices) -> None:
        """Median always lies within [min, max] of the observed prices."""
        obs = [observation(f"s{i}", p) for i, p in enumerate(prices)]
        outcome = MedianReducer().reduce(obs)

        values = [o.price for o in obs]
        assert min(values) <= outcome.price <= max(values)

    def test_max_deviation(self, observation) -> None:
        """Max deviation is the largest relative distance from the median."""
        obs = [observation("a", 90), observation("b", 100), observation("c", 105)]
        outcome = MedianReducer().reduce(obs)

        assert outcome.price == Decimal("100")
        assert outcome.quality.max_deviation == Decimal("0.1")

    def test_empty_observations_rejected(self) -> None:
        """Reducing nothing is a programming error."""
        with pytest.raises(ValueError, match="at least one observation"):
            MedianReducer().reduce([])


class TestMeanWithOutlierRejection:
    """Test mean with outlier rejection."""

    def test_invalid_threshold(self) -> None:
        """max_deviation_percent <= 0 should raise ValueError."""
        with pytest.raises(ValueError, match="max_deviation_percent must be positive"):
            MeanWithOutlierRejectionReducer(max_deviation_percent=0)

        with pytest.raises(ValueError, match="max_deviation_percent must be positive"):
            MeanWithOutlierRejectionReducer(max_deviation_percent=-1)

    def test_default_threshold(self) -> None:
        """Default threshold is 5%."""
        assert MeanWithOutlierRejectionReducer().max_deviation_percent == 5.0

    def test_outlier_excluded(self, observation) -> None:
        """A wildly deviating price is dropped and the rest averaged."""
        obs = [
            observation("a", 100),
            observation("b", 101),
            observation("c", 99),
            observation("rogue", 1000),
        ]
        outcome = MeanWithOutlierRejectionReducer(max_deviation_percent=5.0).reduce(obs)

        assert outcome.price == Decimal("100")
        assert outcome.quality.agreement_count == 3
        assert [o.source for o in outcome.excluded] == ["rogue"]
        assert [o.source for o in outcome.used] == ["a", "b", "c"]

    def test_multiple_outliers(self, observation) -> None:
        """Multiple outliers should all be excluded."""
        obs = [
            observation("a", 100),
            observation("b", 101),
            observation("c", 102),
            observation("rogue1", 50),
            observation("rogue2", 200),
        ]
        outcome = MeanWithOutlierRejectionReducer().reduce(obs)

        assert {o.source for o in outcome.excluded} == {"rogue1", "rogue2"}
        assert outcome.price == Decimal("101")

    def test_borderline_deviation_kept(self, observation) -> None:
        """Price exactly at deviation threshold should be included."""
        # median=100, 95 and 105 deviate exactly 5%
        obs = [observation("a", 95), observation("b", 100), observation("c", 105)]
        outcome = MeanWithOutlierRejectionReducer(max_deviation_percent=5.0).reduce(obs)

        assert outcome.quality.agreement_count == 3
        assert outcome.excluded == ()
        assert outcome.price == Decimal("100")

    def test_all_rejected_falls_back_to_median(self, observation) -> None:
        """If every observation is an outlier, the median of all is returned."""
        # median of [100, 150] = 125, both deviate 20% which is >1%
        obs = [observation("a", 100), observation("b", 150)]
        outcome = MeanWithOutlierRejectionReducer(max_deviation_percent=1.0).reduce(obs)

        assert outcome.price == Decimal("125")
        assert outcome.quality.agreement_count == 2
        assert outcome.excluded == ()

    def test_max_deviation_over_kept_observations(self, observation) -> None:
        """Quality is computed against the mean, over kept observations only."""
        obs = [observation("a", 98), observation("b", 102), observation("rogue", 500)]
        outcome = MeanWithOutlierRejectionReducer().reduce(obs)

        assert outcome.price == Decimal("100")
        assert outcome.quality.max_deviation == Decimal("0.02")


class TestPrimaryWithFallback:
    """Test primary source selection."""

    def test_empty_priority_rejected(self) -> None:
        """A priority list is required."""
        with pytest.raises(ValueError, match="priority"):
            PrimaryWithFallbackReducer([])

    def test_primary_wins(self, observation) -> None:
        """Highest-priority source is used even if others disagree."""
        reducer = PrimaryWithFallbackReducer(["A", "B"])
        outcome = reducer.reduce([observation("A", 50), observation("B", 60)])

        assert outcome.price == Decimal("50")
        assert outcome.quality.agreement_count == 1
        assert [o.source for o in outcome.excluded] == ["B"]

    def test_priority_independent_of_input_order(self, observation) -> None:
        """Priority decides, not the order observations arrive in."""
        reducer = PrimaryWithFallbackReducer(["A", "B"])
        outcome = reducer.reduce([observation("B", 60), observation("A", 50)])

        assert outcome.price == Decimal("50")

    def test_fallback_when_primary_missing(self, observation) -> None:
        """Next source in priority is used when the primary did not answer."""
        reducer = PrimaryWithFallbackReducer(["A", "B"])
        outcome = reducer.reduce([observation("B", 60)])

        assert outcome.price == Decimal("60")
        assert outcome.quality.agreement_count == 1
        assert outcome.quality.max_deviation == 0

    def test_unlisted_sources_rank_last(self, observation) -> None:
        """Sources missing from priority are used only if no listed source answered."""
        reducer = PrimaryWithFallbackReducer(["A"])

        assert reducer.reduce([observation("X", 70), observation("A", 50)]).price == Decimal("50")
        assert reducer.reduce([observation("X", 70), observation("Y", 80)]).price == Decimal("70")


class TestGetReducer:
    """Test building strategies by name."""

    def test_median(self) -> None:
        assert isinstance(get_reducer("median"), MedianReducer)

    def test_mean_outlier_with_threshold(self) -> None:
        reducer = get_reducer("mean_outlier", max_deviation_percent=2.5)
        assert isinstance(reducer, MeanWithOutlierRejectionReducer)
        assert reducer.max_deviation_percent == 2.5

    def test_primary_with_priority(self) -> None:
        reducer = get_reducer("primary", priority=["binance", "coingecko"])
        assert isinstance(reducer, PrimaryWithFallbackReducer)
        assert reducer.priority == ("binance", "coingecko")

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown strategy 'vwap'"):
            get_reducer("vwap")
