"""Reducer: Consensus strategies turning observations into one price.

Strategies:
    - median: middle value (mean of the two middle values for even counts)
    - mean_outlier: median, drop observations deviating more than
      max_deviation_percent from it, then take the arithmetic mean
    - primary: price of the highest-priority source that answered

All strategies are pure and deterministic for a given observation sequence,
and every strategy reports a QualityScore computed from the observations it
used.

.. code-block:: python

    >>> reducer = MeanWithOutlierRejectionReducer(max_deviation_percent=5.0)
    >>> outcome = reducer.reduce(observations)  # 100, 101, 99, 1000
    >>> outcome.price
    Decimal('100')
    >>> [o.source for o in outcome.excluded]
    ['rogue']
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from statistics import median as _median
from typing import ClassVar, Sequence

from .AggregationResult import PriceObservation, QualityScore


@dataclass(frozen=True)
class ReductionOutcome:
    """Result of applying a consensus strategy.

    :ivar price: Consensus price.
    :ivar used: Observations that backed the price, in input order.
    :ivar excluded: Observations that were not used, in input order.
    :ivar quality: Agreement among the used observations.
    """

    price: Decimal
    used: tuple[PriceObservation, ...]
    excluded: tuple[PriceObservation, ...]
    quality: QualityScore


class Reducer(ABC):
    """Abstract consensus strategy.

    :cvar name: Strategy identifier used in results and configuration.
    """

    name: ClassVar[str] = ""

    def reduce(self, observations: Sequence[PriceObservation]) -> ReductionOutcome:
        """Reduce a non-empty observation sequence to one price.

        :param observations: Successful observations, in configured source order.
        :returns: Consensus outcome with quality score.
        :raises ValueError: If observations is empty.
        """
        if not observations:
            raise ValueError(f"{self.name} requires at least one observation")

        price, used = self._select(list(observations))
        used_ids = {id(o) for o in used}
        excluded = tuple(o for o in observations if id(o) not in used_ids)
        return ReductionOutcome(
            price=price,
            used=tuple(used),
            excluded=excluded,
            quality=QualityScore.from_observations(used, price),
        )

    @abstractmethod
    def _select(
        self, observations: list[PriceObservation]
    ) -> tuple[Decimal, list[PriceObservation]]:
        """Return the consensus price and the observations used for it."""
        pass


def median_price(observations: Sequence[PriceObservation]) -> Decimal:
    """Median of observation prices."""
    return _median(o.price for o in observations)


class MedianReducer(Reducer):
    """Median of all observations; every observation counts as used."""

    name = "median"

    def _select(self, observations):
        return median_price(observations), observations


class MeanWithOutlierRejectionReducer(Reducer):
    """Mean of observations within a deviation band around the median.

    The algorithm:
        1. Calculates the median across all observations
        2. Drops observations deviating > max_deviation_percent from the median
           (a deviation exactly at the threshold is kept)
        3. Returns the arithmetic mean of the remaining observations
        4. Falls back to the median of all observations if every one was dropped

    :ivar max_deviation_percent: Max allowed deviation from the median.
    """

    name = "mean_outlier"

    def __init__(self, max_deviation_percent: float = 5.0) -> None:
        """Initialize the reducer.

        :param max_deviation_percent: Maximum allowed deviation from median
            before an observation is considered an outlier (default 5%).
        :raises ValueError: If the threshold is not positive.
        """
        if max_deviation_percent <= 0:
            raise ValueError("max_deviation_percent must be positive")
        self.max_deviation_percent = max_deviation_percent

    def _select(self, observations):
        initial_median = median_price(observations)
        threshold = Decimal(str(self.max_deviation_percent))

        kept = [
            o
            for o in observations
            if abs(o.price - initial_median) / initial_median * 100 <= threshold
        ]
        if not kept:
            return initial_median, observations

        return sum((o.price for o in kept), Decimal(0)) / len(kept), kept


class PrimaryWithFallbackReducer(Reducer):
    """Price of the highest-priority source that produced an observation.

    Sources missing from the priority list rank after the listed ones, in
    configured order. Other observations are ignored, never averaged in.

    :ivar priority: Source names, most authoritative first.
    """

    name = "primary"

    def __init__(self, priority: Sequence[str]) -> None:
        """Initialize the reducer.

        :param priority: Source names in priority order.
        :raises ValueError: If priority is empty.
        """
        if not priority:
            raise ValueError("priority must name at least one source")
        self.priority = tuple(priority)

    def _select(self, observations):
        rank = {name: i for i, name in enumerate(self.priority)}
        chosen = min(
            enumerate(observations),
            key=lambda item: (rank.get(item[1].source, len(rank)), item[0]),
        )[1]
        return chosen.price, [chosen]


REDUCERS: dict[str, type[Reducer]] = {
    MedianReducer.name: MedianReducer,
    MeanWithOutlierRejectionReducer.name: MeanWithOutlierRejectionReducer,
    PrimaryWithFallbackReducer.name: PrimaryWithFallbackReducer,
}


def get_reducer(
    name: str,
    *,
    max_deviation_percent: float = 5.0,
    priority: Sequence[str] | None = None,
) -> Reducer:
    """Build a consensus strategy by name.

    :param name: One of "median", "mean_outlier", "primary".
    :param max_deviation_percent: Outlier threshold for "mean_outlier".
    :param priority: Source priority for "primary".
    :returns: Reducer instance.
    :raises ValueError: If the name is unknown or options are invalid.
    """
    if name == MedianReducer.name:
        return MedianReducer()
    if name == MeanWithOutlierRejectionReducer.name:
        return MeanWithOutlierRejectionReducer(max_deviation_percent=max_deviation_percent)
    if name == PrimaryWithFallbackReducer.name:
        return PrimaryWithFallbackReducer(priority or ())
    available = ", ".join(sorted(REDUCERS))
    raise ValueError(f"Unknown strategy '{name}'. Available: {available}")
