"""Value types produced by a single aggregation call.

All types here are immutable and created fresh per ``get_price`` call.

.. code-block:: python

    >>> result = await aggregator.get_price("ada/usdt", deadline_ms=3000)
    >>> result.success
    True
    >>> result.consensus_price
    Decimal('0.3521')
    >>> result.quality.agreement_count
    2
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .CurrencyPair import CurrencyPair


class FailureKind(str, Enum):
    """Why a source did not contribute an observation."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INVALID_RESPONSE = "invalid_response"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED_PAIR = "unsupported_pair"

    @property
    def is_transient(self) -> bool:
        """Whether a retry may succeed (network errors and rate limiting only)."""
        return self in (FailureKind.NETWORK_ERROR, FailureKind.RATE_LIMITED)


@dataclass(frozen=True)
class PriceObservation:
    """A single successful price reading from one source.

    :ivar source: Source name (e.g., "binance").
    :ivar price: Observed price, always finite and positive.
    :ivar observed_at: UTC time the reading was taken.
    :ivar latency: Seconds spent fetching the price.
    """

    source: str
    price: Decimal
    observed_at: datetime
    latency: float

    def __post_init__(self) -> None:
        if not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"[{self.source}] price must be positive, got {self.price}")


@dataclass(frozen=True)
class SourceFailure:
    """Records why a source did not contribute.

    :ivar source: Source name.
    :ivar kind: Classified failure kind.
    :ivar message: Human readable detail for diagnostics.
    :ivar attempts: Number of calls made to the source (0 if never called).
    """

    source: str
    kind: FailureKind
    message: str
    attempts: int = 1


@dataclass(frozen=True)
class QualityScore:
    """Agreement among the observations backing a consensus price.

    :ivar agreement_count: Number of observations used in the final figure.
    :ivar max_deviation: Largest relative difference between a used
        observation and the consensus price (0.01 == 1%).
    """

    agreement_count: int = 0
    max_deviation: Decimal = Decimal(0)

    @classmethod
    def from_observations(
        cls, observations: list[PriceObservation], consensus: Decimal
    ) -> QualityScore:
        """Compute the score for ``observations`` against ``consensus``."""
        if not observations:
            return cls()
        deviation = max(abs(o.price - consensus) / consensus for o in observations)
        return cls(agreement_count=len(observations), max_deviation=deviation)

    def is_acceptable(self, max_deviation_percent: float, min_agreement: int = 1) -> bool:
        """Check the score against caller thresholds.

        :param max_deviation_percent: Largest tolerated deviation in percent.
        :param min_agreement: Minimum number of agreeing sources.
        :returns: True if both thresholds are met.
        """
        if self.agreement_count < min_agreement:
            return False
        return self.max_deviation * 100 <= Decimal(str(max_deviation_percent))


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of one aggregation call.

    ``consensus_price`` is None when fewer than the required number of
    sources produced an observation. That case is a normal result, not an
    exception: callers must check :attr:`success`.

    :ivar pair: The priced pair.
    :ivar consensus_price: Reconciled price, or None if insufficient sources.
    :ivar contributing_sources: Observations backing the consensus price, in
        configured order. Without a consensus, every successful observation.
    :ivar failures: Failed sources, in configured order.
    :ivar quality: Agreement among the observations used.
    :ivar excluded: Successful observations the strategy did not use.
    :ivar strategy: Name of the consensus strategy applied.
    """

    pair: CurrencyPair
    consensus_price: Decimal | None
    contributing_sources: tuple[PriceObservation, ...] = ()
    failures: tuple[SourceFailure, ...] = ()
    quality: QualityScore = field(default_factory=QualityScore)
    excluded: tuple[PriceObservation, ...] = ()
    strategy: str = ""

    @property
    def success(self) -> bool:
        """Check if a consensus price was produced."""
        return self.consensus_price is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.consensus_price is None:
            return "insufficient_sources"
        return None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready representation (decimals as strings)."""
        return {
            "pair": str(self.pair),
            "consensus_price": (
                str(self.consensus_price) if self.consensus_price is not None else None
            ),
            "strategy": self.strategy,
            "error": self.error,
            "quality": {
                "agreement_count": self.quality.agreement_count,
                "max_deviation": str(self.quality.max_deviation),
            },
            "contributing_sources": [_observation_dict(o) for o in self.contributing_sources],
            "excluded": [_observation_dict(o) for o in self.excluded],
            "failures": [
                {
                    "source": f.source,
                    "kind": f.kind.value,
                    "message": f.message,
                    "attempts": f.attempts,
                }
                for f in self.failures
            ],
        }


def _observation_dict(observation: PriceObservation) -> dict[str, Any]:
    return {
        "source": observation.source,
        "price": str(observation.price),
        "observed_at": observation.observed_at.isoformat(),
        "latency_ms": round(observation.latency * 1000, 1),
    }
