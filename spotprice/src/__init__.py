"""
Spot Price - Multi-Source Consensus Module

This module determines one point-in-time price from several price sources:
- CurrencyPair: Validated trading pair
- SourceInvoker: Per-source timeout, retry and failure classification
- Reducer: Consensus strategies (median, mean with outlier rejection, primary)
- PriceAggregator: Concurrent fan-out with a deadline-bounded join
- sources: Modular price source implementations
"""

from .AggregationResult import (
    AggregationResult,
    FailureKind,
    PriceObservation,
    QualityScore,
    SourceFailure,
)
from .AggregatorConfig import AggregatorConfig
from .CurrencyPair import CurrencyPair, InvalidRequest
from .PriceAggregator import PriceAggregator
from .Reducer import (
    MeanWithOutlierRejectionReducer,
    MedianReducer,
    PrimaryWithFallbackReducer,
    Reducer,
    ReductionOutcome,
    get_reducer,
)
from .SourceInvoker import RetryPolicy, SourceInvoker

__all__ = [
    "AggregationResult",
    "AggregatorConfig",
    "CurrencyPair",
    "FailureKind",
    "InvalidRequest",
    "MeanWithOutlierRejectionReducer",
    "MedianReducer",
    "PriceAggregator",
    "PriceObservation",
    "PrimaryWithFallbackReducer",
    "QualityScore",
    "Reducer",
    "ReductionOutcome",
    "RetryPolicy",
    "SourceFailure",
    "SourceInvoker",
    "get_reducer",
]
