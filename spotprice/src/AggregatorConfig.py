"""AggregatorConfig: Immutable configuration shared by aggregation calls.

.. code-block:: python

    >>> config = AggregatorConfig.from_names(
    ...     ["binance", "coingecko"],
    ...     reducer=get_reducer("primary", priority=["binance"]),
    ... )
    >>> config.source_names
    ('binance', 'coingecko')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from .Reducer import MedianReducer, Reducer
from .SourceInvoker import RetryPolicy
from .sources import get_source

if TYPE_CHECKING:
    from .sources import BaseSource


@dataclass(frozen=True)
class AggregatorConfig:
    """Source list, consensus strategy and retry parameters.

    Never mutated after construction, so one instance can back any number of
    concurrent ``get_price`` calls.

    :ivar sources: Price sources, in the order results are reported.
    :ivar reducer: Consensus strategy.
    :ivar min_sources: Default minimum number of observations for a consensus.
    :ivar retry: Retry parameters applied to every source.
    """

    sources: tuple[BaseSource, ...]
    reducer: Reducer = field(default_factory=MedianReducer)
    min_sources: int = 1
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Validate the configuration.

        :raises ValueError: If sources are empty or duplicated, or min_sources < 1.
        """
        object.__setattr__(self, "sources", tuple(self.sources))
        if not self.sources:
            raise ValueError("At least one price source must be configured")

        names = [s.name for s in self.sources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate sources: {duplicates}")

        if self.min_sources < 1:
            raise ValueError("min_sources must be at least 1")

    @property
    def source_names(self) -> tuple[str, ...]:
        """Configured source names, in order."""
        return tuple(s.name for s in self.sources)

    @classmethod
    def from_names(
        cls,
        names: Sequence[str],
        *,
        api_keys: dict[str, str] | None = None,
        fetch_timeout: float | None = None,
        reducer: Reducer | None = None,
        min_sources: int = 1,
        retry: RetryPolicy | None = None,
    ) -> AggregatorConfig:
        """Build a configuration from registered source names.

        :param names: Source names (e.g., ["binance", "coingecko"]).
        :param api_keys: Dict mapping source names to API keys.
        :param fetch_timeout: Per-request timeout for every source.
        :param reducer: Consensus strategy (default: median).
        :param min_sources: Default minimum number of observations.
        :param retry: Retry parameters (default: one retry).
        :returns: New configuration.
        :raises ValueError: If a source name is unknown.
        """
        api_keys = api_keys or {}
        sources = tuple(
            get_source(name, api_key=api_keys.get(name), timeout=fetch_timeout) for name in names
        )
        return cls(
            sources=sources,
            reducer=reducer or MedianReducer(),
            min_sources=min_sources,
            retry=retry or RetryPolicy(),
        )
