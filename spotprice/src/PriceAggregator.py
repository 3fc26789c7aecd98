"""PriceAggregator: Concurrent fan-out to all sources and consensus reduction.

Algorithm:
    1. Validate the request (pair, deadline, min_sources) before any I/O
    2. Start one SourceInvoker task per configured source, all bound by the
       same absolute deadline
    3. Wait for every task to settle or the deadline to pass, whichever is first
    4. Report tasks still pending at the deadline as timeouts and cancel them
       without waiting for them to finish
    5. Partition results into observations and failures in configured order
    6. Return no consensus if fewer than min_sources observations succeeded,
       otherwise reduce with the configured strategy

.. code-block:: python

    >>> config = AggregatorConfig.from_names(["binance", "coingecko", "kraken"])
    >>> async with PriceAggregator(config) as aggregator:
    ...     result = await aggregator.get_price("ada/usdt", deadline_ms=3000)
    >>> result.success
    True
    >>> result.quality.agreement_count
    3
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .AggregationResult import (
    AggregationResult,
    FailureKind,
    PriceObservation,
    QualityScore,
    SourceFailure,
)
from .CurrencyPair import CurrencyPair, InvalidRequest
from .SourceInvoker import SourceInvoker

if TYPE_CHECKING:
    from .AggregatorConfig import AggregatorConfig

logger = logging.getLogger(__name__)


class PriceAggregator:
    """Determines one consensus price per request from several sources.

    Keeps no per-call state on the instance, so concurrent ``get_price``
    calls are independent of each other.

    :ivar config: Immutable aggregation configuration.
    :ivar invokers: One invoker per configured source, in configured order.
    """

    def __init__(self, config: AggregatorConfig) -> None:
        """Initialize the aggregator.

        :param config: Sources, strategy and retry parameters.
        """
        self.config = config
        self.invokers = tuple(SourceInvoker(source, config.retry) for source in config.sources)

        logger.info(
            f"PriceAggregator initialized: sources={list(config.source_names)}, "
            f"strategy={config.reducer.name}, min_sources={config.min_sources}, "
            f"max_retries={config.retry.max_retries}"
        )

    async def __aenter__(self) -> PriceAggregator:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the HTTP clients held by the configured sources."""
        for source in self.config.sources:
            await source.aclose()

    async def get_price(
        self,
        pair: CurrencyPair | str,
        deadline_ms: int,
        min_sources: int | None = None,
    ) -> AggregationResult:
        """Query all sources concurrently and reconcile their prices.

        Individual source failures never abort the call; they are listed in
        the result. Only a malformed request raises.

        :param pair: Pair to price, as CurrencyPair or "base/quote" string.
        :param deadline_ms: Milliseconds from now by which to return.
        :param min_sources: Minimum observations for a consensus
            (default: from config).
        :returns: Aggregation result; ``consensus_price`` is None if fewer
            than ``min_sources`` sources answered.
        :raises InvalidRequest: If pair, deadline or min_sources is invalid.
        """
        pair = self._validate_pair(pair)
        if isinstance(deadline_ms, bool) or not isinstance(deadline_ms, (int, float)) or deadline_ms <= 0:
            raise InvalidRequest(f"deadline_ms must be positive, got {deadline_ms!r}")
        if min_sources is None:
            min_sources = self.config.min_sources
        if isinstance(min_sources, bool) or not isinstance(min_sources, int) or min_sources < 1:
            raise InvalidRequest(f"min_sources must be at least 1, got {min_sources!r}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_ms / 1000

        tasks = [
            asyncio.create_task(invoker.invoke(pair, deadline), name=f"{invoker.name}:{pair}")
            for invoker in self.invokers
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=max(deadline - loop.time(), 0))
        finally:
            # Signal abandonment without awaiting termination
            for task in tasks:
                if not task.done():
                    task.cancel()
                    task.add_done_callback(self._discard_late_result)

        if pending:
            logger.debug(
                f"{pair}: deadline reached with {len(pending)} source(s) outstanding: "
                f"{[t.get_name() for t in pending]}"
            )

        observations: list[PriceObservation] = []
        failures: list[SourceFailure] = []
        for invoker, task in zip(self.invokers, tasks, strict=True):
            result = self._settle(invoker, task, pending)
            if isinstance(result, PriceObservation):
                observations.append(result)
            else:
                failures.append(result)

        return self._build_result(pair, observations, failures, min_sources)

    @staticmethod
    def _validate_pair(pair: CurrencyPair | str) -> CurrencyPair:
        """Coerce and validate the requested pair.

        :raises InvalidRequest: If the pair is malformed.
        """
        if isinstance(pair, CurrencyPair):
            return pair
        if isinstance(pair, str):
            return CurrencyPair.from_string(pair)
        if isinstance(pair, tuple) and len(pair) == 2:
            return CurrencyPair(*pair)
        raise InvalidRequest(f"Unsupported pair value {pair!r}")

    @staticmethod
    def _settle(
        invoker: SourceInvoker, task: asyncio.Task, pending: set[asyncio.Task]
    ) -> PriceObservation | SourceFailure:
        """Turn a finished or abandoned task into an observation or failure."""
        if task in pending or task.cancelled():
            return SourceFailure(
                invoker.name, FailureKind.TIMEOUT, "No result before the aggregation deadline"
            )
        return task.result()

    @staticmethod
    def _discard_late_result(task: asyncio.Task) -> None:
        """Log results that arrive after the deadline; they are never used."""
        if not task.cancelled() and task.exception() is None:
            logger.debug(f"[{task.get_name()}] discarding late result: {task.result()}")

    def _build_result(
        self,
        pair: CurrencyPair,
        observations: list[PriceObservation],
        failures: list[SourceFailure],
        min_sources: int,
    ) -> AggregationResult:
        """Reduce observations, or report insufficient sources."""
        reducer = self.config.reducer
        failure_strs = [f"{f.source}={f.kind.value}" for f in failures]

        if len(observations) < min_sources:
            logger.warning(
                f"{pair}: insufficient sources ({len(observations)}/{min_sources}): "
                f"prices=[{self._format_prices(observations)}], failures=[{', '.join(failure_strs)}]"
            )
            return AggregationResult(
                pair=pair,
                consensus_price=None,
                contributing_sources=tuple(observations),
                failures=tuple(failures),
                quality=QualityScore(),
                strategy=reducer.name,
            )

        outcome = reducer.reduce(observations)

        log_msg = (
            f"{pair}: {outcome.price} ({reducer.name} of [{self._format_prices(outcome.used)}]"
        )
        if outcome.excluded:
            log_msg += f", excluded: [{self._format_prices(outcome.excluded)}]"
        if failures:
            log_msg += f", failed: [{', '.join(failure_strs)}]"
        log_msg += ")"
        logger.info(log_msg)

        return AggregationResult(
            pair=pair,
            consensus_price=outcome.price,
            contributing_sources=outcome.used,
            failures=tuple(failures),
            quality=outcome.quality,
            excluded=outcome.excluded,
            strategy=reducer.name,
        )

    @staticmethod
    def _format_prices(observations) -> str:
        return ", ".join(f"{o.source}={o.price}" for o in observations)
