"""SourceInvoker: Per-call timeout, bounded retry and failure classification.

Wraps one price source. Transient failures (network errors, rate limiting)
are retried with exponential backoff; everything else is returned as-is.
The backoff doubles with each attempt, capped by ``max_delay`` and by the
time left before the deadline.

.. code-block:: python

    >>> invoker = SourceInvoker(get_source("binance"), RetryPolicy(max_retries=2))
    >>> result = await invoker.invoke(CurrencyPair("ada", "usdt"), deadline)
    >>> isinstance(result, (PriceObservation, SourceFailure))
    True
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .AggregationResult import FailureKind, PriceObservation, SourceFailure

if TYPE_CHECKING:
    from .CurrencyPair import CurrencyPair
    from .sources import BaseSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters for transient source failures.

    :ivar max_retries: Retries after the first attempt (0 disables retrying).
    :ivar base_delay: Backoff before the first retry, in seconds.
    :ivar multiplier: Growth factor applied per retry.
    :ivar max_delay: Upper bound for a single backoff, in seconds.
    """

    max_retries: int = 1
    base_delay: float = 0.2
    multiplier: float = 2.0
    max_delay: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")

    def delay(self, retry: int) -> float:
        """Backoff before retry number ``retry`` (0-based), capped at max_delay.

        .. code-block:: python

            >>> policy = RetryPolicy(base_delay=0.2, max_delay=1.0)
            >>> [policy.delay(n) for n in range(4)]
            [0.2, 0.4, 0.8, 1.0]
        """
        return min(self.base_delay * (self.multiplier**retry), self.max_delay)


class SourceInvoker:
    """Invokes a single source within a deadline, retrying transient failures.

    Holds no mutable state, so one invoker can serve many concurrent calls.

    :ivar source: The wrapped price source.
    :ivar retry_policy: Retry parameters.
    """

    def __init__(self, source: BaseSource, retry_policy: RetryPolicy | None = None) -> None:
        """Initialize the invoker.

        :param source: Price source to wrap.
        :param retry_policy: Retry parameters (default: one retry).
        """
        self.source = source
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def name(self) -> str:
        """Name of the wrapped source."""
        return self.source.name

    async def invoke(self, pair: CurrencyPair, deadline: float) -> PriceObservation | SourceFailure:
        """Fetch a price for ``pair`` by ``deadline``, never raising.

        Cancellation is not swallowed, so the aggregator can abandon the call.

        :param pair: Pair to price.
        :param deadline: Absolute event loop time by which to return.
        :returns: An observation, or the last classified failure.
        """
        loop = asyncio.get_running_loop()
        if deadline - loop.time() <= 0:
            return SourceFailure(self.name, FailureKind.TIMEOUT, "Deadline already passed", 0)

        attempts = 0
        while True:
            attempts += 1
            result = await self._attempt(pair, deadline, loop)

            if isinstance(result, PriceObservation):
                if attempts > 1:
                    logger.debug(f"[{self.name}] {pair}: succeeded on attempt {attempts}")
                return result

            failure = dataclasses.replace(result, attempts=attempts)
            if not failure.kind.is_transient or attempts > self.retry_policy.max_retries:
                return failure

            remaining = deadline - loop.time()
            delay = self.retry_policy.delay(attempts - 1)
            if delay >= remaining:
                logger.debug(
                    f"[{self.name}] {pair}: no budget left to retry {failure.kind.value} "
                    f"({remaining:.3f}s remaining)"
                )
                return failure

            logger.debug(
                f"[{self.name}] {pair}: {failure.kind.value} on attempt {attempts}, "
                f"retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)

    async def _attempt(
        self, pair: CurrencyPair, deadline: float, loop: asyncio.AbstractEventLoop
    ) -> PriceObservation | SourceFailure:
        """Run one bounded call to the source and classify the outcome."""
        remaining = deadline - loop.time()
        if remaining <= 0:
            return SourceFailure(self.name, FailureKind.TIMEOUT, "Deadline reached before attempt")

        try:
            return await asyncio.wait_for(self.source.fetch(pair, deadline), timeout=remaining)
        except asyncio.TimeoutError:
            return SourceFailure(
                self.name, FailureKind.TIMEOUT, f"No response within {remaining:.3f}s"
            )
        except Exception as e:
            logger.warning(f"[{self.name}] Unexpected error fetching {pair}: {e!r}")
            return SourceFailure(self.name, FailureKind.INVALID_RESPONSE, f"Unexpected error: {e!r}")
