"""Shared fixtures: scripted price sources and observation builders."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from spotprice.src.AggregationResult import FailureKind, PriceObservation
from spotprice.src.sources import BaseSource, SourceError


class StubSource(BaseSource):
    """Source that replays scripted outcomes after an optional delay.

    Each outcome is a price (number or string) or an exception to raise;
    the last outcome repeats once the script is exhausted.
    """

    def __init__(self, name: str, outcomes, delay: float = 0.0) -> None:
        super().__init__()
        self.name = name
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = 0

    async def fetch_price(self, pair):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return Decimal(str(outcome))


class StubbornSource(BaseSource):
    """Source that ignores the deadline and the first cancellation."""

    def __init__(self, name: str, hold: float) -> None:
        super().__init__()
        self.name = name
        self.hold = hold

    async def fetch(self, pair, deadline):
        try:
            await asyncio.sleep(self.hold)
        except asyncio.CancelledError:
            await asyncio.sleep(self.hold)
        return await super().fetch(pair, deadline + 60)

    async def fetch_price(self, pair):
        return Decimal("1")


@pytest.fixture
def stub_source():
    """Factory for scripted sources: ``stub_source("a", [100, 101], delay=0.01)``."""

    def _make(name, outcomes, delay=0.0):
        return StubSource(name, outcomes, delay=delay)

    return _make


@pytest.fixture
def stubborn_source():
    """Factory for sources that keep running after the deadline."""

    def _make(name, hold):
        return StubbornSource(name, hold)

    return _make


@pytest.fixture
def source_error():
    """Factory for classified source errors."""

    def _make(kind: FailureKind, message: str = "scripted failure"):
        return SourceError(kind, message)

    return _make


@pytest.fixture
def observation():
    """Factory for observations: ``observation("a", 100)``."""

    def _make(source, price, latency=0.01):
        return PriceObservation(
            source=source,
            price=Decimal(str(price)),
            observed_at=datetime.now(timezone.utc),
            latency=latency,
        )

    return _make


@pytest.fixture
def mock_client():
    """Factory for an httpx client whose requests are answered by ``handler``."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
