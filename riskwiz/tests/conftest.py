# riskwiz/tests/conftest.py
import asyncio
import copy

import pytest

from riskwiz.cache import ResultCache
from riskwiz.config import Settings
from riskwiz.datasets import DatasetRegistry
from riskwiz.dispatch import AcquisitionStrategy, SimulatedStrategy
from riskwiz.orchestrator import DashboardOrchestrator
from riskwiz.schemas import WizardInputs


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStrategy(AcquisitionStrategy):
    """Wraps another strategy (or a fixed payload) and counts dispatches."""

    mode = "mock"

    def __init__(self, inner=None, payload=None, exc=None):
        self.inner = inner
        self.payload = payload
        self.exc = exc
        self.calls = []

    async def acquire(self, inputs, fingerprint):
        self.calls.append(fingerprint)
        if self.exc is not None:
            raise self.exc
        if self.payload is not None:
            return copy.deepcopy(self.payload)
        return await self.inner.acquire(inputs, fingerprint)


@pytest.fixture
def settings():
    return Settings(mock_latency_scale=0.0)


@pytest.fixture
def registry():
    return DatasetRegistry()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(clock=clock)


@pytest.fixture
def simulated(registry):
    return SimulatedStrategy(registry, latency_scale=0.0)


@pytest.fixture
def counting(simulated):
    return CountingStrategy(inner=simulated)


@pytest.fixture
def orchestrator(registry, cache, counting):
    return DashboardOrchestrator(registry, cache, counting)


@pytest.fixture
def inputs():
    return WizardInputs(
        location_key="geo_1",
        selected_hazards=("Heat", "Flood"),
        selected_system="Health",
        precision_level="approximate",
    )


@pytest.fixture
def valid_payload(simulated, inputs):
    return asyncio.run(simulated.acquire(inputs, "wizard:test"))
