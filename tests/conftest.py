"""Shared fixtures for statsbuffer tests."""

import asyncio

import pytest

from statsbuffer.config import BufferedClientConfig
from statsbuffer.sampler import Sampler
from statsbuffer.sender import TransportError


class FakeSender:
    """Records packets instead of sending them."""

    def __init__(self, fail_on: tuple = ()):
        self.packets: list[bytes] = []
        self.fail_on = set(fail_on)
        self.attempts = 0
        self.opened = 0
        self.closed = 0
        self._arrived = asyncio.Event()

    def __str__(self) -> str:
        return "fake:8125"

    async def open(self):
        self.opened += 1

    async def close(self):
        self.closed += 1

    async def send(self, payload: bytes):
        attempt = self.attempts
        self.attempts += 1
        if attempt in self.fail_on:
            raise TransportError(f"simulated failure on packet {attempt}")
        self.packets.append(payload)
        self._arrived.set()

    @property
    def lines(self) -> list[str]:
        out = []
        for packet in self.packets:
            out.extend(line for line in packet.decode().split("\n") if line)
        return out

    async def wait_for_packets(self, count: int = 1):
        while len(self.packets) < count:
            self._arrived.clear()
            await self._arrived.wait()


class FixedSampler(Sampler):
    """Sampler with a predetermined answer for sampled observations."""

    def __init__(self, fire: bool = True):
        super().__init__()
        self.fire = fire

    def should_fire(self, rate: float) -> bool:
        if rate >= 1.0:
            return True
        return self.fire


class ManualTicker:
    """Ticker driven by the test instead of the clock."""

    def __init__(self):
        self._ticks: asyncio.Queue = asyncio.Queue()

    def tick(self):
        self._ticks.put_nowait(None)

    async def ticks(self):
        while True:
            await self._ticks.get()
            yield None


@pytest.fixture
def sender() -> FakeSender:
    """Provide a recording sender."""
    return FakeSender()


@pytest.fixture
def ticker() -> ManualTicker:
    """Provide a manually driven ticker."""
    return ManualTicker()


@pytest.fixture
def config() -> BufferedClientConfig:
    """Provide a client configuration with a fixed hostname and long interval."""
    return BufferedClientConfig(
        address="127.0.0.1:8125",
        prefix="myproject.",
        hostname="testhost",
        flush_interval=60.0,
    )


@pytest.fixture
def always_sampler() -> FixedSampler:
    """Provide a sampler that keeps every observation."""
    return FixedSampler(fire=True)
