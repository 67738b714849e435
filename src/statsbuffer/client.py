"""
Statsd Clients.

BufferedClient aggregates events in memory before flushing them to
statsd, which pays off when events are frequent and sampling alone is not
desirable. NoopClient and EchoClient offer the same producer methods for
callers that have no statsd server or want to debug what gets reported.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional, Union

from .collector import Collector, ExportedStats, IntervalTicker
from .config import BufferedClientConfig
from .events import (
    Absolute,
    Event,
    FAbsolute,
    FGauge,
    FGaugeDelta,
    Gauge,
    GaugeAbsolute,
    GaugeAvg,
    GaugeDelta,
    Increment,
    PrecisionTiming,
    Timing,
    Total,
    to_milliseconds,
)
from .flusher import Flusher, FlushResult
from .sampler import Sampler
from .sender import UDPSender
from .utils.logger import get_logger

logger = logging.getLogger(__name__)

Duration = Union[timedelta, float]


class ClientClosedError(RuntimeError):
    """Raised when an observation is reported after close()."""


class BufferedClient:
    """
    Buffered statsd client.

    Producers call the metric methods from any number of tasks; each call
    passes the sampler and enqueues one event. A single collector task owns
    the aggregated state and flushes it every `flush_interval` seconds.
    """

    def __init__(
        self,
        config: Optional[BufferedClientConfig] = None,
        sender: Optional[UDPSender] = None,
        sampler: Optional[Sampler] = None,
        ticker: Optional[IntervalTicker] = None,
    ):
        """Initialize the client."""
        self.config = (config or BufferedClientConfig.from_env()).validate()
        self.sender = sender or UDPSender.from_address(self.config.address)
        self.sampler = sampler or Sampler()
        self.ticker = ticker or IntervalTicker(self.config.flush_interval)

        self.flusher = Flusher(
            sender=self.sender,
            epoch=self.config.flush_interval,
            prefix=self.config.resolved_prefix(),
            max_packet_size=self.config.max_packet_size,
            sample_rate=self.config.sample_rate,
            timer_sample_rate=self.config.timer_sample_rate,
            retain_keys=self.config.retain_keys,
            recycle_connection=self.config.recycle_connection,
        )

        # State
        self._inbox: Optional[asyncio.Queue] = None
        self._collector: Optional[Collector] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.dropped = 0

    def __str__(self) -> str:
        return str(self.sender)

    @property
    def exported(self) -> Optional[ExportedStats]:
        """Running totals of everything ingested, if enabled."""
        return self._collector.exported if self._collector else None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Start the collector task."""
        if self.running:
            return
        if self._closed:
            raise ClientClosedError("client already closed")

        self._inbox = asyncio.Queue(maxsize=self.config.queue_size)
        self._collector = Collector(
            flusher=self.flusher,
            inbox=self._inbox,
            hostname=self.config.hostname,
            ticker=self.ticker,
            add_expvar=self.config.add_expvar,
        )
        self._task = asyncio.create_task(self._collector.run())
        logger.info(
            f"Buffered statsd client started for {self.sender} "
            f"(flush every {self.config.flush_interval}s)"
        )

    async def flush(self) -> FlushResult:
        """Flush everything collected so far without waiting for the tick."""
        self._ensure_running()
        return await self._collector.request_flush()

    async def close(self) -> Optional[FlushResult]:
        """Flush pending stats, stop the collector and close the socket."""
        if self._closed:
            return None
        self._closed = True

        result = None
        try:
            if self.running:
                result = await self._collector.request_flush(close=True)
                await self._task
            elif self._task is not None and not self._task.cancelled() and self._task.exception():
                logger.warning(f"Collector had already stopped: {self._task.exception()}")
        finally:
            await self.sender.close()
        logger.info("Buffered statsd client closed")
        return result

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _ensure_running(self):
        if self._closed:
            raise ClientClosedError("client already closed")
        if self._task is None:
            raise RuntimeError("client not started, call start() first")
        if self._task.done():
            # surfaces the collector's fault, if it had one
            self._task.result()
            raise ClientClosedError("collector has stopped")

    async def _submit(self, event: Event) -> bool:
        self._ensure_running()
        if self.config.queue_full_policy == "drop":
            try:
                self._inbox.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug(f"Queue full, dropped {event.event_type.value} for {event.key}")
                return False
            return True
        try:
            self._inbox.put_nowait(event)
            return True
        except asyncio.QueueFull:
            pass

        # wait for room, unless the collector stops first
        put = asyncio.create_task(self._inbox.put(event))
        try:
            await asyncio.wait({put, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            queued = put.done()
            if not queued:
                put.cancel()
        if not queued:
            self._ensure_running()
        return True

    def _register_stat(self) -> bool:
        return self.sampler.should_fire(self.config.sample_rate)

    def _register_timer_stat(self, rate: float) -> bool:
        return self.sampler.should_fire(rate)

    async def incr(self, stat: str, count: int = 1) -> bool:
        """Increment a counter. Often used to note a particular event."""
        if not self._register_stat() or count == 0:
            return False
        return await self._submit(Increment(stat, count))

    async def decr(self, stat: str, count: int = 1) -> bool:
        """Decrement a counter."""
        if not self._register_stat() or count == 0:
            return False
        return await self._submit(Increment(stat, -count))

    async def timing(self, stat: str, delta: int) -> bool:
        """Track a duration in milliseconds."""
        return await self.timing_sampling(stat, delta, self.config.timer_sample_rate)

    async def timing_sampling(self, stat: str, delta: int, sample_rate: float) -> bool:
        """Track a duration in milliseconds at the given sampling rate."""
        if not self._register_timer_stat(sample_rate):
            return False
        return await self._submit(Timing.observe(stat, delta))

    async def precision_timing(self, stat: str, delta: Duration) -> bool:
        """Track a sub-millisecond duration (timedelta or float seconds)."""
        return await self.precision_timing_sampling(stat, delta, self.config.timer_sample_rate)

    async def precision_timing_sampling(self, stat: str, delta: Duration, sample_rate: float) -> bool:
        """Track a sub-millisecond duration at the given sampling rate."""
        if not self._register_timer_stat(sample_rate):
            return False
        return await self._submit(PrecisionTiming.observe(stat, delta))

    async def gauge(self, stat: str, value: int) -> bool:
        """Set a gauge; the last value of the interval is sent."""
        if not self._register_stat():
            return False
        return await self._submit(Gauge(stat, value))

    async def gauge_absolute(self, stat: str, value: int) -> bool:
        """Set a gauge that keeps its value across idle intervals."""
        if not self._register_stat():
            return False
        return await self._submit(GaugeAbsolute(stat, value))

    async def gauge_avg(self, stat: str, value: int) -> bool:
        """Report a gauge sample; the interval average is sent."""
        if not self._register_stat():
            return False
        return await self._submit(GaugeAvg(stat, value))

    async def gauge_delta(self, stat: str, value: int) -> bool:
        """Change a gauge by a signed amount."""
        if not self._register_stat():
            return False
        return await self._submit(GaugeDelta(stat, value))

    async def fgauge(self, stat: str, value: float) -> bool:
        """Set a floating point gauge."""
        if not self._register_stat():
            return False
        return await self._submit(FGauge(stat, value))

    async def fgauge_delta(self, stat: str, value: float) -> bool:
        """Change a floating point gauge by a signed amount."""
        if not self._register_stat():
            return False
        return await self._submit(FGaugeDelta(stat, value))

    async def absolute(self, stat: str, value: int) -> bool:
        """Send a value that is never aggregated."""
        if not self._register_stat():
            return False
        return await self._submit(Absolute(stat, [value]))

    async def fabsolute(self, stat: str, value: float) -> bool:
        """Send a floating point value that is never aggregated."""
        if not self._register_stat():
            return False
        return await self._submit(FAbsolute(stat, [value]))

    async def total(self, stat: str, value: int) -> bool:
        """Send a continuously increasing value, e.g. reads since boot."""
        if not self._register_stat():
            return False
        return await self._submit(Total(stat, value))


class NoopClient:
    """Client that silently drops everything, for unconfigured callers."""

    def __str__(self) -> str:
        return "NoopClient"

    async def start(self):
        pass

    async def flush(self):
        return None

    async def close(self):
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def _report(self, stat: str, value) -> bool:
        return False

    async def incr(self, stat: str, count: int = 1) -> bool:
        return await self._report(stat, count)

    async def decr(self, stat: str, count: int = 1) -> bool:
        return await self._report(stat, -count)

    async def timing(self, stat: str, delta: int) -> bool:
        return await self._report(stat, delta)

    async def timing_sampling(self, stat: str, delta: int, sample_rate: float) -> bool:
        return await self._report(stat, delta)

    async def precision_timing(self, stat: str, delta: Duration) -> bool:
        return await self._report(stat, to_milliseconds(delta))

    async def precision_timing_sampling(self, stat: str, delta: Duration, sample_rate: float) -> bool:
        return await self._report(stat, to_milliseconds(delta))

    async def gauge(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)

    async def gauge_absolute(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)

    async def gauge_avg(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)

    async def gauge_delta(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)

    async def fgauge(self, stat: str, value: float) -> bool:
        return await self._report(stat, value)

    async def fgauge_delta(self, stat: str, value: float) -> bool:
        return await self._report(stat, value)

    async def absolute(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)

    async def fabsolute(self, stat: str, value: float) -> bool:
        return await self._report(stat, value)

    async def total(self, stat: str, value: int) -> bool:
        return await self._report(stat, value)


class EchoClient(NoopClient):
    """Client that logs every observation instead of sending it."""

    def __init__(self, log: Optional[logging.Logger] = None):
        """Initialize the client."""
        self.log = log or get_logger("statsbuffer.echo")

    def __str__(self) -> str:
        return "EchoClient"

    async def _report(self, stat: str, value) -> bool:
        self.log.info(f"{stat}:{value}")
        return True
