"""
Event Collector.

Single-writer aggregation loop. One asyncio task owns the map of metric
key to event; producers only ever talk to it through queues, so the map
needs no locking.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from .config import HOST_PLACEHOLDER
from .events import Event, StatClass, TypeConflict
from .flusher import Flusher, FlushResult

logger = logging.getLogger(__name__)


@dataclass
class FlushRequest:
    """Ask the collector to flush now and report the result."""
    reply: asyncio.Future
    close: bool = False


class _Tick:
    """Marker put on the control queue by the ticker."""


TICK = _Tick()


@dataclass
class ExportedStats:
    """
    Running snapshot of everything the collector has ingested.

    Counters accumulate across flushes; gauges and timers hold the latest
    value of their key.
    """
    counters: dict = field(default_factory=dict)
    gauges: dict = field(default_factory=dict)
    timers: dict = field(default_factory=dict)

    def record(self, incoming: Event, merged: Event):
        """Fold one ingested observation into the snapshot."""
        key = merged.key
        if merged.stat_class == StatClass.COUNTER:
            value = incoming.export_value()
            if value is not None:
                self.counters[key] = self.counters.get(key, 0) + value
        elif merged.stat_class == StatClass.GAUGE:
            value = merged.export_value()
            if value is not None:
                self.gauges[key] = value
        elif merged.stat_class == StatClass.TIMER:
            value = merged.export_value()
            if value is not None:
                self.timers[key] = value

    def to_dict(self) -> dict:
        return {
            'counters': dict(self.counters),
            'gauges': dict(self.gauges),
            'timers': dict(self.timers),
        }


class IntervalTicker:
    """Yields once every `interval` seconds."""

    def __init__(self, interval: float):
        """Initialize the ticker."""
        self.interval = interval

    async def ticks(self) -> AsyncIterator[None]:
        while True:
            await asyncio.sleep(self.interval)
            yield None


class Collector:
    """
    Owns the aggregation map and serializes every change to it.

    Inputs, each consumed in arrival order:
    - events from the bounded inbox, merged into the map
    - ticks, which trigger a synchronous flush
    - flush/close requests, answered with the flush result; events already
      waiting in the inbox are merged first
    """

    def __init__(
        self,
        flusher: Flusher,
        inbox: asyncio.Queue,
        hostname: str = "",
        ticker: Optional[IntervalTicker] = None,
        add_expvar: bool = True,
    ):
        """Initialize the collector."""
        self.flusher = flusher
        self.inbox = inbox
        self.hostname = hostname
        self.ticker = ticker
        self.exported = ExportedStats() if add_expvar else None

        self.events: dict[str, Event] = {}
        self.type_conflicts = 0
        self.flushes = 0

        self._control: asyncio.Queue = asyncio.Queue()
        self._tick_pending = False
        self._ticker_task: Optional[asyncio.Task] = None
        self._stopped = False

    def resolve_key(self, key: str) -> str:
        """Replace the host placeholder (first occurrence only)."""
        return key.replace(HOST_PLACEHOLDER, self.hostname, 1)

    def ingest(self, event: Event):
        """Merge one incoming event into the map."""
        key = self.resolve_key(event.key)
        event.set_key(key)

        existing = self.events.get(key)
        if existing is None:
            self.events[key] = event
            merged = event
        else:
            try:
                existing.merge(event)
            except TypeConflict as e:
                self.type_conflicts += 1
                logger.error(f"Dropping update: {e}")
                return
            merged = existing

        if self.exported is not None:
            self.exported.record(event, merged)

    async def flush(self) -> FlushResult:
        """Flush the map. Only called from inside the collector loop."""
        self.flushes += 1
        return await self.flusher.flush(self.events)

    async def request_flush(self, close: bool = False) -> FlushResult:
        """Ask the running loop to flush (and optionally stop); wait for it."""
        if self._stopped:
            raise RuntimeError("collector is not running")
        reply = asyncio.get_running_loop().create_future()
        await self._control.put(FlushRequest(reply=reply, close=close))
        return await reply

    def _on_tick(self):
        # coalesce: at most one tick waits while a flush is pending or running
        if not self._tick_pending:
            self._tick_pending = True
            self._control.put_nowait(TICK)

    async def _run_ticker(self):
        async for _ in self.ticker.ticks():
            self._on_tick()

    async def run(self):
        """Main collector loop."""
        if self.ticker is not None:
            self._ticker_task = asyncio.create_task(self._run_ticker())

        get_event: Optional[asyncio.Task] = None
        get_control: Optional[asyncio.Task] = None
        try:
            while True:
                if get_event is None:
                    get_event = asyncio.create_task(self.inbox.get())
                if get_control is None:
                    get_control = asyncio.create_task(self._control.get())

                done, _ = await asyncio.wait(
                    {get_event, get_control},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if get_event in done:
                    self.ingest(get_event.result())
                    get_event = None

                if get_control in done:
                    message = get_control.result()
                    get_control = None
                    if message is TICK:
                        try:
                            await self.flush()
                        finally:
                            self._tick_pending = False
                    else:
                        if message.close:
                            logger.info("Asked to terminate. Flushing stats before returning.")
                            if get_event is not None:
                                get_event.cancel()
                                get_event = None
                        try:
                            self._drain_inbox()
                            result = await self.flush()
                        except Exception as e:
                            if not message.reply.done():
                                message.reply.set_exception(e)
                            raise
                        if not message.reply.done():
                            message.reply.set_result(result)
                        if message.close:
                            return
        except Exception as e:
            logger.exception("Collector fault, flushing stats before re-raising")
            await self._last_chance_flush()
            self._fail_requests(e, get_control)
            raise
        finally:
            self._stopped = True
            for task in (get_event, get_control, self._ticker_task):
                if task is not None and not task.done():
                    task.cancel()

    def _drain_inbox(self):
        # events queued before a flush/close request are part of that flush
        while True:
            try:
                event = self.inbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.ingest(event)

    def _fail_requests(self, error: Exception, get_control: Optional[asyncio.Task]):
        # nobody will answer these once the loop is gone
        messages = []
        if get_control is not None and get_control.done() and not get_control.cancelled():
            messages.append(get_control.result())
        while True:
            try:
                messages.append(self._control.get_nowait())
            except asyncio.QueueEmpty:
                break
        for message in messages:
            if isinstance(message, FlushRequest) and not message.reply.done():
                message.reply.set_exception(error)

    async def _last_chance_flush(self):
        try:
            await self.flush()
        except Exception as e:
            logger.error(f"Last-chance flush failed: {e}")
