"""
Flush Pipeline.

Turns the collector's accumulated events into statsd wire lines, packs
them into size-bounded datagrams and hands those to the sender.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .events import Event, Timing
from .sender import TransportError, UDPSender

logger = logging.getLogger(__name__)

# lines of a timer that carry the sample rate
_TIMER_SAMPLED_SUFFIXES = (".count:", ".count_ps:")


@dataclass
class FlushResult:
    """Outcome of one flush."""
    events: int = 0
    lines: int = 0
    packets: int = 0
    bytes_sent: int = 0
    failed_packets: int = 0

    @property
    def success(self) -> bool:
        return self.failed_packets == 0


def format_event(
    event: Event,
    epoch: float,
    sample_rate: float,
    prefix: str = "",
    timer: bool = False,
) -> list[str]:
    """
    Render an event as newline-terminated wire lines.

    The sample rate is annotated when it is below 1.0. For timers only the
    count lines are annotated, the other lines are already statistics.
    """
    out = []
    for stat in event.render(epoch, sample_rate):
        if not stat:
            continue
        line = f"{prefix}{stat}"
        if sample_rate < 1.0 and (not timer or any(s in stat for s in _TIMER_SAMPLED_SUFFIXES)):
            line += "|@%f" % sample_rate
        out.append(line + "\n")
    return out


class PacketBuffer:
    """Accumulates lines until the next one would overflow a datagram."""

    def __init__(self, max_size: int):
        """Initialize the buffer."""
        self.max_size = max_size
        self._chunks: list[bytes] = []
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def add(self, line: bytes) -> Optional[bytes]:
        """Add a line; returns a full packet when one must be sent first."""
        packet = None
        if self._chunks and self._size + len(line) > self.max_size:
            packet = self.drain()
        self._chunks.append(line)
        self._size += len(line)
        return packet

    def drain(self) -> Optional[bytes]:
        """Return the pending packet and empty the buffer."""
        if not self._chunks:
            return None
        packet = b"".join(self._chunks)
        self._chunks = []
        self._size = 0
        return packet


class Flusher:
    """
    Serializes and sends accumulated events.

    Only the collector calls flush(), never concurrently, so the event map
    it receives is not mutated by anyone else while the flush runs.
    """

    def __init__(
        self,
        sender: UDPSender,
        epoch: float,
        prefix: str = "",
        max_packet_size: int = 512,
        sample_rate: float = 1.0,
        timer_sample_rate: float = 1.0,
        retain_keys: bool = False,
        recycle_connection: bool = True,
    ):
        """Initialize the flusher."""
        self.sender = sender
        self.epoch = epoch
        self.prefix = prefix
        self.max_packet_size = max_packet_size
        self.sample_rate = sample_rate
        self.timer_sample_rate = timer_sample_rate
        self.retain_keys = retain_keys
        self.recycle_connection = recycle_connection

    def render(self, event: Event) -> list[str]:
        """Render one event with the rate that applies to its kind."""
        if isinstance(event, Timing):
            return format_event(event, self.epoch, self.timer_sample_rate, self.prefix, timer=True)
        return format_event(event, self.epoch, self.sample_rate, self.prefix)

    async def flush(self, events: dict[str, Event]) -> FlushResult:
        """Send every event in `events`, then evict or reset it."""
        result = FlushResult()
        if not events:
            return result

        if self.recycle_connection:
            try:
                await self.sender.open()
            except TransportError as e:
                logger.error(f"Error establishing UDP connection for sending statsd events: {e}")

        buffer = PacketBuffer(self.max_packet_size)
        try:
            for key in list(events):
                event = events[key]
                for line in self.render(event):
                    result.lines += 1
                    packet = buffer.add(line.encode("utf-8"))
                    if packet:
                        await self._send(packet, result)
                result.events += 1

                # retained keys are kept so idle intervals still report
                if self.retain_keys:
                    event.reset()
                else:
                    del events[key]

            packet = buffer.drain()
            if packet:
                await self._send(packet, result)
        finally:
            if self.recycle_connection:
                await self.sender.close()

        logger.debug(
            f"Flushed {result.events} events as {result.lines} lines "
            f"in {result.packets} packets ({result.failed_packets} failed)"
        )
        return result

    async def _send(self, packet: bytes, result: FlushResult):
        try:
            await self.sender.send(packet)
            result.packets += 1
            result.bytes_sent += len(packet)
        except TransportError as e:
            result.failed_packets += 1
            logger.warning(f"Failed to send statsd packet: {e}")
