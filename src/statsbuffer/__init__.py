"""
statsbuffer - Buffered statsd client.

Aggregates counters, gauges and timers in memory and flushes them to a
statsd server as UDP datagrams once per interval.
"""

from .client import BufferedClient, ClientClosedError, EchoClient, NoopClient
from .collector import Collector, ExportedStats, IntervalTicker
from .config import BufferedClientConfig
from .events import Event, EventType, StatClass, TypeConflict
from .flusher import Flusher, FlushResult
from .sampler import Sampler
from .sender import TransportError, UDPSender

__version__ = "1.0.0"

__all__ = [
    "BufferedClient",
    "BufferedClientConfig",
    "ClientClosedError",
    "Collector",
    "EchoClient",
    "Event",
    "EventType",
    "ExportedStats",
    "Flusher",
    "FlushResult",
    "IntervalTicker",
    "NoopClient",
    "Sampler",
    "StatClass",
    "TransportError",
    "TypeConflict",
    "UDPSender",
]
