"""
Metric Event Model.

Every observation reported by application code becomes one Event. Events
with the same key are merged in memory by the collector and rendered into
statsd wire lines when the flush interval elapses.
"""

import math
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional, Union


class StatClass(Enum):
    """Aggregate bucket an event belongs to."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMER = "timer"


class EventType(Enum):
    """Closed set of event variants."""
    INCREMENT = "Increment"
    TOTAL = "Total"
    GAUGE = "Gauge"
    GAUGE_ABSOLUTE = "GaugeAbsolute"
    GAUGE_AVG = "GaugeAvg"
    GAUGE_DELTA = "GaugeDelta"
    FGAUGE = "FGauge"
    FGAUGE_DELTA = "FGaugeDelta"
    ABSOLUTE = "Absolute"
    FABSOLUTE = "FAbsolute"
    TIMING = "Timing"
    PRECISION_TIMING = "PrecisionTiming"


class TypeConflict(Exception):
    """Raised when two events of different variants share a key."""

    def __init__(self, existing: "Event", incoming: "Event"):
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"statsd event type conflict on '{existing.key}': "
            f"{existing.event_type.value} vs {incoming.event_type.value}"
        )


def format_float(value: float) -> str:
    """Format a float in its shortest form, without a trailing '.0'."""
    value = float(value)
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def _gauge_lines(key: str, value: str, negative: bool) -> list[str]:
    # a leading sign on a gauge means "delta", so a negative absolute value
    # is sent as a reset to zero followed by the value
    if negative:
        return [f"{key}:0|g", f"{key}:{value}|g"]
    return [f"{key}:{value}|g"]


@dataclass
class Event:
    """Base class for all metric events."""
    key: str

    event_type = None
    stat_class = None

    def set_key(self, key: str):
        """Rename the metric."""
        self.key = key

    def merge(self, other: "Event"):
        """Fold a same-keyed observation into this accumulator."""
        if type(other) is not type(self):
            raise TypeConflict(self, other)
        self._merge(other)

    def _merge(self, other: "Event"):
        raise NotImplementedError

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        """Render the accumulated state as wire lines (without prefix)."""
        raise NotImplementedError

    def reset(self):
        """Clear the accumulator for the next flush interval."""
        raise NotImplementedError

    def export_value(self):
        """Scalar snapshot used for the exported statistics."""
        raise NotImplementedError


@dataclass
class Increment(Event):
    """Counter; values are summed."""
    value: int = 0

    event_type = EventType.INCREMENT
    stat_class = StatClass.COUNTER

    def _merge(self, other: "Increment"):
        self.value += other.value

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        return [f"{self.key}:{self.value}|c"]

    def reset(self):
        self.value = 0

    def export_value(self):
        return self.value


@dataclass
class Total(Increment):
    """Continuously increasing counter, e.g. reads since boot."""

    event_type = EventType.TOTAL
    stat_class = StatClass.COUNTER

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        return [f"{self.key}:{self.value}|t"]


@dataclass
class Gauge(Event):
    """Gauge; the latest observation wins."""
    value: int = 0

    event_type = EventType.GAUGE
    stat_class = StatClass.GAUGE

    def _merge(self, other: "Gauge"):
        self.value = other.value

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        return _gauge_lines(self.key, str(self.value), self.value < 0)

    def reset(self):
        self.value = 0

    def export_value(self):
        return self.value


@dataclass
class GaugeAbsolute(Gauge):
    """Gauge that keeps its value across idle intervals."""

    event_type = EventType.GAUGE_ABSOLUTE
    stat_class = StatClass.GAUGE

    def reset(self):
        # gauges do not revert when idle
        pass


@dataclass
class GaugeAvg(Event):
    """
    Gauge averaged over the flush interval.

    The running total is None while nothing has been observed since the
    last reset, in which case nothing is rendered.
    """
    value: Optional[int] = None
    count: int = 1

    event_type = EventType.GAUGE_AVG
    stat_class = StatClass.GAUGE

    def _merge(self, other: "GaugeAvg"):
        if other.value is None:
            return
        if self.value is None:
            self.value = other.value
            self.count = other.count
            return
        self.value += other.value
        self.count += other.count

    def average(self) -> Optional[int]:
        """Mean of the observations, truncated toward zero."""
        if self.value is None:
            return None
        if self.count <= 0:
            return self.value
        quotient = abs(self.value) // self.count
        return -quotient if self.value < 0 else quotient

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        avg = self.average()
        if avg is None:
            return []
        return _gauge_lines(self.key, str(avg), avg < 0)

    def reset(self):
        self.value = None
        self.count = 1

    def export_value(self):
        return self.average()


@dataclass
class GaugeDelta(Event):
    """Signed change applied to a gauge."""
    value: int = 0

    event_type = EventType.GAUGE_DELTA
    stat_class = StatClass.GAUGE

    def _merge(self, other: "GaugeDelta"):
        self.value += other.value

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        if self.value < 0:
            return [f"{self.key}:{self.value}|g"]
        return [f"{self.key}:+{self.value}|g"]

    def reset(self):
        self.value = 0

    def export_value(self):
        return self.value


@dataclass
class FGauge(Event):
    """Floating point gauge; the latest observation wins."""
    value: float = 0.0

    event_type = EventType.FGAUGE
    stat_class = StatClass.GAUGE

    def _merge(self, other: "FGauge"):
        self.value = other.value

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        return _gauge_lines(self.key, format_float(self.value), self.value < 0)

    def reset(self):
        self.value = 0.0

    def export_value(self):
        return self.value


@dataclass
class FGaugeDelta(Event):
    """Floating point change applied to a gauge."""
    value: float = 0.0

    event_type = EventType.FGAUGE_DELTA
    stat_class = StatClass.GAUGE

    def _merge(self, other: "FGaugeDelta"):
        self.value += other.value

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        if self.value < 0:
            return [f"{self.key}:{format_float(self.value)}|g"]
        return [f"{self.key}:+{format_float(self.value)}|g"]

    def reset(self):
        self.value = 0.0

    def export_value(self):
        return self.value


@dataclass
class Absolute(Event):
    """
    Metric that is never aggregated.

    Every observed value is kept and flushed as its own line.
    """
    values: list[int] = field(default_factory=list)

    event_type = EventType.ABSOLUTE
    stat_class = StatClass.COUNTER

    def _merge(self, other: "Absolute"):
        self.values.extend(other.values)

    def _format(self, value) -> str:
        return str(value)

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        return [f"{self.key}:{self._format(v)}|a" for v in self.values]

    def reset(self):
        self.values = []

    def export_value(self):
        return self.values[-1] if self.values else None


@dataclass
class FAbsolute(Absolute):
    """Floating point metric that is never aggregated."""
    values: list[float] = field(default_factory=list)

    event_type = EventType.FABSOLUTE
    stat_class = StatClass.COUNTER

    def _format(self, value) -> str:
        return format_float(value)


@dataclass
class Timing(Event):
    """
    Timer keeping count/min/max/sum and the raw samples of an interval.

    Rendered as:
        <key>.count     number of samples                        |c
        <key>.count_ps  samples per second of the flush interval |c
        <key>.min       smallest sample                          |ms
        <key>.max       largest sample                           |ms
        <key>.sum       sum of all samples                       |c
        <key>.median    median of the samples                    |ms
        <key>.std       population standard deviation            |ms

    count_ps is only emitted when the interval is known, median and std
    only when at least one sample was seen.
    """
    total: int = 0
    count: int = 0
    min: int = 0
    max: int = 0
    values: list = field(default_factory=list)

    event_type = EventType.TIMING
    stat_class = StatClass.TIMER

    @classmethod
    def observe(cls, key: str, delta):
        """Build a timer holding a single sample."""
        return cls(key=key, total=delta, count=1, min=delta, max=delta, values=[delta])

    def _merge(self, other: "Timing"):
        if other.count == 0:
            return
        if self.count == 0:
            self.min = other.min
            self.max = other.max
        else:
            self.min = min(self.min, other.min)
            self.max = max(self.max, other.max)
        self.total += other.total
        self.count += other.count
        self.values.extend(other.values)

    def _number(self, value) -> str:
        return str(int(value))

    def _halve(self, a, b):
        return (a + b) // 2

    def _mean(self):
        # integer mean, truncated toward zero
        quotient = abs(self.total) // self.count
        return quotient if self.total >= 0 else -quotient

    def median(self):
        """Median of the collected samples."""
        ordered = sorted(self.values)
        n = len(ordered)
        if n == 0:
            return 0
        mid = n // 2
        if n % 2:
            return ordered[mid]
        return self._halve(ordered[mid - 1], ordered[mid])

    def std(self) -> float:
        """Population standard deviation of the collected samples."""
        if not self.values:
            return 0.0
        mean = self._mean()
        variance = sum((v - mean) ** 2 for v in self.values) / len(self.values)
        return math.sqrt(variance)

    def render(self, epoch: float = 0.0, sample_rate: float = 1.0) -> list[str]:
        lines = [f"{self.key}.count:{self.count}|c"]
        if epoch > 0:
            lines.append(f"{self.key}.count_ps:{format_float(self.count / epoch)}|c")
        lines.extend([
            f"{self.key}.min:{self._number(self.min)}|ms",
            f"{self.key}.max:{self._number(self.max)}|ms",
            f"{self.key}.sum:{self._number(self.total)}|c",
        ])
        if self.count > 0:
            lines.append(f"{self.key}.median:{self._number(self.median())}|ms")
            lines.append(f"{self.key}.std:{self._number(self.std())}|ms")
        return lines

    def reset(self):
        self.total = 0
        self.count = 0
        self.min = 0
        self.max = 0
        self.values = []

    def export_value(self):
        return self.values[-1] if self.values else None


@dataclass
class PrecisionTiming(Timing):
    """Timer over sub-millisecond durations, kept as float milliseconds."""
    total: float = 0.0
    min: float = 0.0
    max: float = 0.0

    event_type = EventType.PRECISION_TIMING
    stat_class = StatClass.TIMER

    @classmethod
    def observe(cls, key: str, delta: Union[timedelta, float]):
        """Build a timer from a duration (timedelta or float seconds)."""
        millis = to_milliseconds(delta)
        return cls(key=key, total=millis, count=1, min=millis, max=millis, values=[millis])

    def _number(self, value) -> str:
        return format_float(float(value))

    def _halve(self, a, b):
        return (a + b) / 2.0

    def _mean(self):
        return self.total / self.count

    def reset(self):
        super().reset()
        self.total = 0.0
        self.min = 0.0
        self.max = 0.0


def to_milliseconds(delta: Union[timedelta, float]) -> float:
    """Normalize a duration to milliseconds."""
    if isinstance(delta, timedelta):
        return delta / timedelta(milliseconds=1)
    return float(delta) * 1000.0
