"""Tests for the flush pipeline."""

from statsbuffer.events import Absolute, Gauge, GaugeAvg, Increment, Timing
from statsbuffer.flusher import Flusher, PacketBuffer, format_event

from conftest import FakeSender


def make_flusher(sender, **kwargs) -> Flusher:
    kwargs.setdefault("epoch", 0.0)
    return Flusher(sender=sender, **kwargs)


class TestFormatEvent:
    """Tests for format_event."""

    def test_prefix_and_newline(self):
        assert format_event(Increment("a", 3), 0.0, 1.0, prefix="p.") == ["p.a:3|c\n"]

    def test_sample_rate_annotation(self):
        lines = format_event(Gauge("g", -2), 0.0, 0.5)
        assert lines == ["g:0|g|@0.500000\n", "g:-2|g|@0.500000\n"]

    def test_timer_only_annotates_counts(self):
        event = Timing.observe("t", 10)
        event.merge(Timing.observe("t", 20))
        lines = format_event(event, 2.0, 0.1, timer=True)

        annotated = [l for l in lines if "|@" in l]
        assert annotated == ["t.count:2|c|@0.100000\n", "t.count_ps:1|c|@0.100000\n"]
        assert "t.median:15|ms\n" in lines

    def test_empty_render(self):
        event = GaugeAvg("avg", 1)
        event.reset()
        assert format_event(event, 0.0, 1.0) == []


class TestPacketBuffer:
    """Tests for PacketBuffer."""

    def test_returns_packet_before_overflow(self):
        buffer = PacketBuffer(10)
        assert buffer.add(b"aaaa\n") is None
        assert buffer.add(b"bbbb\n") is None
        assert buffer.add(b"cc\n") == b"aaaa\nbbbb\n"
        assert buffer.drain() == b"cc\n"
        assert buffer.drain() is None

    def test_oversized_line_stands_alone(self):
        buffer = PacketBuffer(4)
        assert buffer.add(b"0123456789\n") is None
        assert buffer.add(b"x\n") == b"0123456789\n"
        assert len(buffer) == 2


class TestFlusher:
    """Tests for Flusher.flush."""

    async def test_empty_map_sends_nothing(self, sender):
        result = await make_flusher(sender).flush({})
        assert result.events == 0
        assert sender.packets == []
        assert sender.opened == 0

    async def test_sends_and_evicts(self, sender):
        events = {"a": Increment("a", 3), "b": Increment("b", 1)}
        result = await make_flusher(sender, prefix="p.").flush(events)

        assert sorted(sender.lines) == ["p.a:3|c", "p.b:1|c"]
        assert events == {}
        assert result.events == 2
        assert result.lines == 2
        assert result.packets == 1
        assert result.success

    async def test_packets_stay_within_limit(self, sender):
        events = {k: Increment(k, 1) for k in "abcde"}
        result = await make_flusher(sender, max_packet_size=20).flush(events)

        assert [len(p) for p in sender.packets] == [18, 12]
        assert all(len(p) <= 20 for p in sender.packets)
        assert sorted(sender.lines) == [f"{k}:1|c" for k in "abcde"]
        assert result.bytes_sent == 30

    async def test_retain_keys_resets_in_place(self, sender):
        events = {"a": Increment("a", 3), "g": GaugeAvg("g", 4)}
        flusher = make_flusher(sender, retain_keys=True)

        await flusher.flush(events)
        assert set(events) == {"a", "g"}

        await flusher.flush(events)
        assert sender.lines[-1] == "a:0|c"
        assert "g:4|g" in sender.lines
        assert sender.lines.count("g:4|g") == 1

    async def test_transport_error_does_not_stop_flush(self):
        sender = FakeSender(fail_on=(0,))
        events = {"a": Absolute("a", [1, 2, 3]), "b": Increment("b", 1)}
        result = await make_flusher(sender, max_packet_size=6).flush(events)

        assert result.failed_packets == 1
        assert result.packets == 3
        assert not result.success
        assert events == {}
        assert "b:1|c" in sender.lines

    async def test_recycle_connection(self, sender):
        await make_flusher(sender, recycle_connection=True).flush({"a": Increment("a", 1)})
        assert (sender.opened, sender.closed) == (1, 1)

    async def test_persistent_connection(self, sender):
        await make_flusher(sender, recycle_connection=False).flush({"a": Increment("a", 1)})
        assert (sender.opened, sender.closed) == (0, 0)

    async def test_timers_use_timer_rate(self, sender):
        events = {"t": Timing.observe("t", 5), "c": Increment("c", 1)}
        await make_flusher(sender, sample_rate=1.0, timer_sample_rate=0.5).flush(events)

        assert "c:1|c" in sender.lines
        assert "t.count:1|c|@0.500000" in sender.lines
        assert "t.min:5|ms" in sender.lines
