"""Tests for the command-line interface."""

import socket

from typer.testing import CliRunner

from statsbuffer.cli import app, parse_value, split_line

runner = CliRunner()


def free_udp_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestHelpers:
    """Tests for CLI helpers."""

    def test_split_line(self):
        assert split_line("app.hits:3|c|@0.500000") == ("app.hits", "3", "c", "0.500000")
        assert split_line("app.load:+2|g") == ("app.load", "+2", "g", "")

    def test_parse_value(self):
        assert parse_value("incr", "3") == 3
        assert parse_value("fgauge", "1.5") == 1.5


class TestSend:
    """Tests for the send command."""

    def test_send_reaches_listener(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        listener.bind(("127.0.0.1", 0))
        listener.settimeout(2)
        port = listener.getsockname()[1]
        try:
            result = runner.invoke(app, [
                "send", "hits", "2",
                "--address", f"127.0.0.1:{port}",
                "--prefix", "cli.",
                "--repeat", "3",
            ])
            assert result.exit_code == 0, result.output
            assert "Flush Summary" in result.output
            assert listener.recv(1024) == b"cli.hits:6|c\n"
        finally:
            listener.close()

    def test_unknown_type(self):
        result = runner.invoke(app, ["send", "hits", "2", "--type", "histogram"])
        assert result.exit_code == 2
        assert "Unknown metric type" in result.output

    def test_invalid_value(self):
        result = runner.invoke(app, ["send", "hits", "lots"])
        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_invalid_sample_rate(self):
        result = runner.invoke(app, ["send", "hits", "1", "--sample-rate", "0"])
        assert result.exit_code == 2
        assert "sample_rate" in result.output


class TestListen:
    """Tests for the listen command."""

    def test_idle_timeout(self):
        port = free_udp_port()
        result = runner.invoke(app, ["listen", "--port", str(port), "--timeout", "0.2"])
        assert result.exit_code == 0, result.output
        assert "Received 0 packets" in result.output
