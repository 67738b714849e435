"""Command-line interface for statsbuffer."""

import asyncio
import socket
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .client import BufferedClient
from .config import BufferedClientConfig
from .utils.logger import setup_logging

app = typer.Typer(
    name="statsbuffer",
    help="Buffered statsd client: send test metrics and inspect wire traffic",
    add_completion=False,
)

console = Console()

METRIC_TYPES = (
    "incr", "decr", "timing", "precision_timing", "gauge", "gauge_absolute",
    "gauge_avg", "gauge_delta", "fgauge", "fgauge_delta", "absolute",
    "fabsolute", "total",
)

_FLOAT_TYPES = ("precision_timing", "fgauge", "fgauge_delta", "fabsolute")


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def parse_value(metric_type: str, value: str):
    """Convert the command-line value to the type the metric expects."""
    if metric_type in _FLOAT_TYPES:
        return float(value)
    return int(value)


async def _send(config: BufferedClientConfig, metric_type: str, key: str, value, repeat: int):
    async with BufferedClient(config) as client:
        report = getattr(client, metric_type)
        for _ in range(repeat):
            await report(key, value)
        result = await client.flush()
    return result


@app.command()
def send(
    key: str = typer.Argument(..., help="Metric name, may contain %HOST%"),
    value: str = typer.Argument(..., help="Metric value"),
    metric_type: str = typer.Option("incr", "--type", "-t", help=f"One of: {', '.join(METRIC_TYPES)}"),
    address: str = typer.Option("127.0.0.1:8125", "--address", "-a", help="Statsd server host:port"),
    prefix: str = typer.Option("", "--prefix", "-p", help="Prefix for every metric"),
    sample_rate: float = typer.Option(1.0, "--sample-rate", "-s", help="Sample rate in (0, 1]"),
    repeat: int = typer.Option(1, "--repeat", "-n", help="Report the value this many times"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
):
    """Report a metric through a buffered client and flush it."""
    if metric_type not in METRIC_TYPES:
        console.print(f"[red]Unknown metric type: {metric_type}[/red]")
        raise typer.Exit(code=2)

    try:
        parsed = parse_value(metric_type, value)
    except ValueError:
        console.print(f"[red]Invalid value for {metric_type}: {value}[/red]")
        raise typer.Exit(code=2)

    config = BufferedClientConfig.from_yaml(config_file) if config_file else BufferedClientConfig()
    if not config_file:
        config.address = address
        config.prefix = prefix
        config.sample_rate = sample_rate
        config.timer_sample_rate = sample_rate

    setup_logging(config.log_level, config.log_file)

    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=2)

    result = run_async(_send(config, metric_type, key, parsed, repeat))

    table = Table(title="Flush Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Server", config.address)
    table.add_row("Events", str(result.events))
    table.add_row("Lines", str(result.lines))
    table.add_row("Packets", str(result.packets))
    table.add_row("Bytes", str(result.bytes_sent))
    table.add_row("Failed packets", str(result.failed_packets))
    console.print(table)

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def listen(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Address to bind"),
    port: int = typer.Option(8125, "--port", "-p", help="UDP port to bind"),
    count: int = typer.Option(0, "--count", "-n", help="Stop after this many packets (0 = infinite)"),
    timeout: float = typer.Option(0.0, "--timeout", help="Stop after this many idle seconds (0 = never)"),
):
    """Print the statsd lines received on a UDP port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind((host, port))
    if timeout > 0:
        sock.settimeout(timeout)

    console.print(f"[bold]Listening for statsd packets on {host}:{port}[/bold]")
    console.print("Press Ctrl+C to stop\n")

    received = 0
    try:
        while count == 0 or received < count:
            try:
                data, addr = sock.recvfrom(65535)
            except socket.timeout:
                break
            received += 1

            table = Table(title=f"Packet {received} from {addr[0]}:{addr[1]} ({len(data)} bytes)")
            table.add_column("Key", style="cyan")
            table.add_column("Value", style="green")
            table.add_column("Type", style="magenta")
            table.add_column("Rate")
            for line in data.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    table.add_row(*split_line(line))
            console.print(table)
    except KeyboardInterrupt:
        pass
    finally:
        sock.close()

    console.print(f"\n[green]Received {received} packets[/green]")


def split_line(line: str) -> tuple[str, str, str, str]:
    """Split a wire line into key, value, type and sample rate."""
    key, _, rest = line.partition(":")
    parts = rest.split("|")
    value = parts[0]
    metric_type = parts[1] if len(parts) > 1 else ""
    rate = parts[2][1:] if len(parts) > 2 and parts[2].startswith("@") else ""
    return key, value, metric_type, rate


if __name__ == "__main__":
    app()
