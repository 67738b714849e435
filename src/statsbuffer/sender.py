"""
UDP Sender.

Ships raw statsd packets to the server. Delivery is fire-and-forget:
nothing is acknowledged and nothing is retried.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a packet could not be handed to the network."""


def parse_address(address: str, default_port: int = 8125) -> tuple[str, int]:
    """Split a 'host:port' string."""
    host, sep, port = address.rpartition(':')
    if not sep:
        return address, default_port
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid port in address: {address}") from None


class _SenderProtocol(asyncio.DatagramProtocol):
    """Datagram protocol that only records the last socket error."""

    def __init__(self):
        self.last_error: Optional[Exception] = None

    def error_received(self, exc):
        self.last_error = exc
        logger.debug(f"UDP error received: {exc}")


class UDPSender:
    """
    Sends statsd packets over UDP.

    Features:
    - Lazily opens the socket on first send
    - Can be closed and re-opened between flushes
    - All socket failures surface as TransportError
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8125):
        """Initialize the sender."""
        self.host = host
        self.port = port

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._protocol: Optional[_SenderProtocol] = None

    @classmethod
    def from_address(cls, address: str) -> "UDPSender":
        """Create a sender from a 'host:port' string."""
        host, port = parse_address(address)
        return cls(host, port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    async def open(self):
        """Create the UDP endpoint."""
        if self.is_open:
            return
        loop = asyncio.get_running_loop()
        try:
            self._transport, self._protocol = await loop.create_datagram_endpoint(
                _SenderProtocol,
                remote_addr=(self.host, self.port),
            )
        except OSError as e:
            raise TransportError(f"Cannot open UDP socket to {self}: {e}") from e

    async def send(self, payload: bytes):
        """Send one packet."""
        await self.open()
        try:
            self._transport.sendto(payload)
        except OSError as e:
            raise TransportError(f"Failed to send {len(payload)} bytes to {self}: {e}") from e

        error = self._protocol.last_error
        if error is not None:
            self._protocol.last_error = None
            raise TransportError(f"Failed to send {len(payload)} bytes to {self}: {error}")

    async def close(self):
        """Close the UDP endpoint."""
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
