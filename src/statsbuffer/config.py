"""
Buffered Client Configuration.
"""

import os
import socket
from dataclasses import asdict, dataclass, field, fields
from typing import Optional
import yaml

HOST_PLACEHOLDER = "%HOST%"

QUEUE_POLICIES = ("block", "drop")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BufferedClientConfig:
    """Configuration for a buffered statsd client."""
    # Statsd server
    address: str = "127.0.0.1:8125"
    prefix: str = ""

    # Replaces %HOST% in keys and in the prefix
    hostname: str = field(default_factory=lambda: socket.gethostname())

    # Aggregation
    flush_interval: float = 1.0  # seconds
    queue_size: int = 100
    queue_full_policy: str = "block"  # block | drop
    retain_keys: bool = False
    add_expvar: bool = True

    # Output
    max_packet_size: int = 512  # bytes per datagram
    recycle_connection: bool = True  # reopen the socket on every flush

    # Sampling
    sample_rate: float = 1.0
    timer_sample_rate: float = 1.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def resolved_prefix(self) -> str:
        """Prefix with the host placeholder substituted."""
        return self.prefix.replace(HOST_PLACEHOLDER, self.hostname, 1)

    def validate(self) -> "BufferedClientConfig":
        """Check value ranges, raising ValueError on the first bad one."""
        if self.flush_interval <= 0:
            raise ValueError(f"flush_interval must be positive, got {self.flush_interval}")
        if self.queue_size <= 0:
            raise ValueError(f"queue_size must be positive, got {self.queue_size}")
        if self.queue_full_policy not in QUEUE_POLICIES:
            raise ValueError(
                f"queue_full_policy must be one of {', '.join(QUEUE_POLICIES)}, "
                f"got {self.queue_full_policy!r}"
            )
        if self.max_packet_size <= 0:
            raise ValueError(f"max_packet_size must be positive, got {self.max_packet_size}")
        for name in ("sample_rate", "timer_sample_rate"):
            rate = getattr(self, name)
            if not 0.0 < rate <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {rate}")
        return self

    @classmethod
    def from_yaml(cls, path: str) -> "BufferedClientConfig":
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def from_env(cls) -> "BufferedClientConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Override with environment variables
        if os.getenv("STATSBUFFER_ADDRESS"):
            config.address = os.getenv("STATSBUFFER_ADDRESS")
        if os.getenv("STATSBUFFER_PREFIX"):
            config.prefix = os.getenv("STATSBUFFER_PREFIX")
        if os.getenv("STATSBUFFER_HOSTNAME"):
            config.hostname = os.getenv("STATSBUFFER_HOSTNAME")
        if os.getenv("STATSBUFFER_FLUSH_INTERVAL"):
            config.flush_interval = float(os.getenv("STATSBUFFER_FLUSH_INTERVAL"))
        if os.getenv("STATSBUFFER_QUEUE_SIZE"):
            config.queue_size = int(os.getenv("STATSBUFFER_QUEUE_SIZE"))
        if os.getenv("STATSBUFFER_QUEUE_FULL_POLICY"):
            config.queue_full_policy = os.getenv("STATSBUFFER_QUEUE_FULL_POLICY")
        if os.getenv("STATSBUFFER_MAX_PACKET_SIZE"):
            config.max_packet_size = int(os.getenv("STATSBUFFER_MAX_PACKET_SIZE"))
        if os.getenv("STATSBUFFER_RETAIN_KEYS"):
            config.retain_keys = _env_bool(os.getenv("STATSBUFFER_RETAIN_KEYS"))
        if os.getenv("STATSBUFFER_SAMPLE_RATE"):
            config.sample_rate = float(os.getenv("STATSBUFFER_SAMPLE_RATE"))
        if os.getenv("STATSBUFFER_TIMER_SAMPLE_RATE"):
            config.timer_sample_rate = float(os.getenv("STATSBUFFER_TIMER_SAMPLE_RATE"))
        if os.getenv("STATSBUFFER_LOG_LEVEL"):
            config.log_level = os.getenv("STATSBUFFER_LOG_LEVEL")

        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "BufferedClientConfig":
        """Create config from dictionary."""
        config = cls()

        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key in known:
                setattr(config, key, value)

        return config

    def to_yaml(self, path: str) -> None:
        """Save configuration to YAML file."""
        with open(path, 'w') as f:
            yaml.dump(asdict(self), f, default_flow_style=False)
