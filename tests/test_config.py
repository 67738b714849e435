"""Tests for client configuration."""

import socket

import pytest
import yaml

from statsbuffer.config import BufferedClientConfig


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = BufferedClientConfig()
        assert config.address == "127.0.0.1:8125"
        assert config.flush_interval == 1.0
        assert config.queue_size == 100
        assert config.queue_full_policy == "block"
        assert config.max_packet_size == 512
        assert config.retain_keys is False
        assert config.recycle_connection is True
        assert config.sample_rate == 1.0
        assert config.hostname == socket.gethostname()

    def test_resolved_prefix(self):
        config = BufferedClientConfig(prefix="%HOST%.svc.%HOST%.", hostname="box")
        assert config.resolved_prefix() == "box.svc.%HOST%."


class TestValidate:
    """Tests for validate()."""

    def test_valid(self):
        config = BufferedClientConfig()
        assert config.validate() is config

    @pytest.mark.parametrize("field, value", [
        ("flush_interval", 0),
        ("queue_size", 0),
        ("queue_full_policy", "spill"),
        ("max_packet_size", -1),
        ("sample_rate", 0.0),
        ("timer_sample_rate", 1.5),
    ])
    def test_invalid(self, field, value):
        config = BufferedClientConfig(**{field: value})
        with pytest.raises(ValueError, match=field):
            config.validate()


class TestLoaders:
    """Tests for the YAML and environment loaders."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "statsbuffer.yaml"
        path.write_text(yaml.dump({
            "address": "10.1.1.1:9125",
            "prefix": "app.",
            "retain_keys": True,
            "timer_sample_rate": 0.25,
            "unknown_key": "ignored",
        }))

        config = BufferedClientConfig.from_yaml(str(path))
        assert config.address == "10.1.1.1:9125"
        assert config.prefix == "app."
        assert config.retain_keys is True
        assert config.timer_sample_rate == 0.25
        assert not hasattr(config, "unknown_key")

    def test_from_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert BufferedClientConfig.from_yaml(str(path)).address == "127.0.0.1:8125"

    def test_to_yaml(self, tmp_path):
        path = tmp_path / "out.yaml"
        BufferedClientConfig(prefix="x.", hostname="h", max_packet_size=1400).to_yaml(str(path))

        data = yaml.safe_load(path.read_text())
        assert data["prefix"] == "x."
        assert data["hostname"] == "h"
        assert data["max_packet_size"] == 1400

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STATSBUFFER_ADDRESS", "statsd:8125")
        monkeypatch.setenv("STATSBUFFER_PREFIX", "svc.")
        monkeypatch.setenv("STATSBUFFER_HOSTNAME", "web-1")
        monkeypatch.setenv("STATSBUFFER_FLUSH_INTERVAL", "2.5")
        monkeypatch.setenv("STATSBUFFER_QUEUE_SIZE", "50")
        monkeypatch.setenv("STATSBUFFER_QUEUE_FULL_POLICY", "drop")
        monkeypatch.setenv("STATSBUFFER_RETAIN_KEYS", "true")
        monkeypatch.setenv("STATSBUFFER_SAMPLE_RATE", "0.5")

        config = BufferedClientConfig.from_env()
        assert config.address == "statsd:8125"
        assert config.prefix == "svc."
        assert config.hostname == "web-1"
        assert config.flush_interval == 2.5
        assert config.queue_size == 50
        assert config.queue_full_policy == "drop"
        assert config.retain_keys is True
        assert config.sample_rate == 0.5
