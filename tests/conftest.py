"""
DataTracker Test Fixtures
=========================
Shared pytest fixtures for all test modules.
"""

import pytest
from collections import namedtuple
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock
import sys

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from datatracker.config import TrackerConfig
from datatracker.models import Sample, NetworkInfo
from datatracker.sampler.identity import NetworkIdentity
from datatracker.storage.ledger import DailyLedger


# psutil result shapes
snetio = namedtuple('snetio', 'bytes_sent bytes_recv')
snicstats = namedtuple('snicstats', 'isup speed')
snicaddr = namedtuple('snicaddr', 'family address')


def local_ms(*args) -> int:
    """Epoch ms of a local wall-clock time."""
    return int(datetime(*args).timestamp() * 1000)


# ============================================================================
# FAKES
# ============================================================================

class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSampler:
    """Replays scripted samples; exceptions in the script are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0

    def sample(self) -> Sample:
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


# ============================================================================
# CONFIG FIXTURES
# ============================================================================

@pytest.fixture
def default_config():
    """Default DataTracker configuration."""
    return TrackerConfig()


@pytest.fixture
def test_config(tmp_path):
    """Fast, isolated configuration without the push channel."""
    return TrackerConfig(
        data_dir=tmp_path / "DataTracker",
        sample_interval=0.2,
        identity_interval=5.0,
        websocket_enabled=False,
    )


@pytest.fixture
def temp_config_file(tmp_path):
    """Temporary YAML config file."""
    config_content = f"""
data_dir: {tmp_path / "custom"}
sampling:
  interval: 2.0
  identity_interval: 60.0
  exclude_loopback: true
websocket:
  enabled: false
  port: 9000
storage:
  backup_on_write: false
"""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content)
    return config_file


# ============================================================================
# STORAGE FIXTURES
# ============================================================================

@pytest.fixture
def data_file(tmp_path):
    """Path of a fresh ledger file."""
    return tmp_path / "data" / "daily.json"


@pytest.fixture
def ledger(data_file):
    """DailyLedger on a temporary file."""
    return DailyLedger(data_file)


# ============================================================================
# SAMPLER FIXTURES
# ============================================================================

@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def wifi():
    """Mutable WiFi probe result: wifi['ssid'] etc."""
    return {"ssid": "Home", "signal": -50.0, "freq": 5180.0}


@pytest.fixture
def identity(fake_clock, wifi):
    """NetworkIdentity on wlan0 with a scripted WiFi probe."""
    return NetworkIdentity(
        clock=fake_clock,
        interface_resolver=lambda: "wlan0",
        wifi_probe=lambda iface, timeout: (wifi["ssid"], wifi["signal"], wifi["freq"]),
        speed_probe=lambda iface: 866.0,
    )


@pytest.fixture
def stub_identity():
    """Identity double that always reports Home on wlan0."""
    stub = MagicMock(spec=NetworkIdentity)
    stub.network_label.return_value = ("wlan0", "Home")
    stub.refresh.return_value = NetworkInfo(interface="wlan0", network_name="Home")
    return stub
