"""
DataTracker Data Models
=======================
Dataclasses for samples, the daily ledger and network identity.

The ledger dataclasses serialize to the JSON layout of the data file
(``rx_tx_bytes``, ``last_rx``, ``firstSeen`` ...), so files written by
earlier versions of the tracker load unchanged.
"""

import re
import copy
import math
from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import UNNAMED_NETWORKS


# ============================================================================
# SANITIZATION
# ============================================================================

# Network names come straight from the OS and end up as JSON keys and log lines
DANGEROUS_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f]')
MAX_FIELD_LENGTH = 256
MAX_NETWORK_NAME_LENGTH = 64


def sanitize_string(value: str, max_length: int = MAX_FIELD_LENGTH) -> str:
    """
    Sanitize string for safe logging and storage.

    1. Removes control characters
    2. Truncates to max length
    3. Strips leading/trailing whitespace
    """
    if not isinstance(value, str):
        value = str(value)

    value = DANGEROUS_CHARS.sub('', value)

    if len(value) > max_length:
        value = value[:max_length - 3] + "..."

    return value.strip()


def normalize_network_name(name: Optional[str]) -> Optional[str]:
    """Sanitized network name, or None when the OS gave no usable name."""
    if name is None:
        return None
    name = sanitize_string(name, MAX_NETWORK_NAME_LENGTH)
    if name in UNNAMED_NETWORKS:
        return None
    return name


def _as_count(value) -> int:
    """
    Coerce a stored counter to a non-negative int (missing -> 0).

    Raises:
        ValueError: not a number, or not finite (1e999 loads as inf)
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"counter is not finite: {value}")
    return max(0, int(value))


# ============================================================================
# SAMPLING
# ============================================================================

@dataclass(frozen=True)
class Sample:
    """Machine-wide cumulative counters at one instant."""
    total_rx: int
    total_tx: int
    timestamp_ms: int


@dataclass(frozen=True)
class Delta:
    """Byte delta and throughput between two samples."""
    rx_delta: int = 0
    tx_delta: int = 0
    rate_rx_bps: float = 0.0
    rate_tx_bps: float = 0.0

    @property
    def total(self) -> int:
        return self.rx_delta + self.tx_delta

    @property
    def rate_total_bps(self) -> float:
        return self.rate_rx_bps + self.rate_tx_bps


# ============================================================================
# LEDGER
# ============================================================================

@dataclass
class NetworkUsage:
    """Traffic attributed to one named network within one day."""
    interface: str
    rx_tx_bytes: int = 0
    rx_bytes: int = 0
    tx_bytes: int = 0
    first_seen: int = 0
    last_seen: int = 0

    def add(self, inc_rx: int, inc_tx: int, now_ms: int, interface: str):
        self.rx_tx_bytes += inc_rx + inc_tx
        self.rx_bytes += inc_rx
        self.tx_bytes += inc_tx
        self.last_seen = now_ms
        self.interface = interface

    def to_dict(self) -> dict:
        return {
            "interface": self.interface,
            "rx_tx_bytes": self.rx_tx_bytes,
            "rx_bytes": self.rx_bytes,
            "tx_bytes": self.tx_bytes,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkUsage":
        return cls(
            interface=sanitize_string(data.get("interface") or "N/A", MAX_NETWORK_NAME_LENGTH),
            rx_tx_bytes=_as_count(data.get("rx_tx_bytes")),
            rx_bytes=_as_count(data.get("rx_bytes")),
            tx_bytes=_as_count(data.get("tx_bytes")),
            first_seen=_as_count(data.get("firstSeen")),
            last_seen=_as_count(data.get("lastSeen")),
        )


@dataclass
class DailyEntry:
    """
    Aggregate for one local calendar day.

    last_rx / last_tx are the day's watermarks: the cumulative counters
    seen on the previous tick, used as the baseline for the next one.
    """
    rx_tx_bytes: int = 0
    rx_bytes: int = 0
    tx_bytes: int = 0
    last_rx: int = 0
    last_tx: int = 0
    networks: Dict[str, NetworkUsage] = field(default_factory=dict)

    @classmethod
    def starting_at(cls, total_rx: int, total_tx: int) -> "DailyEntry":
        """New day whose baseline is the current cumulative counters."""
        return cls(last_rx=total_rx, last_tx=total_tx)

    def add(self, inc_rx: int, inc_tx: int):
        self.rx_tx_bytes += inc_rx + inc_tx
        self.rx_bytes += inc_rx
        self.tx_bytes += inc_tx

    def to_dict(self) -> dict:
        return {
            "rx_tx_bytes": self.rx_tx_bytes,
            "rx_bytes": self.rx_bytes,
            "tx_bytes": self.tx_bytes,
            "last_rx": self.last_rx,
            "last_tx": self.last_tx,
            "networks": {
                name: usage.to_dict() for name, usage in self.networks.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyEntry":
        """Build from stored JSON. Raises TypeError/ValueError if malformed."""
        if not isinstance(data, dict):
            raise TypeError(f"expected object, got {type(data).__name__}")

        networks = {}
        for name, usage in (data.get("networks") or {}).items():
            if isinstance(usage, dict):
                networks[name] = NetworkUsage.from_dict(usage)

        return cls(
            rx_tx_bytes=_as_count(data.get("rx_tx_bytes")),
            rx_bytes=_as_count(data.get("rx_bytes")),
            tx_bytes=_as_count(data.get("tx_bytes")),
            last_rx=_as_count(data.get("last_rx")),
            last_tx=_as_count(data.get("last_tx")),
            networks=networks,
        )


Ledger = Dict[str, DailyEntry]


def ledger_to_dict(ledger: Ledger) -> dict:
    """Plain JSON-ready copy of a ledger."""
    return {key: entry.to_dict() for key, entry in ledger.items()}


# ============================================================================
# NETWORK IDENTITY
# ============================================================================

@dataclass(frozen=True)
class NetworkInfo:
    """Result of one identity resolution."""
    interface: str
    network_name: Optional[str] = None
    signal_level: Optional[float] = None   # percent if > 0, dBm if <= 0
    frequency_mhz: Optional[float] = None
    link_speed_mbps: Optional[float] = None


@dataclass
class NetworkState:
    """Currently identified network, for uptime computation."""
    interface: Optional[str] = None
    network_name: Optional[str] = None
    connection_start_ms: Optional[int] = None
    last_update_ms: int = 0

    def matches(self, interface: Optional[str], network_name: Optional[str]) -> bool:
        return self.interface == interface and self.network_name == network_name

    def uptime_ms(self, now_ms: int) -> Optional[int]:
        if self.connection_start_ms is None:
            return None
        return max(0, now_ms - self.connection_start_ms)


# ============================================================================
# BROADCAST
# ============================================================================

@dataclass(frozen=True)
class SpeedSnapshot:
    """Payload pushed to presentation consumers on every tick."""
    download_bps: float
    upload_bps: float
    daily: dict
    timestamp_ms: int

    @property
    def total_bps(self) -> float:
        return self.download_bps + self.upload_bps

    def to_dict(self) -> dict:
        return {
            "speedBytesPerSec": self.total_bps,
            "downloadSpeedBytesPerSec": self.download_bps,
            "uploadSpeedBytesPerSec": self.upload_bps,
            "daily": copy.deepcopy(self.daily),
            "timestamp": self.timestamp_ms,
        }
