"""
Network Identity
================
Resolves the active network (default interface + wireless SSID) and
tracks how long it has been connected.

Change detection:
    The stored NetworkState is compared against every resolution.
    Any difference in (interface, network name) resets the connection
    start time, whichever caller triggered the resolution. Attribution
    inside the sampling loop resolves fresh via network_label() and never
    reuses the slower UI refresh result.
"""

import re
import sys
import time
import socket
import logging
import subprocess
from threading import Lock
from typing import Callable, Optional, Tuple

import psutil

from ..errors import QueryUnavailable
from ..models import NetworkInfo, NetworkState, normalize_network_name, sanitize_string
from .counters import is_loopback

logger = logging.getLogger(__name__)

PROC_ROUTE = "/proc/net/route"
WIFI_PROBE_TIMEOUT = 3.0
# Per-tick attribution must fit inside the 1 s sampling interval
LABEL_PROBE_TIMEOUT = 0.5

# nmcli -t escapes ':' inside values as '\:'
NMCLI_FIELD_SPLIT = re.compile(r'(?<!\\):')


# ============================================================================
# DEFAULT INTERFACE
# ============================================================================

def _default_route_iface() -> Optional[str]:
    """Interface holding the IPv4 default route (Linux only)."""
    try:
        with open(PROC_ROUTE, 'r', encoding='utf-8') as f:
            next(f, None)  # header
            for line in f:
                fields = line.split()
                if len(fields) > 1 and fields[1] == "00000000":
                    return fields[0]
    except OSError:
        pass
    return None


def default_interface() -> str:
    """
    OS-designated default interface.

    Falls back to the first interface that is up, is not loopback and
    has an IPv4 address.

    Raises:
        QueryUnavailable: no candidate interface
    """
    try:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        raise QueryUnavailable(str(e)) from e

    routed = _default_route_iface()
    if routed and routed in stats:
        return routed

    for iface, st in stats.items():
        if not st.isup or is_loopback(iface):
            continue
        if any(a.family == socket.AF_INET for a in addrs.get(iface, [])):
            return iface

    raise QueryUnavailable("no active network interface")


def link_speed_mbps(iface: str) -> Optional[float]:
    """Negotiated link speed reported by the OS (None if unknown)."""
    try:
        st = psutil.net_if_stats().get(iface)
    except (OSError, RuntimeError):
        return None
    if st is None or not st.speed:
        return None
    return float(st.speed)


# ============================================================================
# WIRELESS PROBES
# ============================================================================

def _run(cmd: list, timeout: float = WIFI_PROBE_TIMEOUT) -> str:
    return subprocess.run(
        cmd, capture_output=True, text=True, timeout=timeout, check=True
    ).stdout


def _channel_to_mhz(channel: int) -> float:
    if channel <= 14:
        return 2484.0 if channel == 14 else 2407.0 + 5 * channel
    return 5000.0 + 5 * channel


def _probe_nmcli(iface: str, timeout: float) -> Tuple[Optional[str], Optional[float], Optional[float]]:
    out = _run(["nmcli", "-t", "-f", "ACTIVE,SSID,SIGNAL,FREQ,DEVICE", "dev", "wifi"], timeout)
    for line in out.splitlines():
        fields = [f.replace("\\:", ":") for f in NMCLI_FIELD_SPLIT.split(line)]
        if len(fields) < 5 or fields[0] != "yes" or fields[4] != iface:
            continue
        signal = float(fields[2]) if fields[2].isdigit() else None
        freq_match = re.match(r'(\d+)', fields[3])
        freq = float(freq_match.group(1)) if freq_match else None
        return fields[1], signal, freq
    return None, None, None


def _probe_netsh(iface: str, timeout: float) -> Tuple[Optional[str], Optional[float], Optional[float]]:
    out = _run(["netsh", "wlan", "show", "interfaces"], timeout)
    ssid = signal = freq = None
    current = None
    for line in out.splitlines():
        if ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        if key == "Name":
            current = value
        if current is not None and current != iface:
            continue
        if key == "SSID":
            ssid = value
        elif key == "Signal":
            signal = float(value.rstrip("%")) if value.rstrip("%").isdigit() else None
        elif key == "Channel" and value.isdigit():
            freq = _channel_to_mhz(int(value))
    return ssid, signal, freq


def _probe_airport(iface: str, timeout: float) -> Tuple[Optional[str], Optional[float], Optional[float]]:
    out = _run(["networksetup", "-getairportnetwork", iface], timeout)
    if "Current Wi-Fi Network:" in out:
        return out.split(":", 1)[1].strip(), None, None
    return None, None, None


def probe_wifi(iface: str, timeout: float = WIFI_PROBE_TIMEOUT
               ) -> Tuple[Optional[str], Optional[float], Optional[float]]:
    """
    (ssid, signal, frequency_mhz) of the wireless link on iface.

    Wired interfaces, missing tools and probe errors all give
    (None, None, None).

    Raises:
        QueryUnavailable: the probe did not answer within timeout
    """
    if sys.platform == "win32":
        probe = _probe_netsh
    elif sys.platform == "darwin":
        probe = _probe_airport
    else:
        probe = _probe_nmcli

    try:
        return probe(iface, timeout)
    except subprocess.TimeoutExpired as e:
        # No answer is not the same as "no SSID"
        raise QueryUnavailable(f"WiFi probe timed out after {timeout:g}s") from e
    except (OSError, subprocess.SubprocessError, ValueError) as e:
        logger.debug(f"WiFi info not available on {iface}: {e}")
        return None, None, None


# ============================================================================
# IDENTITY TRACKER
# ============================================================================

class NetworkIdentity:
    """
    Thread-safe network identity resolver with uptime tracking.

    Called from the 1 s sampling loop (network_label), the 30 s refresh
    loop (refresh) and command handlers (describe).
    """

    def __init__(self,
                 clock: Callable[[], float] = time.time,
                 interface_resolver: Callable[[], str] = default_interface,
                 wifi_probe: Callable[[str, float], tuple] = probe_wifi,
                 speed_probe: Callable[[str], Optional[float]] = link_speed_mbps):
        self._clock = clock
        self._interface_resolver = interface_resolver
        self._wifi_probe = wifi_probe
        self._speed_probe = speed_probe

        self.state = NetworkState(last_update_ms=self._now_ms())
        self.last_info: Optional[NetworkInfo] = None
        self._lock = Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def resolve(self, probe_timeout: float = WIFI_PROBE_TIMEOUT) -> NetworkInfo:
        """
        Query the OS for the active network.

        Raises:
            QueryUnavailable: the default interface could not be determined,
                or the WiFi probe timed out
        """
        iface = self._interface_resolver()
        ssid, signal, freq = self._wifi_probe(iface, probe_timeout)

        return NetworkInfo(
            interface=sanitize_string(iface, 64),
            network_name=normalize_network_name(ssid),
            signal_level=signal,
            frequency_mhz=freq,
            link_speed_mbps=self._speed_probe(iface),
        )

    def observe(self, info: NetworkInfo, now_ms: Optional[int] = None) -> bool:
        """
        Record a resolution. Returns True if the network changed.

        A change of interface or network name restarts the uptime clock.
        """
        if now_ms is None:
            now_ms = self._now_ms()

        with self._lock:
            self.last_info = info

            if self.state.matches(info.interface, info.network_name):
                self.state.last_update_ms = now_ms
                return False

            self.state = NetworkState(
                interface=info.interface,
                network_name=info.network_name,
                connection_start_ms=now_ms,
                last_update_ms=now_ms,
            )

        logger.info(
            f"Network changed, resetting uptime: {info.interface} "
            f"{info.network_name or '(unnamed)'}"
        )
        return True

    def refresh(self, probe_timeout: float = WIFI_PROBE_TIMEOUT) -> Optional[NetworkInfo]:
        """Resolve and observe; keeps the last known identity on failure."""
        try:
            info = self.resolve(probe_timeout)
        except QueryUnavailable as e:
            logger.warning(f"{e} (keeping last known network)")
            return self.last_info

        self.observe(info)
        return info

    def network_label(self) -> Tuple[str, Optional[str]]:
        """
        (interface, network name) for attributing the current tick.

        Uses a short probe timeout so a slow WiFi tool cannot stall the
        sampling loop; a timed-out probe keeps the last known network.
        """
        info = self.refresh(LABEL_PROBE_TIMEOUT)
        if info is None:
            return "N/A", None
        return info.interface, info.network_name

    def uptime_ms(self, now_ms: Optional[int] = None) -> Optional[int]:
        with self._lock:
            return self.state.uptime_ms(self._now_ms() if now_ms is None else now_ms)

    def describe(self) -> Optional[dict]:
        """Display-ready network info, resolved at call time."""
        info = self.refresh()
        if info is None:
            return None

        uptime = self.uptime_ms()
        return {
            "interface": format_interface(info.interface, info.frequency_mhz),
            "networkName": info.network_name or "N/A",
            "signalStrength": format_signal(info.signal_level),
            "linkSpeed": format_link_speed(info.link_speed_mbps),
            "uptime": format_uptime(uptime) if uptime is not None else "N/A",
        }


# ============================================================================
# FORMATTING
# ============================================================================

def format_interface(iface: str, frequency_mhz: Optional[float]) -> str:
    if frequency_mhz is not None:
        if frequency_mhz >= 5000:
            return f"{iface} (5GHz)"
        if frequency_mhz >= 2400:
            return f"{iface} (2.4GHz)"
    return iface


def signal_percent(level: float) -> float:
    """Positive levels are already percent; others are dBm (-100..-30)."""
    if level > 0:
        return min(100.0, max(0.0, level))
    return min(100.0, max(0.0, (level + 100) / 70 * 100))


def format_signal(level: Optional[float]) -> str:
    if level is None:
        return "N/A"

    pct = signal_percent(level)
    if pct >= 75:
        quality = "Very Good"
    elif pct >= 50:
        quality = "Good"
    else:
        quality = "Poor"
    return f"{round(pct)}% ({quality})"


def format_link_speed(mbps: Optional[float]) -> str:
    if not mbps:
        return "N/A"
    if mbps >= 1000:
        return f"{mbps / 1000:g} Gbps"
    return f"{mbps:g} Mbps"


def format_uptime(ms: int) -> str:
    seconds = ms // 1000
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
