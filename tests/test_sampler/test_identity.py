"""
Network Identity Tests
======================
Tests for interface resolution, WiFi probes, uptime tracking and formatting.
"""

import socket
import subprocess
import pytest
from unittest.mock import patch

from conftest import snicstats, snicaddr
from datatracker.errors import QueryUnavailable
from datatracker.models import NetworkInfo, NetworkState
from datatracker.sampler import identity as identity_mod
from datatracker.sampler.identity import (
    NetworkIdentity,
    default_interface,
    link_speed_mbps,
    probe_wifi,
    format_interface,
    format_signal,
    format_link_speed,
    format_uptime,
)


# ============================================================================
# DEFAULT INTERFACE
# ============================================================================

@pytest.fixture
def mock_ifaces():
    with patch('datatracker.sampler.identity.psutil') as psutil_mock:
        psutil_mock.net_if_stats.return_value = {
            "lo": snicstats(isup=True, speed=0),
            "eth0": snicstats(isup=False, speed=1000),
            "wlan0": snicstats(isup=True, speed=300),
        }
        psutil_mock.net_if_addrs.return_value = {
            "lo": [snicaddr(family=socket.AF_INET, address="127.0.0.1")],
            "wlan0": [snicaddr(family=socket.AF_INET, address="192.168.1.20")],
        }
        yield psutil_mock


class TestDefaultInterface:

    def test_routed_interface_preferred(self, mock_ifaces):
        with patch.object(identity_mod, '_default_route_iface', return_value="eth0"):
            assert default_interface() == "eth0"

    def test_fallback_first_up_non_loopback(self, mock_ifaces):
        """Without a default route: first up, non-loopback IPv4 interface."""
        with patch.object(identity_mod, '_default_route_iface', return_value=None):
            assert default_interface() == "wlan0"

    def test_no_candidate_raises(self, mock_ifaces):
        mock_ifaces.net_if_addrs.return_value = {}
        with patch.object(identity_mod, '_default_route_iface', return_value=None):
            with pytest.raises(QueryUnavailable):
                default_interface()

    def test_psutil_failure_raises(self, mock_ifaces):
        mock_ifaces.net_if_stats.side_effect = OSError("boom")
        with pytest.raises(QueryUnavailable):
            default_interface()

    def test_link_speed(self, mock_ifaces):
        assert link_speed_mbps("wlan0") == 300.0
        assert link_speed_mbps("lo") is None
        assert link_speed_mbps("missing0") is None


# ============================================================================
# WIFI PROBES
# ============================================================================

NMCLI_OUTPUT = (
    "no:Neighbour:40:2412 MHz:wlan0\n"
    "yes:My\\:Net:72:5180 MHz:wlan0\n"
)

NETSH_OUTPUT = """
There is 1 interface on the system:

    Name                   : Wi-Fi
    Description            : Intel(R) Wireless-AC 9560
    State                  : connected
    SSID                   : Home
    BSSID                  : aa:bb:cc:dd:ee:ff
    Radio type             : 802.11ac
    Channel                : 36
    Signal                 : 85%
"""


class TestWifiProbes:
    """Parsing of platform WiFi tool output."""

    def test_nmcli_active_network(self):
        with patch.object(identity_mod.sys, 'platform', 'linux'), \
             patch.object(identity_mod, '_run', return_value=NMCLI_OUTPUT):
            assert probe_wifi("wlan0") == ("My:Net", 72.0, 5180.0)

    def test_nmcli_wired_interface(self):
        with patch.object(identity_mod.sys, 'platform', 'linux'), \
             patch.object(identity_mod, '_run', return_value=NMCLI_OUTPUT):
            assert probe_wifi("eth0") == (None, None, None)

    def test_netsh(self):
        with patch.object(identity_mod.sys, 'platform', 'win32'), \
             patch.object(identity_mod, '_run', return_value=NETSH_OUTPUT):
            assert probe_wifi("Wi-Fi") == ("Home", 85.0, 5180.0)

    def test_airport(self):
        with patch.object(identity_mod.sys, 'platform', 'darwin'), \
             patch.object(identity_mod, '_run', return_value="Current Wi-Fi Network: Cafe\n"):
            assert probe_wifi("en0") == ("Cafe", None, None)

    def test_missing_tool(self):
        """No WiFi tooling means no SSID, not an error."""
        with patch.object(identity_mod.sys, 'platform', 'linux'), \
             patch.object(identity_mod, '_run', side_effect=FileNotFoundError("nmcli")):
            assert probe_wifi("wlan0") == (None, None, None)

    def test_timeout_passed_to_tool(self):
        with patch.object(identity_mod.sys, 'platform', 'linux'), \
             patch.object(identity_mod, '_run', return_value=NMCLI_OUTPUT) as run:
            probe_wifi("wlan0", timeout=0.5)
        assert run.call_args[0][1] == 0.5

    def test_slow_tool_is_query_unavailable(self):
        """A WiFi tool that times out is not reported as 'no SSID'."""
        slow = subprocess.TimeoutExpired(cmd="nmcli", timeout=0.5)
        with patch.object(identity_mod.sys, 'platform', 'linux'), \
             patch.object(identity_mod, '_run', side_effect=slow):
            with pytest.raises(QueryUnavailable):
                probe_wifi("wlan0", timeout=0.5)


# ============================================================================
# IDENTITY TRACKER
# ============================================================================

class TestNetworkIdentity:
    """Resolution, change detection and uptime."""

    def test_resolve(self, identity):
        info = identity.resolve()

        assert info.interface == "wlan0"
        assert info.network_name == "Home"
        assert info.signal_level == -50.0
        assert info.frequency_mhz == 5180.0
        assert info.link_speed_mbps == 866.0

    @pytest.mark.parametrize("ssid", [None, "", "Unknown", "N/A"])
    def test_unnamed_network_normalized(self, identity, wifi, ssid):
        wifi["ssid"] = ssid
        assert identity.resolve().network_name is None

    def test_first_observation_starts_uptime(self, identity, fake_clock):
        identity.refresh()
        assert identity.state.connection_start_ms == int(fake_clock() * 1000)
        assert identity.uptime_ms() == 0

    def test_uptime_grows_on_same_network(self, identity, fake_clock):
        identity.refresh()
        fake_clock.advance(60)
        changed = identity.observe(identity.resolve())

        assert changed is False
        assert identity.uptime_ms() == 60000

    def test_network_change_resets_uptime(self, identity, fake_clock, wifi):
        """wlan0 Home -> wlan0 Office restarts the connection clock."""
        identity.refresh()
        fake_clock.advance(120)

        wifi["ssid"] = "Office"
        info = identity.refresh()
        now_ms = int(fake_clock() * 1000)

        assert info.network_name == "Office"
        assert identity.state.network_name == "Office"
        assert identity.state.connection_start_ms == now_ms
        assert identity.uptime_ms() == 0

    def test_observe_change_from_state(self, identity):
        identity.state = NetworkState("wlan0", "Home", connection_start_ms=0)

        changed = identity.observe(NetworkInfo("wlan0", "Office"), now_ms=5000)

        assert changed is True
        assert identity.state.connection_start_ms == 5000

    def test_interface_change_resets_uptime(self, identity):
        identity.state = NetworkState("wlan0", "Home", connection_start_ms=0)
        assert identity.observe(NetworkInfo("eth0", "Home"), now_ms=9000) is True

    def test_query_failure_keeps_last_identity(self, fake_clock):
        calls = {"n": 0}

        def flaky_resolver():
            calls["n"] += 1
            if calls["n"] > 1:
                raise QueryUnavailable("no route")
            return "wlan0"

        identity = NetworkIdentity(
            clock=fake_clock,
            interface_resolver=flaky_resolver,
            wifi_probe=lambda iface, timeout: ("Home", None, None),
            speed_probe=lambda iface: None,
        )
        first = identity.refresh()
        start = identity.state.connection_start_ms
        fake_clock.advance(30)

        assert identity.refresh() == first
        assert identity.state.connection_start_ms == start
        assert identity.network_label() == ("wlan0", "Home")

    def test_label_without_any_resolution(self, fake_clock):
        def broken():
            raise QueryUnavailable("offline")

        identity = NetworkIdentity(clock=fake_clock, interface_resolver=broken)
        assert identity.network_label() == ("N/A", None)
        assert identity.describe() is None

    def test_label_uses_short_wifi_timeout(self, fake_clock):
        """Per-tick attribution never waits the full UI lookup timeout."""
        timeouts = []

        def recording_lookup(iface, timeout):
            timeouts.append(timeout)
            return "Home", None, None

        identity = NetworkIdentity(
            clock=fake_clock,
            interface_resolver=lambda: "wlan0",
            wifi_probe=recording_lookup,
            speed_probe=lambda iface: None,
        )
        identity.network_label()
        identity.refresh()

        assert timeouts == [identity_mod.LABEL_PROBE_TIMEOUT, identity_mod.WIFI_PROBE_TIMEOUT]
        assert identity_mod.LABEL_PROBE_TIMEOUT < 1.0

    def test_wifi_timeout_keeps_network(self, identity, fake_clock):
        """A slow WiFi tool neither drops attribution nor resets uptime."""
        identity.network_label()
        start = identity.state.connection_start_ms
        fake_clock.advance(10)

        def slow_lookup(iface, timeout):
            raise QueryUnavailable(f"WiFi probe timed out after {timeout:g}s")

        identity._wifi_probe = slow_lookup

        assert identity.network_label() == ("wlan0", "Home")
        assert identity.state.connection_start_ms == start

    def test_describe(self, identity, fake_clock):
        identity.refresh()
        fake_clock.advance(3723)

        info = identity.describe()

        assert info == {
            "interface": "wlan0 (5GHz)",
            "networkName": "Home",
            "signalStrength": "71% (Good)",
            "linkSpeed": "866 Mbps",
            "uptime": "1h 2m 3s",
        }

    def test_describe_unnamed(self, identity, wifi):
        wifi.update(ssid=None, signal=None, freq=None)
        info = identity.describe()

        assert info["networkName"] == "N/A"
        assert info["signalStrength"] == "N/A"
        assert info["interface"] == "wlan0"


# ============================================================================
# FORMATTING
# ============================================================================

class TestFormatting:

    @pytest.mark.parametrize("freq,expected", [
        (5180.0, "wlan0 (5GHz)"),
        (2437.0, "wlan0 (2.4GHz)"),
        (None, "wlan0"),
    ])
    def test_interface(self, freq, expected):
        assert format_interface("wlan0", freq) == expected

    @pytest.mark.parametrize("level,expected", [
        (80.0, "80% (Very Good)"),
        (60.0, "60% (Good)"),
        (-50.0, "71% (Good)"),
        (-30.0, "100% (Very Good)"),
        (-100.0, "0% (Poor)"),
        (None, "N/A"),
    ])
    def test_signal(self, level, expected):
        assert format_signal(level) == expected

    @pytest.mark.parametrize("mbps,expected", [
        (866.0, "866 Mbps"),
        (1000.0, "1 Gbps"),
        (2500.0, "2.5 Gbps"),
        (None, "N/A"),
        (0.0, "N/A"),
    ])
    def test_link_speed(self, mbps, expected):
        assert format_link_speed(mbps) == expected

    @pytest.mark.parametrize("ms,expected", [
        (3723000, "1h 2m 3s"),
        (65000, "1m 5s"),
        (5000, "5s"),
        (0, "0s"),
    ])
    def test_uptime(self, ms, expected):
        assert format_uptime(ms) == expected
