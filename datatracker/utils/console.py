"""
Console Output Utilities
========================
Formatted console output with colors, plus byte/speed formatting.
"""

import sys
from datetime import datetime
from typing import Optional

BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def _fixed(value: float) -> str:
    # 2 decimals below 10, 1 below 100, none above
    if value >= 100:
        return f"{value:.0f}"
    if value >= 10:
        return f"{value:.1f}"
    return f"{value:.2f}"


def format_bytes(num_bytes: Optional[float], unit: str = "auto") -> str:
    """
    Human-readable byte count.

    unit: "auto" (MB below 1 GB, GB above), "MB", "GB" or "scaled"
    (largest unit that keeps the value below 1024).
    """
    if num_bytes is None:
        return "--"

    value = float(num_bytes)
    if unit == "auto":
        index = 2 if num_bytes < 1024 ** 3 else 3
        value /= 1024 ** index
    elif unit in ("MB", "GB"):
        index = BYTE_UNITS.index(unit)
        value /= 1024 ** index
    else:
        index = 0
        while value >= 1024 and index < len(BYTE_UNITS) - 1:
            value /= 1024
            index += 1

    return f"{_fixed(value)} {BYTE_UNITS[index]}"


def format_speed(bytes_per_sec: Optional[float]) -> str:
    """Human-readable throughput (B/s, KB/s or MB/s)."""
    if bytes_per_sec is None:
        return "--"

    if bytes_per_sec >= 1024 * 1024:
        return f"{_fixed(bytes_per_sec / (1024 * 1024))} MB/s"
    if bytes_per_sec >= 1024:
        return f"{_fixed(bytes_per_sec / 1024)} KB/s"
    return f"{_fixed(bytes_per_sec)} B/s"


class Console:
    """
    Console output helper with ANSI colors.
    """

    # ANSI color codes
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"

    # Status indicators
    ALERT = f"{RED}[!]{RESET}"
    INFO = f"{BLUE}[*]{RESET}"
    DOWN = f"{GREEN}↓{RESET}"
    UP = f"{YELLOW}↑{RESET}"

    @classmethod
    def supports_color(cls) -> bool:
        """Check if terminal supports color."""
        return hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()

    @classmethod
    def print_banner(cls):
        print("=" * 60)
        print(f"  {cls.CYAN}{cls.BOLD}DataTracker{cls.RESET} | daily network usage")
        print("=" * 60)

    @classmethod
    def print_config(cls, data_file: str, interval: float, ws_url: Optional[str]):
        """Print configuration info."""
        print(f"  Data: {data_file}")
        print(f"  Sampling every {interval:g}s")
        print(f"  Push channel: {ws_url or 'disabled'}")
        print("=" * 60)
        print(f"{cls.INFO} Tracking... Press Ctrl+C to stop.\n")

    @classmethod
    def format_status(cls, payload: dict) -> str:
        """One-line live status from a broadcast payload."""
        daily = payload.get("daily", {})
        timestamp = payload.get("timestamp")
        if timestamp:
            today = datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d")
        else:
            today = datetime.now().strftime("%Y-%m-%d")
        entry = daily.get(today, {})
        today_bytes = entry.get("rx_tx_bytes", 0)

        # Most recently attributed network
        networks = entry.get("networks", {})
        network = max(networks, key=lambda n: networks[n].get("lastSeen", 0), default="N/A")

        return (
            f"\r{cls.DOWN} {format_speed(payload.get('downloadSpeedBytesPerSec')):>11} "
            f"{cls.UP} {format_speed(payload.get('uploadSpeedBytesPerSec')):>11} "
            f"| Today: {format_bytes(today_bytes):>10} | {network[:24]:<24}"
        )

    @classmethod
    def print_status(cls, payload: dict):
        """BroadcastPort consumer: print status line (overwrites previous)."""
        print(cls.format_status(payload), end="", flush=True)

    @classmethod
    def print_ledger(cls, daily: dict, unit: str = "auto"):
        """Day-by-day table, newest first."""
        if not daily:
            print(f"{cls.INFO} No usage recorded yet.")
            return

        print(f"  {'Date':<12}{'Download':>12}{'Upload':>12}{'Total':>12}")
        for date_key in sorted(daily, reverse=True):
            entry = daily[date_key]
            print(
                f"  {date_key:<12}"
                f"{format_bytes(entry.get('rx_bytes', 0), unit):>12}"
                f"{format_bytes(entry.get('tx_bytes', 0), unit):>12}"
                f"{format_bytes(entry.get('rx_tx_bytes', 0), unit):>12}"
            )
            for name, usage in sorted(entry.get("networks", {}).items()):
                print(f"    • {name:<20}{format_bytes(usage.get('rx_tx_bytes', 0), unit):>22}")

    @classmethod
    def print_summary(cls, summary: dict):
        """Print session summary."""
        print("\n\n" + "=" * 60)
        print(f"  {cls.BOLD}SESSION SUMMARY{cls.RESET}")
        print("=" * 60)
        print(f"  Uptime:        {summary.get('uptime_seconds', 0):.0f}s "
              f"({summary.get('ticks', 0)} ticks, {summary.get('skipped_ticks', 0)} skipped)")
        print(f"  Downloaded:    {format_bytes(summary.get('session_rx', 0), 'scaled')}")
        print(f"  Uploaded:      {format_bytes(summary.get('session_tx', 0), 'scaled')}")
        print(f"  Peak:          {cls.DOWN} {format_speed(summary.get('peak_download_bps', 0))} "
              f"{cls.UP} {format_speed(summary.get('peak_upload_bps', 0))}")
        print(f"  Today:         {format_bytes(summary.get('today_bytes', 0))}")
        print(f"  This month:    {format_bytes(summary.get('month_bytes', 0))}")

        networks = summary.get("networks", {})
        if networks:
            print(f"\n  {cls.BOLD}NETWORKS:{cls.RESET}")
            ranked = sorted(networks.items(), key=lambda kv: kv[1]["rx_tx_bytes"], reverse=True)
            for name, totals in ranked[:5]:
                print(f"    • {name:<24} {format_bytes(totals['rx_tx_bytes']):>10} "
                      f"over {totals['days']} day(s)")

        print("=" * 60)

    @classmethod
    def print_error(cls, message: str):
        """Print error message."""
        print(f"\n{cls.ALERT} {cls.RED}{message}{cls.RESET}")

    @classmethod
    def print_info(cls, message: str):
        """Print info message."""
        print(f"{cls.INFO} {message}")
