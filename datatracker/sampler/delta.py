"""
Delta Engine
============
Turns cumulative counter samples into byte deltas and throughput.

Two deltas are computed per tick:
  - the tick delta, against the previous in-memory sample, which only
    drives the live speed figures
  - the day-baseline delta, against the day's persisted watermarks,
    which is what gets added to the ledger
"""

from typing import Optional, Tuple

from ..models import Sample, Delta, DailyEntry


def _clamped(curr: int, prev: int) -> int:
    # Counters go backwards on driver restart or rollover; never underflow
    return max(0, curr - prev)


def compute_delta(prev: Optional[Sample], curr: Sample) -> Delta:
    """
    Delta and rate between two samples.

    The elapsed time is floored at one second, so a burst of closely
    spaced ticks never inflates the rate.
    """
    if prev is None:
        return Delta()

    rx_delta = _clamped(curr.total_rx, prev.total_rx)
    tx_delta = _clamped(curr.total_tx, prev.total_tx)

    elapsed_sec = max(1.0, (curr.timestamp_ms - prev.timestamp_ms) / 1000)

    return Delta(
        rx_delta=rx_delta,
        tx_delta=tx_delta,
        rate_rx_bps=float(max(0, round(rx_delta / elapsed_sec))),
        rate_tx_bps=float(max(0, round(tx_delta / elapsed_sec))),
    )


def baseline_delta(entry: DailyEntry, curr: Sample) -> Tuple[int, int]:
    """
    Bytes to add to a day, measured against its watermarks.

    A zero watermark means the day has no baseline yet; the current
    counters become the baseline and nothing is added.
    """
    last_rx = entry.last_rx or curr.total_rx
    last_tx = entry.last_tx or curr.total_tx
    return _clamped(curr.total_rx, last_rx), _clamped(curr.total_tx, last_tx)
