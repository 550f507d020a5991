"""
Counter Sampler
===============
Reads the OS cumulative byte counters and sums them machine-wide.

Per-interface counters are not tracked separately: the summed total is
attributed to whichever network is active when the tick runs.
"""

import time
import logging
from typing import Callable

import psutil

from ..errors import SamplingUnavailable
from ..models import Sample

logger = logging.getLogger(__name__)


def is_loopback(iface: str) -> bool:
    """Loopback interface names on Linux, macOS and Windows."""
    name = iface.lower()
    return name in ("lo", "lo0") or name.startswith("loopback")


class CounterSampler:
    """
    Machine-wide cumulative rx/tx sampler.

    Counters are cumulative since boot or interface-up, so only the
    difference between two samples is meaningful.
    """

    def __init__(self, exclude_loopback: bool = False,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            exclude_loopback: Leave loopback traffic out of the totals
            clock: Wall clock in seconds, injectable for tests
        """
        self.exclude_loopback = exclude_loopback
        self._clock = clock

    def sample(self) -> Sample:
        """
        Take one sample.

        Raises:
            SamplingUnavailable: the OS counter query failed
        """
        try:
            per_nic = psutil.net_io_counters(pernic=True)
        except (OSError, RuntimeError) as e:
            raise SamplingUnavailable(str(e)) from e

        if not per_nic:
            raise SamplingUnavailable("no network interfaces reported")

        total_rx = 0
        total_tx = 0
        for iface, counters in per_nic.items():
            if self.exclude_loopback and is_loopback(iface):
                continue
            total_rx += counters.bytes_recv or 0
            total_tx += counters.bytes_sent or 0

        sample = Sample(
            total_rx=total_rx,
            total_tx=total_tx,
            timestamp_ms=int(self._clock() * 1000),
        )
        logger.debug(f"Sampled rx={total_rx} tx={total_tx} over {len(per_nic)} interfaces")
        return sample
