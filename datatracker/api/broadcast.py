"""
Broadcast Port
==============
Fan-out of per-tick speed snapshots to presentation consumers.

Delivery is fire-and-forget: a consumer that is gone or raises is
logged and skipped, never allowed to stall the sampling loop.
"""

import logging
from threading import Lock
from typing import Callable, List

from ..models import SpeedSnapshot

logger = logging.getLogger(__name__)

Consumer = Callable[[dict], None]


class BroadcastPort:
    """Thread-safe registry of snapshot consumers."""

    def __init__(self):
        self._consumers: List[Consumer] = []
        self._lock = Lock()

    def register(self, consumer: Consumer):
        with self._lock:
            if consumer not in self._consumers:
                self._consumers.append(consumer)

    def unregister(self, consumer: Consumer):
        with self._lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)

    @property
    def consumer_count(self) -> int:
        with self._lock:
            return len(self._consumers)

    def emit(self, snapshot: SpeedSnapshot) -> int:
        """
        Deliver a snapshot to every consumer.

        Each consumer gets its own copy of the payload.

        Returns:
            Number of consumers that accepted the snapshot
        """
        with self._lock:
            consumers = list(self._consumers)

        delivered = 0
        for consumer in consumers:
            try:
                consumer(snapshot.to_dict())
                delivered += 1
            except Exception as e:
                logger.warning(f"Broadcast consumer {consumer!r} failed: {e}")
        return delivered
