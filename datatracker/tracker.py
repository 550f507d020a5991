"""
DataTracker Tracker
===================
Owns the sampling pipeline and its two periodic loops.

    ┌──────────────┐   Sample   ┌─────────────┐  tick delta   ┌───────────────┐
    │CounterSampler│───────────▶│ DeltaEngine │──────────────▶│ BroadcastPort │
    └──────────────┘     │      └─────────────┘               └───────▲───────┘
                         │                                            │ snapshot
                         │   + network label    ┌─────────────┐       │
                         └─────────────────────▶│ DailyLedger │───────┘
                                                └─────────────┘
    NetworkIdentity: resolved per tick for attribution, and refreshed
    on its own slower loop for uptime and display.

Loops:
    - Tracker-Sampler:  every sample_interval (1 s)
    - Tracker-Identity: every identity_interval (30 s)

Neither loop may die on an error: every failure is logged and the
loop carries on with the next tick.
"""

import time
import logging
from threading import Thread, Event, Lock
from typing import Optional

from .config import TrackerConfig
from .errors import SamplingUnavailable
from .models import Sample, SpeedSnapshot
from .sampler import CounterSampler, NetworkIdentity, compute_delta
from .storage import DailyLedger
from .api import BroadcastPort, WebSocketServer

logger = logging.getLogger(__name__)


class Tracker:
    """
    Background network-usage tracker.

    Exposes the command surface used by presentation clients:
    get_daily_data, get_network_info, reset_data, get_store_path.
    """

    def __init__(self, config: TrackerConfig,
                 sampler: Optional[CounterSampler] = None,
                 identity: Optional[NetworkIdentity] = None,
                 ledger: Optional[DailyLedger] = None,
                 broadcast: Optional[BroadcastPort] = None):
        self.config = config

        self.sampler = sampler or CounterSampler(exclude_loopback=config.exclude_loopback)
        self.identity = identity or NetworkIdentity()
        self.ledger = ledger or DailyLedger(config.data_file, backup_on_write=config.backup_on_write)
        self.broadcast = broadcast or BroadcastPort()

        # Push channel for GUI clients
        self.ws: Optional[WebSocketServer] = None
        if config.websocket_enabled:
            self.ws = WebSocketServer(self, config.websocket_host, config.websocket_port)
            self.broadcast.register(self.ws.publish)

        # Previous sample, owned by the sampling loop
        self._prev_sample: Optional[Sample] = None
        self.last_snapshot: Optional[SpeedSnapshot] = None

        # Session statistics
        self._stats_lock = Lock()
        self.start_time: Optional[float] = None
        self.tick_count = 0
        self.skipped_ticks = 0
        self.session_rx = 0
        self.session_tx = 0
        self.peak_download_bps = 0.0
        self.peak_upload_bps = 0.0

        self.running = False
        self.stop_event = Event()
        self.threads: list = []

    # ========================================================================
    # PIPELINE
    # ========================================================================

    def tick(self) -> Optional[SpeedSnapshot]:
        """
        One sampling tick: sample, delta, attribute, persist, broadcast.

        Returns None when the counters could not be read (tick skipped).
        """
        try:
            curr = self.sampler.sample()
        except SamplingUnavailable as e:
            logger.warning(f"{e} (skipping tick)")
            with self._stats_lock:
                self.skipped_ticks += 1
            return None

        delta = compute_delta(self._prev_sample, curr)
        self._prev_sample = curr

        interface, network_name = self.identity.network_label()
        daily = self.ledger.record(curr, network_name, interface)

        snapshot = SpeedSnapshot(
            download_bps=delta.rate_rx_bps,
            upload_bps=delta.rate_tx_bps,
            daily=daily,
            timestamp_ms=curr.timestamp_ms,
        )
        self.last_snapshot = snapshot

        with self._stats_lock:
            self.tick_count += 1
            self.session_rx += delta.rx_delta
            self.session_tx += delta.tx_delta
            self.peak_download_bps = max(self.peak_download_bps, delta.rate_rx_bps)
            self.peak_upload_bps = max(self.peak_upload_bps, delta.rate_tx_bps)

        self.broadcast.emit(snapshot)
        return snapshot

    def _sampling_loop(self):
        """Periodic sampling; the next tick is scheduled from the tick start."""
        interval = self.config.sample_interval

        while self.running and not self.stop_event.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"Sampling loop error: {e}")

            elapsed = time.monotonic() - started
            self.stop_event.wait(max(0.0, interval - elapsed))

    def _identity_loop(self):
        """Slower identity refresh for uptime and display."""
        while self.running and not self.stop_event.is_set():
            try:
                self.identity.refresh()
            except Exception as e:
                logger.exception(f"Identity loop error: {e}")

            self.stop_event.wait(self.config.identity_interval)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def start(self):
        """Start the push channel and both periodic loops."""
        if self.running:
            return

        self.running = True
        self.stop_event.clear()
        self.start_time = time.time()

        if self.ws:
            self.ws.start()

        for target, name in (
            (self._sampling_loop, "Tracker-Sampler"),
            (self._identity_loop, "Tracker-Identity"),
        ):
            t = Thread(target=target, daemon=True, name=name)
            t.start()
            self.threads.append(t)

        logger.info(f"Tracking started, data file: {self.ledger.data_file}")

    def run(self):
        """Start and block until stop() is called (e.g. from a signal handler)."""
        self.start()
        try:
            while not self.stop_event.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()

    def stop(self):
        """
        Graceful shutdown.

        Joins the sampling thread so an in-flight ledger write completes
        before the process exits.
        """
        self.stop_event.set()
        if not self.running:
            return
        self.running = False

        join_timeout = self.config.sample_interval + 5.0
        for t in self.threads:
            t.join(timeout=join_timeout)
            if t.is_alive():
                logger.warning(f"Thread {t.name} did not stop in time")
        self.threads = []

        if self.ws:
            self.ws.stop()

        logger.info("Tracker shutdown complete")

    # ========================================================================
    # COMMANDS
    # ========================================================================

    def get_daily_data(self) -> dict:
        """Full ledger as plain JSON-ready dicts."""
        data = self.ledger.snapshot()
        logger.debug(f"Returning {len(data)} data entries")
        return data

    def get_network_info(self) -> Optional[dict]:
        """Current network, resolved now rather than from the refresh loop."""
        return self.identity.describe()

    def reset_data(self) -> bool:
        return self.ledger.reset()

    def get_store_path(self) -> dict:
        paths = self.ledger.store_paths()
        paths["userData"] = str(self.config.data_dir)
        return paths

    def get_session_summary(self) -> dict:
        """Session totals for the exit summary."""
        with self._stats_lock:
            uptime = time.time() - self.start_time if self.start_time else 0.0
            return {
                "uptime_seconds": uptime,
                "ticks": self.tick_count,
                "skipped_ticks": self.skipped_ticks,
                "session_rx": self.session_rx,
                "session_tx": self.session_tx,
                "peak_download_bps": self.peak_download_bps,
                "peak_upload_bps": self.peak_upload_bps,
                "today_bytes": self.ledger.today_total(),
                "month_bytes": self.ledger.month_total(),
                "networks": self.ledger.network_totals(),
            }
