"""
Daily Ledger
============
File-backed store of per-day, per-network byte totals.

The JSON file is the single source of truth: every operation reads it
fully and every mutation rewrites it fully. Mutations hold a lock for
the whole read-modify-write round trip, so ticks and resets never
interleave.

Durability:
  - the previous file, if it loads, is copied to ``<file>.backup`` before each write
  - the new document is written to a temp file and atomically replaced
  - on write failure the data file is restored from the backup
  - unreadable or malformed files read as an empty ledger; mutations
    on a corrupt file start from the backup instead, keeping the history
"""

import json
import shutil
import logging
from collections.abc import Mapping
from pathlib import Path
from threading import RLock
from datetime import datetime
from typing import Dict, Optional

from ..config import BACKUP_SUFFIX
from ..errors import PersistenceCorrupt, PersistenceWriteFailed
from ..models import (
    Sample,
    DailyEntry,
    NetworkUsage,
    Ledger,
    ledger_to_dict,
)
from ..sampler.delta import baseline_delta

logger = logging.getLogger(__name__)


def local_date_key(timestamp_ms: Optional[int] = None) -> str:
    """YYYY-MM-DD of the local calendar date (not UTC)."""
    if timestamp_ms is None:
        moment = datetime.now()
    else:
        moment = datetime.fromtimestamp(timestamp_ms / 1000)
    return moment.strftime("%Y-%m-%d")


class DailyLedger:
    """
    Thread-safe daily aggregation store.

    Layout on disk: ``{"YYYY-MM-DD": DailyEntry, ...}``.
    """

    def __init__(self, data_file: Path, backup_on_write: bool = True):
        """
        Args:
            data_file: Path of the JSON document
            backup_on_write: Copy the previous document aside before each write
        """
        self.data_file = Path(data_file)
        self.backup_file = self.data_file.with_name(self.data_file.name + BACKUP_SUFFIX)
        self.backup_on_write = backup_on_write

        self._lock = RLock()
        self._ensure_data_file()

    def _ensure_data_file(self):
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if not self.data_file.exists():
                self.data_file.write_text("{}", encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot create data file {self.data_file}: {e}")

    # ========================================================================
    # READ
    # ========================================================================

    def load(self, path: Optional[Path] = None) -> Ledger:
        """
        Strict read of the data file (or another copy of it, e.g. the backup).

        Raises:
            PersistenceCorrupt: file missing, unreadable or not a JSON object
        """
        path = self.data_file if path is None else path
        try:
            content = path.read_text(encoding="utf-8")
            data = json.loads(content or "{}")
        except (OSError, ValueError) as e:
            raise PersistenceCorrupt(path, e) from e

        if not isinstance(data, dict):
            raise PersistenceCorrupt(path, f"expected object, got {type(data).__name__}")

        ledger: Ledger = {}
        for key, value in data.items():
            try:
                ledger[key] = DailyEntry.from_dict(value)
            except (TypeError, ValueError, OverflowError, AttributeError) as e:
                logger.warning(f"Skipping malformed entry {key!r}: {e}")
        return ledger

    def read(self) -> Ledger:
        """Full ledger; empty if the store is missing or corrupt."""
        with self._lock:
            try:
                return self.load()
            except PersistenceCorrupt as e:
                logger.warning(f"{e} (treating as empty)")
                return {}

    def _read_for_update(self) -> Ledger:
        """
        Ledger to mutate. A corrupt data file is replaced by the backup's
        content, so the next write does not drop the stored history.
        """
        try:
            return self.load()
        except PersistenceCorrupt as e:
            logger.warning(str(e))

        try:
            ledger = self.load(self.backup_file)
        except PersistenceCorrupt as e:
            logger.warning(f"No usable backup ({e}), starting from an empty ledger")
            return {}

        logger.warning(f"Recovered {len(ledger)} days from {self.backup_file}")
        return ledger

    # ========================================================================
    # WRITE
    # ========================================================================

    def _backup(self):
        """
        Best effort: a failed backup never blocks the write.

        Only a file that loads is copied, so the backup stays the last
        known-good version while the data file is corrupt.
        """
        if not self.backup_on_write or not self.data_file.exists():
            return
        try:
            self.load()
        except PersistenceCorrupt as e:
            logger.warning(f"Not backing up unreadable data file: {e}")
            return
        try:
            shutil.copyfile(self.data_file, self.backup_file)
        except OSError as e:
            logger.warning(f"Could not back up {self.data_file}: {e}")

    def _restore_backup(self):
        if not self.backup_file.exists():
            return
        try:
            shutil.copyfile(self.backup_file, self.data_file)
            logger.info("Restored data from backup")
        except OSError as e:
            logger.error(f"Failed to restore from backup: {e}")

    def _write_document(self, document: dict):
        """
        Atomic whole-file write.

        Raises:
            PersistenceWriteFailed
        """
        temp_file = self.data_file.with_suffix('.tmp')
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            temp_file.replace(self.data_file)
        except (OSError, TypeError, ValueError) as e:
            try:
                temp_file.unlink()
            except OSError:
                pass
            raise PersistenceWriteFailed(self.data_file, e) from e

    def write(self, ledger: Mapping) -> bool:
        """
        Persist the full ledger. Returns False (and logs) on failure.

        Values may be DailyEntry objects or their plain-dict form.
        """
        if not isinstance(ledger, Mapping):
            logger.error(f"Refusing to write invalid data structure: {type(ledger).__name__}")
            return False

        document = {}
        for key, entry in ledger.items():
            if isinstance(entry, DailyEntry):
                document[str(key)] = entry.to_dict()
                continue
            try:
                document[str(key)] = DailyEntry.from_dict(dict(entry)).to_dict()
            except (TypeError, ValueError, OverflowError, AttributeError) as e:
                logger.error(f"Refusing to write invalid entry {key!r}: {e}")
                return False

        with self._lock:
            self._backup()
            try:
                self._write_document(document)
            except PersistenceWriteFailed as e:
                logger.error(str(e))
                self._restore_backup()
                return False

            self._verify_written(len(document))

        logger.debug(f"Data saved successfully with {len(document)} entries")
        return True

    def _verify_written(self, expected_days: int):
        try:
            saved = self.load()
        except PersistenceCorrupt as e:
            logger.warning(f"Post-write check failed: {e}")
            return
        if len(saved) < expected_days:
            logger.warning(
                f"Data loss detected! Written entries: {expected_days}, "
                f"saved entries: {len(saved)}"
            )

    def reset(self) -> bool:
        """Replace all persisted data with an empty ledger."""
        with self._lock:
            try:
                self._write_document({})
            except PersistenceWriteFailed as e:
                logger.error(f"Failed to reset data: {e}")
                return False

        logger.info("Data reset successfully")
        return True

    # ========================================================================
    # AGGREGATION
    # ========================================================================

    @staticmethod
    def _apply_to(ledger: Ledger, date_key: str, network_name: Optional[str],
                  inc_rx: int, inc_tx: int,
                  total_rx: Optional[int] = None, total_tx: Optional[int] = None,
                  interface: str = "N/A", now_ms: int = 0) -> DailyEntry:
        """In-memory mutation shared by apply() and record()."""
        inc_rx = max(0, int(inc_rx))
        inc_tx = max(0, int(inc_tx))

        entry = ledger.get(date_key)
        if entry is None:
            entry = DailyEntry.starting_at(total_rx or 0, total_tx or 0)
            ledger[date_key] = entry

        entry.add(inc_rx, inc_tx)
        if total_rx is not None:
            entry.last_rx = total_rx
        if total_tx is not None:
            entry.last_tx = total_tx

        if network_name:
            usage = entry.networks.get(network_name)
            if usage is None:
                usage = NetworkUsage(interface=interface, first_seen=now_ms, last_seen=now_ms)
                entry.networks[network_name] = usage
            usage.add(inc_rx, inc_tx, now_ms, interface)

        return entry

    def apply(self, date_key: str, network_name: Optional[str],
              inc_rx: int, inc_tx: int,
              total_rx: Optional[int] = None, total_tx: Optional[int] = None,
              interface: str = "N/A", now_ms: int = 0) -> bool:
        """
        Add an increment to a day (and its network bucket) and persist.

        total_rx / total_tx are the current cumulative counters; when given
        they become the day's new watermarks (and its baseline if the day
        is new).
        """
        with self._lock:
            ledger = self._read_for_update()
            self._apply_to(ledger, date_key, network_name, inc_rx, inc_tx,
                           total_rx, total_tx, interface, now_ms)
            return self.write(ledger)

    def record(self, sample: Sample, network_name: Optional[str],
               interface: str = "N/A") -> dict:
        """
        One sampling tick: fold a sample into its local day and persist.

        The increment is measured against the day's watermarks, so the
        first tick of a new day (or of a day with no baseline) adds zero.

        Returns:
            Plain-dict snapshot of the full ledger after the tick
        """
        date_key = local_date_key(sample.timestamp_ms)

        with self._lock:
            ledger = self._read_for_update()

            entry = ledger.get(date_key)
            inc_rx, inc_tx = baseline_delta(entry, sample) if entry else (0, 0)

            entry = self._apply_to(
                ledger, date_key, network_name, inc_rx, inc_tx,
                total_rx=sample.total_rx, total_tx=sample.total_tx,
                interface=interface, now_ms=sample.timestamp_ms,
            )
            self.write(ledger)

        logger.debug(
            f"Tracked +{inc_rx}/{inc_tx} B for {date_key} on "
            f"{network_name or '(unattributed)'} via {interface}; "
            f"day total {entry.rx_tx_bytes}"
        )
        return ledger_to_dict(ledger)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def snapshot(self) -> dict:
        """Plain-dict copy of the persisted ledger."""
        return ledger_to_dict(self.read())

    def today_total(self) -> int:
        entry = self.read().get(local_date_key())
        return entry.rx_tx_bytes if entry else 0

    def month_total(self, month_key: Optional[str] = None) -> int:
        """Sum of rx_tx_bytes over days whose key starts with YYYY-MM."""
        if month_key is None:
            month_key = local_date_key()[:7]
        return sum(
            entry.rx_tx_bytes
            for key, entry in self.read().items()
            if key.startswith(month_key)
        )

    def network_totals(self) -> Dict[str, dict]:
        """Per-network totals across all days."""
        totals: Dict[str, dict] = {}
        for entry in self.read().values():
            for name, usage in entry.networks.items():
                agg = totals.setdefault(name, {
                    "rx_tx_bytes": 0, "rx_bytes": 0, "tx_bytes": 0, "days": 0,
                })
                agg["rx_tx_bytes"] += usage.rx_tx_bytes
                agg["rx_bytes"] += usage.rx_bytes
                agg["tx_bytes"] += usage.tx_bytes
                agg["days"] += 1
        return totals

    def store_paths(self) -> dict:
        return {
            "dataFile": str(self.data_file),
            "dataDir": str(self.data_file.parent),
        }
