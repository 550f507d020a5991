"""
DataTracker Configuration Module
================================
Centralized configuration with validation and YAML loading.

Settings cover the sampling cadence, where the daily ledger lives,
and the WebSocket push channel used by presentation clients.
"""

import os
import sys
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

import yaml


# ============================================================================
# CONFIG PATHS
# ============================================================================

APP_NAME = "DataTracker"

CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"
USER_CONFIG_FILE = Path.home() / ".datatracker" / "config.yaml"


def default_data_dir() -> Path:
    """Per-user application data directory."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / APP_NAME
        return Path.home() / "AppData" / "Roaming" / APP_NAME

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME

    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / APP_NAME.lower()
    return Path.home() / ".local" / "share" / APP_NAME.lower()


# ============================================================================
# STORAGE
# ============================================================================

DATA_SUBDIR = "data"
DATA_FILENAME = "daily.json"
BACKUP_SUFFIX = ".backup"


# ============================================================================
# SAMPLING
# ============================================================================

DEFAULT_SAMPLE_INTERVAL = 1.0
DEFAULT_IDENTITY_INTERVAL = 30.0

MIN_SAMPLE_INTERVAL = 0.2
MAX_SAMPLE_INTERVAL = 60.0
MIN_IDENTITY_INTERVAL = 5.0
MAX_IDENTITY_INTERVAL = 3600.0

# Names the OS reports when there is no usable network name
UNNAMED_NETWORKS = frozenset({"", "Unknown", "N/A"})


# ============================================================================
# WEBSOCKET
# ============================================================================

DEFAULT_WS_HOST = "127.0.0.1"
DEFAULT_WS_PORT = 8765
MIN_WS_PORT = 1024
MAX_WS_PORT = 65535


# ============================================================================
# CONFIG DATACLASS
# ============================================================================

@dataclass
class TrackerConfig:
    """Main configuration container with validation."""

    # Storage
    data_dir: Path = field(default_factory=default_data_dir)
    backup_on_write: bool = True

    # Sampling
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL
    identity_interval: float = DEFAULT_IDENTITY_INTERVAL
    exclude_loopback: bool = False

    # Push channel
    websocket_enabled: bool = True
    websocket_host: str = DEFAULT_WS_HOST
    websocket_port: int = DEFAULT_WS_PORT

    @property
    def data_file(self) -> Path:
        return Path(self.data_dir) / DATA_SUBDIR / DATA_FILENAME

    def validate(self) -> list[str]:
        """Validates configuration. Returns list of errors."""
        errors = []

        if not (MIN_SAMPLE_INTERVAL <= self.sample_interval <= MAX_SAMPLE_INTERVAL):
            errors.append(
                f"sample_interval must be between {MIN_SAMPLE_INTERVAL} and {MAX_SAMPLE_INTERVAL}, "
                f"got {self.sample_interval}"
            )

        if not (MIN_IDENTITY_INTERVAL <= self.identity_interval <= MAX_IDENTITY_INTERVAL):
            errors.append(
                f"identity_interval must be between {MIN_IDENTITY_INTERVAL} and {MAX_IDENTITY_INTERVAL}, "
                f"got {self.identity_interval}"
            )

        if self.identity_interval < self.sample_interval:
            errors.append("identity_interval cannot be shorter than sample_interval")

        if not (MIN_WS_PORT <= self.websocket_port <= MAX_WS_PORT):
            errors.append(
                f"websocket_port must be between {MIN_WS_PORT} and {MAX_WS_PORT}, "
                f"got {self.websocket_port}"
            )

        if not self.websocket_host:
            errors.append("websocket_host must not be empty")

        return errors

    @classmethod
    def from_yaml(cls, path: Path) -> "TrackerConfig":
        """Load config from YAML file."""
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: Path) -> "TrackerConfig":
        """Load config from JSON file."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "TrackerConfig":
        """Create config from dictionary."""
        config = cls()

        if data.get('data_dir'):
            config.data_dir = Path(data['data_dir']).expanduser()

        sampling = data.get('sampling', {})
        if 'interval' in sampling:
            config.sample_interval = float(sampling['interval'])
        if 'identity_interval' in sampling:
            config.identity_interval = float(sampling['identity_interval'])
        if 'exclude_loopback' in sampling:
            config.exclude_loopback = bool(sampling['exclude_loopback'])

        websocket = data.get('websocket', {})
        if 'enabled' in websocket:
            config.websocket_enabled = bool(websocket['enabled'])
        if 'host' in websocket:
            config.websocket_host = str(websocket['host'])
        if 'port' in websocket:
            config.websocket_port = int(websocket['port'])

        storage = data.get('storage', {})
        if 'backup_on_write' in storage:
            config.backup_on_write = bool(storage['backup_on_write'])

        return config


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def load_config(config_path: Optional[Path] = None) -> TrackerConfig:
    """
    Load configuration with fallback chain:
    1. Explicit path
    2. User config (~/.datatracker/config.yaml)
    3. Default config
    """
    paths_to_try = []

    if config_path:
        paths_to_try.append(config_path)

    paths_to_try.append(USER_CONFIG_FILE)
    paths_to_try.append(DEFAULT_CONFIG_FILE)

    for path in paths_to_try:
        if path.exists():
            try:
                if path.suffix in ('.yaml', '.yml'):
                    return TrackerConfig.from_yaml(path)
                elif path.suffix == '.json':
                    return TrackerConfig.from_json(path)
            except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError):
                continue

    # Return default config
    return TrackerConfig()
