"""Patcher settings: persistence via JSON."""

import json
import logging
import os
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.join(
    os.environ.get('LOCALAPPDATA') or os.path.expanduser('~'), 'SelfPatch'
)


@dataclass
class PatcherSettings:
    """Persistent patcher settings."""
    # Paths
    root_path: str = ""                 # Live install root; required for repair
    downloads_path: str = ""            # Cache of compressed payloads
    decompressed_path: str = ""         # Staging root for self-patching
    data_dir: str = ""

    # Source
    manifest_url: str = ""              # http(s) URL or local path

    # Behaviour
    verify_files: bool = True           # Check remote existence/size first
    self_patching: bool = False
    check_free_space: bool = True

    # Network
    timeout: int = 30                   # Seconds per request
    retries: int = 3                    # Attempts per download

    def __post_init__(self):
        if not self.data_dir:
            self.data_dir = DEFAULT_DATA_DIR
        if not self.downloads_path:
            self.downloads_path = os.path.join(self.data_dir, 'downloads')
        if not self.decompressed_path:
            self.decompressed_path = os.path.join(self.data_dir, 'staging')

    @staticmethod
    def load(path: str | None = None) -> 'PatcherSettings':
        """Load settings from JSON. Returns defaults if file doesn't exist."""
        if path is None:
            path = os.path.join(DEFAULT_DATA_DIR, 'settings.json')

        if not os.path.isfile(path):
            logger.info("No settings file, using defaults")
            return PatcherSettings()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            settings = PatcherSettings(**{k: v for k, v in data.items()
                                          if k in PatcherSettings.__dataclass_fields__})
            logger.info("Loaded settings from %s", path)
            return settings
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Failed to load settings: %s", e)
            return PatcherSettings()

    def save(self, path: str | None = None):
        """Save settings to JSON."""
        if path is None:
            path = os.path.join(self.data_dir, 'settings.json')

        os.makedirs(os.path.dirname(path), exist_ok=True)
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2)
            logger.info("Saved settings to %s", path)
        except OSError as e:
            logger.warning("Failed to save settings: %s", e)

    def ensure_dirs(self):
        """Create data directories if they don't exist."""
        os.makedirs(self.data_dir, exist_ok=True)
        os.makedirs(os.path.join(self.data_dir, 'logs'), exist_ok=True)
        os.makedirs(self.downloads_path, exist_ok=True)
        if self.self_patching:
            os.makedirs(self.decompressed_path, exist_ok=True)
