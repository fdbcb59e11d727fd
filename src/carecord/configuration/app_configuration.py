from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from carecord.configuration.safety_settings import ClassifierSettings, SafetySettings
from carecord.util.logger import get_logger

logger = get_logger("app_configuration")


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves safety and classifier settings through
    :class:`SafetySettings` and :class:`ClassifierSettings`.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for top-level `key`, or `default` when absent."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def safety(self) -> SafetySettings:
        """Return the safety pipeline settings wrapped in a SafetySettings helper."""
        settings = self._data.get("safety", {})
        if not isinstance(settings, dict):
            settings = {}
        return SafetySettings(settings)

    @property
    def classifier(self) -> ClassifierSettings:
        """Return the external classifier settings."""
        settings = self._data.get("classifier", {})
        if not isinstance(settings, dict):
            settings = {}
        return ClassifierSettings(settings)

    @property
    def database_path(self) -> Path:
        """Return the SQLite database path (default ``./data/app.db``)."""
        value = self._data.get("database_path") or "./data/app.db"
        return Path(str(value)).resolve()

    @property
    def behavior_cleanup_interval(self) -> float:
        """Seconds between behavior cache sweeps. Default is 3600 seconds."""
        sync_config = self._data.get("behavior_cleanup", {})
        if isinstance(sync_config, dict):
            return float(sync_config.get("interval_seconds", 3600.0))
        return 3600.0
