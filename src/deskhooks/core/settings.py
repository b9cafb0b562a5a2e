"""Settings Management Module.

Handles loading, saving, and accessing delivery settings.
Persists configuration to data/settings.json unless the
DESKHOOKS_SETTINGS_FILE environment variable points elsewhere.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, ValidationError

from ..webhooks.models import RetryConfig

logger = logging.getLogger(__name__)

# Constants
SETTINGS_FILE = Path("data/settings.json")
SETTINGS_ENV_VAR = "DESKHOOKS_SETTINGS_FILE"


class AppSettings(BaseModel):
    """Global Application Settings."""

    # Delivery
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_failure_threshold: int = Field(10, ge=1)
    request_timeout_seconds: Optional[float] = None  # None keeps the httpx default
    jitter_ms: float = Field(1000, ge=0)
    delivery_history_size: int = Field(500, ge=1)
    notification_history_size: int = Field(100, ge=1)

    # Relay
    relay_source: str = "deskhooks"
    relay_max_attempts: int = Field(3, ge=1)

    # Logging
    log_level: str = "INFO"
    log_file: str = "deskhooks.log"

    class Config:
        validate_assignment = True


def settings_path() -> Path:
    """Resolve the settings file, honoring the environment override."""
    override = os.environ.get(SETTINGS_ENV_VAR)
    return Path(override) if override else SETTINGS_FILE


class SettingsManager:
    """Manages loading and saving of settings."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else settings_path()
        self._settings: Optional[AppSettings] = None
        self._load()

    def _load(self):
        """Load settings from JSON or fall back to defaults."""
        if not self.path.exists():
            self._settings = AppSettings()
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._settings = AppSettings(**data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Error loading settings from {self.path}: {e}. Using defaults.")
            self._settings = AppSettings()

    def get(self) -> AppSettings:
        """Get current settings."""
        if not self._settings:
            self._load()
        return self._settings

    def save(self, new_settings: Optional[AppSettings] = None):
        """Save settings to file."""
        if new_settings:
            self._settings = new_settings

        # Ensure directory exists
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self.path.write_text(
            self.get().model_dump_json(indent=4),
            encoding="utf-8"
        )


# Global Instance
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """Get the global settings manager."""
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def get_settings() -> AppSettings:
    """Shortcut for the current settings."""
    return get_settings_manager().get()
