"""Persistence helpers for lecture viewer settings."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from ..config import AppConfig


LOGGER = logging.getLogger(__name__)


@dataclass
class ViewerSettings:
    """Timing knobs for injecting and executing lecture content."""

    poll_initial_delay_ms: float = 150.0
    poll_interval_ms: float = 100.0
    poll_max_attempts: int = 50
    settle_delay_ms: float = 300.0
    external_load_timeout_ms: float = 10000.0
    frame_interval_ms: float = 1000.0 / 60.0

    def normalized(self) -> "ViewerSettings":
        """Return a copy with negative or non-numeric values replaced by defaults."""

        defaults = ViewerSettings()
        values = {}
        for field in fields(self):
            value = getattr(self, field.name)
            default = getattr(defaults, field.name)
            try:
                number = type(default)(value)
            except (TypeError, ValueError):
                number = default
            if number < 0:
                number = default
            values[field.name] = number
        if values["poll_max_attempts"] < 1:
            values["poll_max_attempts"] = 1
        return ViewerSettings(**values)


class SettingsStore:
    """Load and store :class:`ViewerSettings` next to the other persisted data."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._path = config.settings_file

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ViewerSettings:
        if not self._path.exists():
            return ViewerSettings()

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return ViewerSettings()

        settings = ViewerSettings()
        for field, value in payload.items():
            if hasattr(settings, field):
                setattr(settings, field, value)
        return settings.normalized()

    def save(self, settings: ViewerSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(settings.normalized())
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


__all__ = ["SettingsStore", "ViewerSettings"]
