"""Configuration loading utilities for the Course Player application."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".courseplayer_write_check"
_DEFAULT_API_BASE_URL = "http://127.0.0.1:8000"
_DEFAULT_REQUEST_TIMEOUT = 15.0


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. The flag in the returned tuple tells the
    caller whether a fallback was used. When nothing can be prepared the
    original ``preferred`` path is returned and the bootstrapper reports it.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _normalize_base_url(value: Any) -> str:
    candidate = str(value or "").strip()
    if not candidate:
        return _DEFAULT_API_BASE_URL
    return candidate.rstrip("/")


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and backend coordinates for the application."""

    storage_root: Path
    database_file: Path
    api_base_url: str = _DEFAULT_API_BASE_URL
    request_timeout: float = _DEFAULT_REQUEST_TIMEOUT

    @property
    def settings_file(self) -> Path:
        return (self.storage_root / "settings.json").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".courseplayer" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        api_base_url = _normalize_base_url(
            os.environ.get("COURSEPLAYER_API_URL") or mapping.get("api_base_url")
        )
        try:
            request_timeout = float(mapping.get("request_timeout", _DEFAULT_REQUEST_TIMEOUT))
        except (TypeError, ValueError):
            LOGGER.warning(
                "Ignoring invalid request_timeout %r; using %.1f seconds.",
                mapping.get("request_timeout"),
                _DEFAULT_REQUEST_TIMEOUT,
            )
            request_timeout = _DEFAULT_REQUEST_TIMEOUT
        if request_timeout <= 0:
            request_timeout = _DEFAULT_REQUEST_TIMEOUT

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            api_base_url=api_base_url,
            request_timeout=request_timeout,
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
