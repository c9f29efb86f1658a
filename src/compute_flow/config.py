"""
Settings - User configuration for sessions, execution and providers.

Settings are stored as JSON at ~/.config/compute_flow/settings.json. A missing
file yields the defaults; an unreadable file is logged and also yields the
defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from compute_flow.providers.base import ProviderConfig


logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "compute_flow" / "settings.json"


@dataclass
class StudioSettings:
    """Application settings."""
    # History
    history_limit: int = 50
    position_debounce_seconds: float = 0.3

    # Execution
    max_concurrent_nodes: int = 4

    # Realtime sync
    resubscribe_delay: float = 2.0
    realtime_url: str = ""
    realtime_api_key: str = ""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "history_limit": self.history_limit,
            "position_debounce_seconds": self.position_debounce_seconds,
            "max_concurrent_nodes": self.max_concurrent_nodes,
            "resubscribe_delay": self.resubscribe_delay,
            "realtime_url": self.realtime_url,
            "realtime_api_key": self.realtime_api_key,
            "providers": {pid: cfg.to_dict() for pid, cfg in self.providers.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudioSettings:
        return cls(
            history_limit=int(data.get("history_limit", 50)),
            position_debounce_seconds=float(data.get("position_debounce_seconds", 0.3)),
            max_concurrent_nodes=int(data.get("max_concurrent_nodes", 4)),
            resubscribe_delay=float(data.get("resubscribe_delay", 2.0)),
            realtime_url=data.get("realtime_url", ""),
            realtime_api_key=data.get("realtime_api_key", ""),
            providers={
                pid: ProviderConfig.from_dict(cfg)
                for pid, cfg in (data.get("providers") or {}).items()
            },
        )


def load_settings(path: Path | None = None) -> StudioSettings:
    """Load settings from file, falling back to defaults."""
    if path is None:
        path = DEFAULT_SETTINGS_PATH

    if not path.exists():
        return StudioSettings()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return StudioSettings.from_dict(data)
    except (OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Failed to load settings from %s: %s", path, e)
        return StudioSettings()


def save_settings(settings: StudioSettings, path: Path | None = None) -> Path:
    """Save settings to file."""
    if path is None:
        path = DEFAULT_SETTINGS_PATH

    # Ensure directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    return path
