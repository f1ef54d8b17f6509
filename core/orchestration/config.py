"""Shared orchestration configuration utilities.

Centralises reading of ~/.canvas/configuration.json so that the coordinator,
the CLI and host applications share one implementation.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CANVAS_CONFIG_FILE = Path.home() / ".canvas" / "configuration.json"

DEFAULT_PAUSE_POLL_INTERVAL = 0.5  # seconds
DEFAULT_MAX_CONTEXT_CHARS = 10_000
DEFAULT_STORAGE_PATH = Path.home() / ".canvas" / "orchestrations"


def get_canvas_config() -> dict[str, Any]:
    """Load canvas configuration from ~/.canvas/configuration.json."""
    if not CANVAS_CONFIG_FILE.exists():
        return {}
    try:
        with open(CANVAS_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


def _orchestration_section() -> dict[str, Any]:
    section = get_canvas_config().get("orchestration", {})
    return section if isinstance(section, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_pause_poll_interval() -> float:
    """Return how often (seconds) a paused executor re-checks its control flags."""
    return float(_orchestration_section().get("pause_poll_interval", DEFAULT_PAUSE_POLL_INTERVAL))


def get_max_context_chars() -> int:
    """Return the cap on previous-agent output forwarded to the next agent."""
    return int(_orchestration_section().get("max_context_chars", DEFAULT_MAX_CONTEXT_CHARS))


def get_storage_path() -> Path | None:
    """Return the run store directory, or None when persistence is disabled."""
    section = _orchestration_section()
    if "storage_path" not in section:
        return DEFAULT_STORAGE_PATH
    raw = section["storage_path"]
    return Path(raw).expanduser() if raw else None


def get_log_level() -> str:
    return str(_orchestration_section().get("log_level", "INFO"))


# ---------------------------------------------------------------------------
# CoordinatorConfig – shared by the coordinator and the CLI
# ---------------------------------------------------------------------------


@dataclass
class CoordinatorConfig:
    """Run coordinator configuration loaded from ~/.canvas/configuration.json."""

    pause_poll_interval: float = field(default_factory=get_pause_poll_interval)
    max_context_chars: int = field(default_factory=get_max_context_chars)
    storage_path: Path | None = field(default_factory=get_storage_path)
    log_level: str = field(default_factory=get_log_level)
