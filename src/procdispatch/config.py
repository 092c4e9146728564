"""procdispatch environment configuration.

Environment variables:
    PROCDISPATCH_LOG_DEBUG: debug logging
        - true/1/yes = on (log to a temp file at DEBUG level)
        - false/0/no = off (default, log to stderr)

    PROCDISPATCH_TERM_TIMEOUT: seconds the local engine waits after
        terminating a still-running child when it is closed
        - default 2.0, clamped to 0.1-60

    PROCDISPATCH_KILL_TIMEOUT: seconds the local engine waits after
        killing a child that ignored termination
        - default 1.0, clamped to 0.1-60
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout(value: str | None, default: float) -> float:
    """Parse a timeout in seconds, falling back to the default when invalid."""
    if not value:
        return default
    try:
        timeout = float(value)
    except ValueError:
        return default
    return max(0.1, min(timeout, 60.0))


@dataclass
class Config:
    """procdispatch configuration.

    Attributes:
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug=True)
        term_timeout: Grace period after terminating a child on close
        kill_timeout: Grace period after killing a child on close
    """

    log_debug: bool = False
    log_file: str | None = None
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT


def _generate_log_file_path() -> str:
    log_dir = Path(tempfile.gettempdir()) / "procdispatch"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"procdispatch_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("PROCDISPATCH_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        log_debug=log_debug,
        log_file=log_file,
        term_timeout=_parse_timeout(
            os.environ.get("PROCDISPATCH_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_timeout(
            os.environ.get("PROCDISPATCH_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
    )


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (for tests)."""
    global _config
    _config = load_config()
    return _config
