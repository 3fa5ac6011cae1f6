import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .database import JOURNAL_MODES
from .errors import InvalidArgument

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_env() -> None:
    """Load .env from the working directory if present.
    Variables already set in the environment take precedence.
    """
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise InvalidArgument(f"{name} must be non-negative, got {raw!r}")
    return value


def _path(environ: Mapping[str, str], name: str) -> Optional[Path]:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from JERBS_* environment variables."""

    db_path: Optional[Path] = None
    busy_timeout: float = 30.0
    journal_mode: str = "wal"
    log_level: str = "WARNING"
    log_dir: Optional[Path] = None
    poll_interval: float = 1.0
    poll_max_interval: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Args:
            environ: Mapping to read instead of os.environ (for tests)

        Raises:
            InvalidArgument: On malformed values
        """
        if environ is None:
            environ = os.environ

        journal_mode = environ.get("JERBS_JOURNAL_MODE", cls.journal_mode).strip().lower()
        if journal_mode not in JOURNAL_MODES:
            raise InvalidArgument(
                f"JERBS_JOURNAL_MODE must be one of {', '.join(JOURNAL_MODES)}, got {journal_mode!r}"
            )

        log_level = environ.get("JERBS_LOG_LEVEL", cls.log_level).strip().upper()
        if log_level not in LOG_LEVELS:
            raise InvalidArgument(
                f"JERBS_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )

        return cls(
            db_path=_path(environ, "JERBS_DB"),
            busy_timeout=_float(environ, "JERBS_BUSY_TIMEOUT", cls.busy_timeout),
            journal_mode=journal_mode,
            log_level=log_level,
            log_dir=_path(environ, "JERBS_LOG_DIR"),
            poll_interval=_float(environ, "JERBS_POLL_INTERVAL", cls.poll_interval),
            poll_max_interval=_float(environ, "JERBS_POLL_MAX_INTERVAL", cls.poll_max_interval),
        )


def get_settings() -> Settings:
    """Load .env and return settings for this process."""
    load_env()
    return Settings.from_env()
