"""App configuration — environment variable loading with typed defaults.

Loads settings from .env file (via python-dotenv) and os.environ.
Real environment variables take precedence over .env file values.

Choice-valued variables (STORAGE_BACKEND, BADGE_TIE_BREAK) and numeric
tuning knobs are validated at load time; a bad value fails fast with a
ValueError naming the variable instead of surfacing mid-transaction.

Usage:
    from focusflow.config import get_settings
    settings = get_settings()
    print(settings.test_every_levels)  # 25
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from focusflow.constants import DEFAULT_TEST_EVERY, MAX_HEARTS, REGEN_INTERVAL, XP_PER_LEVEL

# .env is read from the project root only, never from parent directories.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DOTENV_PATH = PROJECT_ROOT / ".env"

STORAGE_BACKENDS = ("file", "memory")
TIE_BREAK_POLICIES = ("type", "registry")


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the FocusFlow progression service.

    All fields have sensible defaults for local development.
    """

    # App
    app_env: str
    app_port: int
    log_level: str
    cors_origins: list[str]

    # Storage
    storage_backend: str
    data_dir: Path

    # Progression rules
    timezone: str
    test_every_levels: int
    badge_tie_break: str
    max_hearts: int
    heart_regen_minutes: int
    xp_per_level: int


def _resolve_choice(env_var: str, value: str, options: tuple[str, ...]) -> str:
    """Validates a choice-valued setting.

    Args:
        env_var: Name of the environment variable (for error messages).
        value: The raw value from the environment.
        options: Accepted values.

    Returns:
        The value, lowercased.

    Raises:
        ValueError: If the value is not one of the options.
    """
    normalized = value.strip().lower()
    if normalized in options:
        return normalized
    valid = ", ".join(options)
    raise ValueError(
        f"Invalid value for {env_var}: {value!r}. "
        f"Valid options: {valid}"
    )


def _positive_int(env_var: str, value: str) -> int:
    """Parses a strictly positive integer setting.

    Raises:
        ValueError: If the value is not an integer >= 1.
    """
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"Invalid value for {env_var}: {value!r}. Expected an integer.") from None
    if number < 1:
        raise ValueError(f"Invalid value for {env_var}: {value!r}. Must be >= 1.")
    return number


def _resolve_timezone(value: str) -> str:
    """Checks that the timezone name is known to the tz database."""
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Invalid value for TIMEZONE: {value!r}. Expected an IANA zone name.") from None
    return value


def _split_csv(value: str) -> list[str]:
    """Splits a comma-separated string into a list of stripped, non-empty values."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_settings() -> Settings:
    """Loads configuration from .env file and environment variables.

    Returns:
        A fully resolved Settings instance.
    """
    load_dotenv(_DOTENV_PATH)

    data_dir = Path(os.environ.get("DATA_DIR", "data"))
    if not data_dir.is_absolute():
        data_dir = PROJECT_ROOT / data_dir

    default_regen_minutes = int(REGEN_INTERVAL.total_seconds() // 60)

    return Settings(
        # App
        app_env=os.environ.get("APP_ENV", "development"),
        app_port=int(os.environ.get("APP_PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        cors_origins=_split_csv(
            os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        ),
        # Storage
        storage_backend=_resolve_choice(
            "STORAGE_BACKEND",
            os.environ.get("STORAGE_BACKEND", "file"),
            STORAGE_BACKENDS,
        ),
        data_dir=data_dir,
        # Progression rules
        timezone=_resolve_timezone(os.environ.get("TIMEZONE", "UTC")),
        test_every_levels=_positive_int(
            "TEST_EVERY_LEVELS",
            os.environ.get("TEST_EVERY_LEVELS", str(DEFAULT_TEST_EVERY)),
        ),
        badge_tie_break=_resolve_choice(
            "BADGE_TIE_BREAK",
            os.environ.get("BADGE_TIE_BREAK", "type"),
            TIE_BREAK_POLICIES,
        ),
        max_hearts=_positive_int("MAX_HEARTS", os.environ.get("MAX_HEARTS", str(MAX_HEARTS))),
        heart_regen_minutes=_positive_int(
            "HEART_REGEN_MINUTES",
            os.environ.get("HEART_REGEN_MINUTES", str(default_regen_minutes)),
        ),
        xp_per_level=_positive_int(
            "XP_PER_LEVEL", os.environ.get("XP_PER_LEVEL", str(XP_PER_LEVEL))
        ),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Returns the singleton Settings instance. Loads .env on first call."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings
