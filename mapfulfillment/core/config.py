# mapfulfillment/core/config.py
"""
Configuration module for the map fulfillment pipeline.

Settings come from environment variables, optionally seeded once from a
``.env`` file at the project root. Directories, the generation deadline,
Strava access and the map styling defaults are all configured here.
"""

import os
import sys
from typing import Callable, Optional, TypeVar

_ENV_FILE_LOADED = False
_CONFIG_INSTANCE = None

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}

N = TypeVar("N", int, float)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a boolean environment value, keeping ``default`` when unrecognized."""
    normalized = (value or "").strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def _parse_number(
    value: Optional[str],
    default: N,
    cast: Callable[[str], N],
    min_value: Optional[N] = None,
) -> N:
    """Parse a numeric environment value, clamped to ``min_value``."""
    if value is None or not value.strip():
        return default
    try:
        parsed = cast(value.strip())
    except ValueError:
        return default
    if min_value is not None and parsed < min_value:
        return min_value
    return parsed


def _parse_int(value: Optional[str], default: int, min_value: Optional[int] = None) -> int:
    return _parse_number(value, default, int, min_value)


def _parse_float(
    value: Optional[str], default: float, min_value: Optional[float] = None
) -> float:
    return _parse_number(value, default, float, min_value)


def _load_env_file() -> None:
    """Seed the environment from ``<project root>/.env`` (existing variables win)."""
    global _ENV_FILE_LOADED
    if _ENV_FILE_LOADED:
        return
    _ENV_FILE_LOADED = True

    project_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        from dotenv import load_dotenv

        load_dotenv(env_path)


def get_config() -> "Config":
    """
    Get the shared configuration instance, creating it on first use.

    Returns:
        Config: Configuration instance
    """
    global _CONFIG_INSTANCE
    if _CONFIG_INSTANCE is None:
        _load_env_file()
        _CONFIG_INSTANCE = Config()
    return _CONFIG_INSTANCE


def reload_config_from_env() -> "Config":
    """
    Re-read the environment into the shared instance.

    The instance is updated in place so modules holding ``config`` see the
    new values.
    """
    instance = get_config()
    instance.__dict__.update(Config().__dict__)
    return instance


class Config:
    """Pipeline settings read from environment variables."""

    def __init__(self):
        self.DEBUG: bool = _parse_bool(os.getenv("DEBUG"))

        # Logging
        self.LOG_DIRECTORY: str = os.getenv("LOG_DIRECTORY", "/tmp/mapfulfillment/logs")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG" if self.DEBUG else "INFO").upper()
        self.LOG_JSON_FORMAT: bool = _parse_bool(os.getenv("LOG_JSON_FORMAT"))

        # Hard ceiling for resolve + render of one order line item
        self.GENERATION_TIMEOUT_SECONDS: float = _parse_float(
            os.getenv("GENERATION_TIMEOUT_SECONDS"), 300.0, min_value=1.0
        )

        # Persisted map configurations (active/processed/failed folders)
        self.CONFIG_STORE_DIR: str = os.getenv(
            "CONFIG_STORE_DIR", "/tmp/mapfulfillment/map-configurations"
        )
        self.CONFIG_LOCK_TIMEOUT_SECONDS: int = _parse_int(
            os.getenv("CONFIG_LOCK_TIMEOUT_SECONDS"), 10, min_value=1
        )

        # Audit records of generated maps
        self.GENERATION_RECORDS_DIR: str = os.getenv(
            "GENERATION_RECORDS_DIR", "/tmp/mapfulfillment/order-records"
        )

        # Strava API
        self.STRAVA_API_URL: str = os.getenv(
            "STRAVA_API_URL", "https://www.strava.com/api/v3"
        ).rstrip("/")
        self.STRAVA_ACCESS_TOKEN: str = os.getenv("STRAVA_ACCESS_TOKEN", "")
        self.STRAVA_REQUEST_TIMEOUT_SECONDS: float = _parse_float(
            os.getenv("STRAVA_REQUEST_TIMEOUT_SECONDS"), 30.0, min_value=1.0
        )

        # Map rendering defaults
        self.DEFAULT_MAP_STYLE: str = os.getenv("DEFAULT_MAP_STYLE", "outdoors-v12")
        self.DEFAULT_ROUTE_COLOR: str = os.getenv("DEFAULT_ROUTE_COLOR", "#fc5200")
        self.DEFAULT_ROUTE_WIDTH: int = _parse_int(
            os.getenv("DEFAULT_ROUTE_WIDTH"), 4, min_value=1
        )

    def validate_configuration(self) -> None:
        """
        Validate critical configuration settings.

        Raises:
            ValueError: If a setting is missing or invalid
        """
        self._validate_directories()
        self._validate_strava()
        self._validate_defaults()

    def _validate_directories(self) -> None:
        for name in ("LOG_DIRECTORY", "CONFIG_STORE_DIR", "GENERATION_RECORDS_DIR"):
            if not getattr(self, name):
                raise ValueError(f"{name} must be set")

    def _validate_strava(self) -> None:
        if not self.STRAVA_API_URL.startswith(("http://", "https://")):
            raise ValueError(f"STRAVA_API_URL must be an http(s) URL: {self.STRAVA_API_URL}")

    def _validate_defaults(self) -> None:
        if not self.DEFAULT_MAP_STYLE:
            raise ValueError("DEFAULT_MAP_STYLE must not be empty")
        if not self.DEFAULT_ROUTE_COLOR.startswith("#"):
            raise ValueError(f"DEFAULT_ROUTE_COLOR must be a hex color: {self.DEFAULT_ROUTE_COLOR}")


config = get_config()


def _is_pytest_run() -> bool:
    return "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST") is not None


# Fail fast on bad settings, except while tests import the package
if not _is_pytest_run():
    config.validate_configuration()
