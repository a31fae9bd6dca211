from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value < 0:
        raise ValueError(f"{name} must be >= 0 (got {value})")
    return value


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    admin_api_keys: tuple[str, ...] = ()
    course_directory_file: str | None = None
    # Progress heuristics
    expected_interactions: int = 80
    idle_gap_seconds: int = 300
    materialize_min_interval_seconds: int = 0
    course_cache_ttl_seconds: int = 60
    # Store resilience
    store_max_attempts: int = 3
    store_retry_base_delay_seconds: float = 0.5
    store_timeout_seconds: float = 5.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    admin_api_keys = tuple(
        key.strip() for key in _getenv("ADMIN_API_KEYS", "").split(",") if key.strip()
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        admin_api_keys=admin_api_keys,
        course_directory_file=_getenv("COURSE_DIRECTORY_FILE", "") or None,
        expected_interactions=_getenv_int("EXPECTED_INTERACTIONS", 80, minimum=1),
        idle_gap_seconds=_getenv_int("IDLE_GAP_SECONDS", 300),
        materialize_min_interval_seconds=_getenv_int(
            "MATERIALIZE_MIN_INTERVAL_SECONDS", 0
        ),
        course_cache_ttl_seconds=_getenv_int("COURSE_CACHE_TTL_SECONDS", 60),
        store_max_attempts=_getenv_int("STORE_MAX_ATTEMPTS", 3, minimum=1),
        store_retry_base_delay_seconds=_getenv_float(
            "STORE_RETRY_BASE_DELAY_SECONDS", 0.5
        ),
        store_timeout_seconds=_getenv_float("STORE_TIMEOUT_SECONDS", 5.0),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
