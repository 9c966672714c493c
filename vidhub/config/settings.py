"""Application settings resolved from the environment (and a local ``.env``)."""

from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _value_from_env(key: str, default: Any = None) -> Any:
    env_val = os.getenv(key)
    if env_val is not None:
        return env_val
    return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return default


def _as_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (ValueError, TypeError):
        return default


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


class Settings:
    """Application settings resolved from the environment."""

    # Storage backends, tried in this order
    SQL_DSN: Optional[str] = None
    PG_CONNECTION_STRING: Optional[str] = None
    PG_TABLE_NAME: str = "configs"
    KV_URL: Optional[str] = None
    KV_PREFIX: str = ""

    # Authentication
    ADMIN_PASSWORD: Optional[str] = None
    LOGIN_JWT_SECRET_KEY: Optional[str] = None
    LOGIN_TOKEN_EXPIRE_HOURS: int = 24

    # HTTP server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3001
    API_ROOT_PATH: str = ""
    API_CORS_ORIGINS: List[str] = []
    DEV_MODE: bool = False

    SEARCH_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"

    @classmethod
    def _populate(cls) -> None:
        cls.SQL_DSN = _as_optional_str(_value_from_env("SQL_DSN"))
        cls.PG_CONNECTION_STRING = _as_optional_str(_value_from_env("PG_CONNECTION_STRING"))
        cls.PG_TABLE_NAME = _as_str(_value_from_env("PG_TABLE_NAME", "configs"), "configs").strip() or "configs"
        cls.KV_URL = _as_optional_str(_value_from_env("KV_URL"))
        cls.KV_PREFIX = _as_str(_value_from_env("KV_PREFIX", ""))

        # Secrets are only read from the environment and never logged
        cls.ADMIN_PASSWORD = _as_optional_str(_value_from_env("ADMIN_PASSWORD"))
        cls.LOGIN_JWT_SECRET_KEY = _as_optional_str(_value_from_env("LOGIN_JWT_SECRET_KEY"))
        cls.LOGIN_TOKEN_EXPIRE_HOURS = _as_int(_value_from_env("LOGIN_TOKEN_EXPIRE_HOURS", 24), 24)

        cls.API_HOST = _as_str(_value_from_env("API_HOST", "0.0.0.0"), "0.0.0.0")
        cls.API_PORT = _as_int(_value_from_env("API_PORT", 3001), 3001)
        cls.API_ROOT_PATH = _as_str(_value_from_env("API_ROOT_PATH", ""))
        cls.API_CORS_ORIGINS = _as_list(_value_from_env("API_CORS_ORIGINS"))
        cls.DEV_MODE = _as_bool(_value_from_env("DEV_MODE", False), False)

        cls.SEARCH_TIMEOUT_SECONDS = _as_float(_value_from_env("SEARCH_TIMEOUT_SECONDS", 30.0), 30.0)

        cls.LOG_LEVEL = _as_str(_value_from_env("LOG_LEVEL", "INFO"), "INFO")

    @classmethod
    def refresh_from_env(cls) -> None:
        cls._populate()

    @classmethod
    def storage_configured(cls) -> bool:
        return bool(cls.SQL_DSN or cls.PG_CONNECTION_STRING or cls.KV_URL)

    @classmethod
    def validate(cls) -> bool:
        errors = []

        if not cls.LOGIN_JWT_SECRET_KEY:
            errors.append("LOGIN_JWT_SECRET_KEY is required to issue session tokens")
        if not cls.ADMIN_PASSWORD:
            errors.append("ADMIN_PASSWORD is not set; admin login is disabled")

        if errors:
            logger.error("Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            return False

        return True

    @classmethod
    def log_config(cls) -> None:
        backend = "none (defaults only)"
        if cls.SQL_DSN:
            backend = "mysql"
        elif cls.PG_CONNECTION_STRING:
            backend = f"postgresql (table {cls.PG_TABLE_NAME})"
        elif cls.KV_URL:
            backend = "kv"

        logger.info("VidHub Configuration:")
        logger.info(f"  Storage backend: {backend}")
        logger.info(f"  Admin login: {'Enabled' if cls.ADMIN_PASSWORD else 'Disabled'}")
        logger.info(f"  Token lifetime: {cls.LOGIN_TOKEN_EXPIRE_HOURS}h")
        logger.info(f"  API: {cls.API_HOST}:{cls.API_PORT}")


# Populate class attributes on import
Settings.refresh_from_env()


def setup_logging(level_override: Optional[str] = None, with_request_id: bool = False) -> None:
    """Configure root logging from ``LOG_LEVEL`` or an override.

    With ``with_request_id`` the current ``X-Request-ID`` is added to every line.
    """

    level_name = (level_override or Settings.LOG_LEVEL or "INFO").upper()

    if level_name in {"NO", "NONE", "OFF"}:
        level = logging.CRITICAL + 10
    else:
        level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    if with_request_id:
        fmt = "%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s"

    logging.basicConfig(level=level, format=fmt, force=True)

    if with_request_id:
        from ..api.middleware.request_id import RequestIDLogFilter

        for handler in logging.getLogger().handlers:
            handler.addFilter(RequestIDLogFilter())

    logging.getLogger("vidhub").setLevel(level)

    # Driver loggers are chatty at DEBUG
    noisy_logger_level = max(level, logging.INFO)
    for name in ("aiohttp", "asyncpg", "mysql.connector", "urllib3"):
        logging.getLogger(name).setLevel(noisy_logger_level)
