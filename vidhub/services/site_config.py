"""Read and write the site configuration record."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..db.base import CONFIG_KEY
from ..db.config import DatabaseConfig
from ..db.engine import Database, DatabaseState

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "resourceSites": [],
    "parseApi": "",
    "backgroundImage": "",
    "enableLogin": False,
    "loginPassword": "",
    "announcement": "",
    "customTitle": "",
}

PRIVATE_FIELDS = ("loginPassword",)


def default_config() -> Dict[str, Any]:
    """Return a fresh copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def public_view(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``config`` without fields that must not leave the server."""
    return {key: value for key, value in config.items() if key not in PRIVATE_FIELDS}


@dataclass
class UpdateResult:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


class SiteConfigService:
    """Configuration reads and writes on top of the storage facade.

    Reads never fail: a missing record, a backend error, or the absence of
    any backend all yield the default configuration.
    """

    def __init__(self, database: Database, settings: Any = None):
        self._database = database
        self._settings = settings

    @property
    def database(self) -> Database:
        return self._database

    async def _ensure_database(self) -> bool:
        if self._database.state is DatabaseState.UNINITIALIZED and self._settings is not None:
            # A failed bind is not retried until the facade is closed
            await self._database.initialize(DatabaseConfig.from_settings(self._settings))
        return self._database.is_initialized

    async def get_config(self) -> Dict[str, Any]:
        try:
            if not await self._ensure_database():
                return default_config()
            result = await self._database.get_result(CONFIG_KEY)
        except Exception as exc:
            logger.error("Failed to load configuration: %s", exc)
            return default_config()

        if not result.ok:
            logger.warning("Configuration backend error, serving defaults: %s", result.error)
            return default_config()
        if result.value is None:
            logger.info("No stored configuration found, serving defaults")
            return default_config()
        if not isinstance(result.value, dict):
            logger.warning("Stored configuration is not an object, serving defaults")
            return default_config()
        return result.value

    async def get_public_config(self) -> Dict[str, Any]:
        return public_view(await self.get_config())

    async def get_login_password(self) -> Optional[str]:
        """Stored user password, or ``None`` when login is disabled or unset."""
        config = await self.get_config()
        if not config.get("enableLogin"):
            return None
        password = config.get("loginPassword")
        return password if isinstance(password, str) and password else None

    async def update_config(self, config: Dict[str, Any]) -> UpdateResult:
        if not isinstance(config, dict):
            return UpdateResult(False, "Configuration must be a JSON object")

        try:
            if not await self._ensure_database():
                return UpdateResult(False, "No storage backend is available")
            saved = await self._database.set(CONFIG_KEY, config)
        except Exception as exc:
            logger.error("Failed to update configuration: %s", exc)
            return UpdateResult(False, str(exc) or "Failed to update configuration")

        if saved:
            logger.info("Configuration updated on %s backend", self._database.backend_type)
            return UpdateResult(True, "Configuration updated")
        return UpdateResult(False, "Could not save configuration to the database")


__all__ = [
    "DEFAULT_CONFIG",
    "SiteConfigService",
    "UpdateResult",
    "default_config",
    "public_view",
]
