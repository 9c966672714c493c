"""CLI commands for inspecting and seeding configuration storage."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from ..api.schemas import SiteConfig
from ..config.settings import Settings
from ..db.config import DatabaseConfig
from ..db.engine import Database
from ..services.site_config import SiteConfigService

logger = logging.getLogger(__name__)

NO_BACKEND_HINT = "Set SQL_DSN, PG_CONNECTION_STRING or KV_URL"


def _load_config() -> DatabaseConfig:
    Settings.refresh_from_env()
    return DatabaseConfig.from_settings(Settings)


async def init_database_command() -> int:
    """Connect to the configured backend and create the configs table."""
    config = _load_config()
    if config.is_empty:
        print(f"❌ No storage backend configured. {NO_BACKEND_HINT}.", file=sys.stderr)
        return 1

    database = Database()
    try:
        if not await database.initialize(config):
            print("❌ Could not initialize any configured storage backend", file=sys.stderr)
            return 1
        print(f"✅ {database.backend_type} backend ready")
        return 0
    finally:
        await database.close()


async def show_config_command(public: bool = False) -> int:
    """Print the current configuration (defaults when nothing is stored)."""
    database = Database()
    service = SiteConfigService(database, Settings)
    try:
        if _load_config().is_empty:
            print(f"⚠️  No storage backend configured; showing defaults. {NO_BACKEND_HINT}.", file=sys.stderr)
        config = await service.get_public_config() if public else await service.get_config()
    finally:
        await database.close()

    print(json.dumps(config, indent=2, ensure_ascii=False))
    return 0


async def set_config_command(path: str) -> int:
    """Replace the stored configuration with the JSON document at ``path``."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        record = SiteConfig.model_validate(raw).to_record()
    except OSError as exc:
        print(f"❌ Cannot read {path}: {exc}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"❌ {path} is not valid JSON: {exc}", file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"❌ {path} is not a valid configuration:\n{exc}", file=sys.stderr)
        return 1

    database = Database()
    service = SiteConfigService(database, Settings)
    Settings.refresh_from_env()
    try:
        result = await service.update_config(record)
        backend = database.backend_type
    finally:
        await database.close()

    if not result.success:
        print(f"❌ {result.message}", file=sys.stderr)
        return 1
    print(f"✅ {result.message} ({backend} backend)")
    return 0


__all__ = ["init_database_command", "set_config_command", "show_config_command"]
