"""
Typed application settings backed by the app_settings table.

Each setting has a definition (type, default, bounds or options). Reads
return the cast value or the default; writes are cast and clamped before
they are stored. The provider API key is stored Fernet-encrypted.
"""
import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from autoblog.integrations.base import SettingsProvider
from autoblog.models.app_setting import AppSetting
from autoblog.services.pricing import IMAGE_PRICING, MODEL_PRICING
from autoblog.services.trends import COUNTRIES
from autoblog.utils.encryption import decrypt_value, encrypt_value
from autoblog.utils.timezone import parse_time_of_day

logger = logging.getLogger(__name__)

FREQUENCIES = ("hourly", "twicedaily", "daily", "weekly")
POST_STATUSES = ("publish", "draft", "pending")
SEO_PLUGINS = ("generic", "yoast", "rankmath", "aioseo")

# Changing any of these re-arms the scheduler and starts the cooldown
SCHEDULE_KEYS = ("schedule_enabled", "schedule_frequency", "schedule_time")

SETTING_DEFINITIONS: dict[str, dict] = {
    "api_key": {"type": "string", "default": "", "secret": True},
    "org_id": {"type": "string", "default": ""},
    "model": {"type": "string", "default": "gpt-5-mini", "options": tuple(MODEL_PRICING)},
    "image_enabled": {"type": "bool", "default": False},
    "image_model": {"type": "string", "default": "dall-e-3", "options": tuple(IMAGE_PRICING)},
    "image_size": {
        "type": "string",
        "default": "1792x1024",
        "options": tuple(sorted({size for sizes in IMAGE_PRICING.values() for size in sizes})),
    },
    "image_quality": {"type": "string", "default": "standard", "options": ("standard", "hd")},
    "schedule_enabled": {"type": "bool", "default": False},
    "schedule_frequency": {"type": "string", "default": "daily", "options": FREQUENCIES},
    "schedule_time": {"type": "time", "default": "09:00"},
    "max_posts_per_day": {"type": "int", "default": 1, "min": 1, "max": 10},
    "post_status": {"type": "string", "default": "draft", "options": POST_STATUSES},
    "default_author": {"type": "int", "default": 1, "min": 1},
    "categories": {"type": "list", "default": []},
    "humanize_level": {"type": "int", "default": 3, "min": 1, "max": 5},
    "word_count_min": {"type": "int", "default": 800, "min": 300, "max": 5000},
    "word_count_max": {"type": "int", "default": 1500, "min": 500, "max": 10000},
    "website_context": {"type": "string", "default": ""},
    "seo_enabled": {"type": "bool", "default": True},
    "seo_plugin": {"type": "string", "default": "generic", "options": SEO_PLUGINS},
    "budget_limit": {"type": "float", "default": 0.0, "min": 0.0},
    "budget_alert_email": {"type": "string", "default": ""},
    "api_verified": {"type": "bool", "default": False},
    "trending_enabled": {"type": "bool", "default": False},
    "trending_country": {"type": "string", "default": "US", "options": tuple(COUNTRIES)},
    "trending_categories": {"type": "list", "default": []},
    "style_profile": {"type": "json", "default": {}},
}

_TRUE_STRINGS = ("true", "1", "yes", "on")


class UnknownSettingError(KeyError):
    pass


def _clamp(value, definition: dict):
    if "min" in definition and value < definition["min"]:
        value = definition["min"]
    if "max" in definition and value > definition["max"]:
        value = definition["max"]
    return value


def cast_setting(key: str, value: Any) -> Any:
    """Cast a raw value to the setting's type, clamping to its bounds."""
    definition = SETTING_DEFINITIONS.get(key)
    if definition is None:
        raise UnknownSettingError(key)

    default = definition["default"]
    if value is None:
        if isinstance(default, (list, dict)):
            return type(default)(default)
        return default

    kind = definition["type"]
    if kind == "bool":
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)

    if kind == "int":
        try:
            return _clamp(int(float(value)), definition)
        except (TypeError, ValueError):
            return default

    if kind == "float":
        try:
            return _clamp(float(value), definition)
        except (TypeError, ValueError):
            return default

    if kind == "list":
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return list(value)
        return list(default)

    if kind == "json":
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else {}
            except ValueError:
                return dict(default)
        return dict(value) if isinstance(value, dict) else dict(default)

    if kind == "time":
        try:
            hour, minute = parse_time_of_day(str(value))
        except ValueError:
            return default
        return f"{hour:02d}:{minute:02d}"

    text = str(value).strip()
    options = definition.get("options")
    if options and text not in options:
        return default
    return text


class DatabaseSettingsProvider(SettingsProvider):
    """SettingsProvider over the app_settings table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _load(self, keys: Optional[list[str]] = None) -> dict:
        async with self._session_factory() as db:
            query = select(AppSetting)
            if keys is not None:
                query = query.where(AppSetting.key.in_(keys))
            result = await db.execute(query)
            return {row.key: row.value for row in result.scalars().all()}

    def _read(self, key: str, raw: Any) -> Any:
        if SETTING_DEFINITIONS[key].get("secret") and raw:
            raw = decrypt_value(raw)
        return cast_setting(key, raw)

    async def get(self, key: str) -> Any:
        if key not in SETTING_DEFINITIONS:
            raise UnknownSettingError(key)
        stored = await self._load([key])
        return self._read(key, stored.get(key))

    async def get_all(self) -> dict:
        stored = await self._load()
        return {key: self._read(key, stored.get(key)) for key in SETTING_DEFINITIONS}

    async def set(self, key: str, value: Any) -> Any:
        typed = cast_setting(key, value)
        stored = encrypt_value(typed) if SETTING_DEFINITIONS[key].get("secret") else typed

        async with self._session_factory() as db:
            row = await db.get(AppSetting, key)
            if row is None:
                db.add(AppSetting(key=key, value=stored))
            else:
                row.value = stored
            if key == "api_key":
                # A new key has not been verified yet
                verified = await db.get(AppSetting, "api_verified")
                if verified is None:
                    db.add(AppSetting(key="api_verified", value=False))
                else:
                    verified.value = False
            await db.commit()

        logger.info("Setting updated: %s", key)
        return typed

    async def update(self, values: dict) -> dict:
        """Set several settings. Returns {key: stored_value} for the ones given."""
        unknown = [key for key in values if key not in SETTING_DEFINITIONS]
        if unknown:
            raise UnknownSettingError(", ".join(unknown))
        return {key: await self.set(key, value) for key, value in values.items()}
