"""
Tests for autoblog/services/settings_store.py - typed settings with
defaults, bounds, option lists and encrypted secrets.
"""
import pytest
from unittest.mock import patch
from cryptography.fernet import Fernet
from sqlalchemy import select

from autoblog.models.app_setting import AppSetting
from autoblog.services.settings_store import (
    DatabaseSettingsProvider,
    UnknownSettingError,
    cast_setting,
)


class TestCastSetting:
    def test_none_returns_default(self):
        assert cast_setting("word_count_min", None) == 800
        assert cast_setting("categories", None) == []

    def test_int_clamped_to_bounds(self):
        assert cast_setting("max_posts_per_day", 50) == 10
        assert cast_setting("humanize_level", 0) == 1
        assert cast_setting("word_count_min", "1200") == 1200

    def test_bad_int_falls_back_to_default(self):
        assert cast_setting("humanize_level", "lots") == 3

    def test_bool_from_strings(self):
        assert cast_setting("schedule_enabled", "yes") is True
        assert cast_setting("schedule_enabled", "0") is False

    def test_option_lists(self):
        assert cast_setting("schedule_frequency", "weekly") == "weekly"
        assert cast_setting("schedule_frequency", "monthly") == "daily"
        assert cast_setting("seo_plugin", "yoast") == "yoast"

    def test_time_normalized(self):
        assert cast_setting("schedule_time", "7:5") == "07:05"
        assert cast_setting("schedule_time", "25:00") == "09:00"

    def test_list_from_csv(self):
        assert cast_setting("categories", "3, 5,,7") == ["3", "5", "7"]

    def test_negative_budget_clamped(self):
        assert cast_setting("budget_limit", -5) == 0.0

    def test_json_profile_from_text(self):
        assert cast_setting("style_profile", '{"writing_style": {"tone": "casual"}}') == {
            "writing_style": {"tone": "casual"},
        }
        assert cast_setting("style_profile", "not json") == {}
        assert cast_setting("style_profile", ["tone"]) == {}

    def test_mutable_defaults_are_copies(self):
        cast_setting("trending_categories", None).append("Sports")
        assert cast_setting("trending_categories", None) == []

    def test_trending_country_options(self):
        assert cast_setting("trending_country", "GB") == "GB"
        assert cast_setting("trending_country", "XX") == "US"

    def test_unknown_key(self):
        with pytest.raises(UnknownSettingError):
            cast_setting("colour_scheme", "dark")


class TestDatabaseSettingsProvider:
    async def test_defaults_when_unset(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        assert await provider.get("post_status") == "draft"
        assert await provider.get("seo_enabled") is True

    async def test_set_and_get_roundtrip(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        await provider.set("max_posts_per_day", 4)
        await provider.set("max_posts_per_day", 6)
        assert await provider.get("max_posts_per_day") == 6

    async def test_update_many(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        stored = await provider.update({"schedule_enabled": "true", "schedule_time": "18:30"})
        assert stored == {"schedule_enabled": True, "schedule_time": "18:30"}
        values = await provider.get_all()
        assert values["schedule_time"] == "18:30"

    async def test_update_rejects_unknown_keys(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        with pytest.raises(UnknownSettingError):
            await provider.update({"model": "gpt-4o", "nonsense": 1})

    async def test_api_key_encrypted_and_resets_verification(self, session_factory):
        fernet = Fernet(Fernet.generate_key())
        provider = DatabaseSettingsProvider(session_factory)
        await provider.set("api_verified", True)

        with patch("autoblog.utils.encryption._get_fernet", return_value=fernet):
            await provider.set("api_key", "sk-live-abcdef123456")
            assert await provider.get("api_key") == "sk-live-abcdef123456"

        async with session_factory() as db:
            row = (await db.execute(select(AppSetting).where(AppSetting.key == "api_key"))).scalar_one()
        assert row.value != "sk-live-abcdef123456"
        assert fernet.decrypt(row.value.encode()).decode() == "sk-live-abcdef123456"
        assert await provider.get("api_verified") is False
