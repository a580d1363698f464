"""Tests for SettingsService."""

from bookstore.application.settings_service import DEFAULT_SITE_SETTINGS


class TestSettingsService:
    """Tests for the runtime configuration store."""

    async def test_defaults(self, site_settings):
        assert await site_settings.get_all() == DEFAULT_SITE_SETTINGS
        assert await site_settings.get("site.title") == "Dream Books Library"
        assert await site_settings.get("unknown.key") is None

    async def test_set_overrides_default(self, site_settings):
        values = await site_settings.set("theme.default", "dark")

        assert values["theme.default"] == "dark"
        assert await site_settings.get("theme.default") == "dark"

    async def test_upsert_adds_new_keys(self, site_settings):
        values = await site_settings.upsert({"banner.text": "Sale!", "maintenance.mode": "true"})

        assert values["banner.text"] == "Sale!"
        assert await site_settings.get_bool("maintenance.mode")

    async def test_get_bool(self, site_settings):
        assert await site_settings.get_bool("notifications.enabled")
        assert not await site_settings.get_bool("maintenance.mode")
        assert await site_settings.get_bool("missing.flag", default=True)

    async def test_notifications_flag(self, site_settings):
        assert await site_settings.notifications_enabled()

        await site_settings.set("notifications.enabled", "FALSE")

        assert not await site_settings.notifications_enabled()

    async def test_delete_restores_default(self, site_settings):
        await site_settings.set("site.title", "Other")

        result = await site_settings.delete("site.title")

        assert result.success
        assert result.settings["site.title"] == "Dream Books Library"

    async def test_delete_missing(self, site_settings):
        result = await site_settings.delete("site.title")

        assert not result.success
        assert result.error_code == "SETTING_NOT_FOUND"

    async def test_reset(self, site_settings):
        await site_settings.upsert({"banner.text": "Sale!", "site.title": "Other"})

        values = await site_settings.reset()

        assert values == DEFAULT_SITE_SETTINGS
        assert await site_settings.get_all() == DEFAULT_SITE_SETTINGS
