"""Site settings service.

Runtime-editable key/value configuration (site title, theme, maintenance
flag...) persisted in the ``site_settings`` table. Keys without a row
fall back to ``DEFAULT_SITE_SETTINGS``.
"""

from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.repositories import SiteSettingRepository

logger = structlog.get_logger()

NOTIFICATIONS_ENABLED = "notifications.enabled"

DEFAULT_SITE_SETTINGS: dict[str, str] = {
    "site.title": "Dream Books Library",
    "low.stock.threshold": "5",
    "maintenance.mode": "false",
    "theme.default": "light",
    NOTIFICATIONS_ENABLED: "true",
}


@dataclass
class SettingsResult:
    """Result of a settings operation."""

    settings: dict[str, str] = field(default_factory=dict)
    success: bool = True
    error: str | None = None
    error_code: str | None = None


class SettingsService:
    """Read and write the configuration store."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        request_id: str | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.request_id = request_id

    async def get_all(self) -> dict[str, str]:
        """Defaults overlaid with stored values."""

        async def work(session: AsyncSession) -> dict[str, str]:
            return await SiteSettingRepository(session).all()

        stored = await with_transaction(self.session_factory, work)
        return {**DEFAULT_SITE_SETTINGS, **stored}

    async def get(self, key: str) -> str | None:
        async def work(session: AsyncSession) -> str | None:
            return await SiteSettingRepository(session).get(key)

        value = await with_transaction(self.session_factory, work)
        return value if value is not None else DEFAULT_SITE_SETTINGS.get(key)

    async def get_bool(self, key: str, default: bool = False) -> bool:
        value = await self.get(key)
        if value is None:
            return default
        return value.strip().lower() == "true"

    async def upsert(self, values: dict[str, str]) -> dict[str, str]:
        """Store several values at once and return the full settings map."""

        async def work(session: AsyncSession) -> None:
            repo = SiteSettingRepository(session)
            for key, value in values.items():
                await repo.put(key, value)

        await with_transaction(self.session_factory, work)
        logger.info("Site settings updated", keys=sorted(values), request_id=self.request_id)
        return await self.get_all()

    async def set(self, key: str, value: str) -> dict[str, str]:
        return await self.upsert({key: value})

    async def delete(self, key: str) -> SettingsResult:
        """Delete a stored value; defaults remain visible afterwards."""

        async def work(session: AsyncSession) -> bool:
            return await SiteSettingRepository(session).delete(key)

        if not await with_transaction(self.session_factory, work):
            return SettingsResult(
                success=False,
                error=f"Setting not found: {key}",
                error_code="SETTING_NOT_FOUND",
            )
        logger.info("Site setting deleted", key=key, request_id=self.request_id)
        return SettingsResult(settings=await self.get_all())

    async def reset(self) -> dict[str, str]:
        """Drop every stored value and restore the defaults."""

        async def work(session: AsyncSession) -> None:
            repo = SiteSettingRepository(session)
            await repo.delete_all()
            for key, value in DEFAULT_SITE_SETTINGS.items():
                await repo.put(key, value)

        await with_transaction(self.session_factory, work)
        logger.info("Site settings reset", request_id=self.request_id)
        return dict(DEFAULT_SITE_SETTINGS)

    async def notifications_enabled(self) -> bool:
        return await self.get_bool(NOTIFICATIONS_ENABLED, default=True)


def get_settings_service(request_id: str | None = None) -> SettingsService:
    """Get settings service instance."""
    return SettingsService(request_id=request_id)
