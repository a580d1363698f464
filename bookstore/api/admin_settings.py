"""Admin endpoints for the site settings store."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from bookstore.api.dependencies import AdminUser, get_request_id, raise_error
from bookstore.api.schemas import (
    ErrorResponse,
    SettingsResponse,
    SettingValueRequest,
    SettingValueResponse,
)
from bookstore.application.settings_service import SettingsService, get_settings_service

router = APIRouter(prefix="/api/admin/settings", tags=["Admin"])


def get_service(request: Request) -> SettingsService:
    return get_settings_service(request_id=get_request_id(request))


Service = Annotated[SettingsService, Depends(get_service)]


@router.get("", response_model=SettingsResponse, summary="All settings")
async def get_all_settings(admin: AdminUser, service: Service) -> SettingsResponse:
    return SettingsResponse(settings=await service.get_all())


@router.put("", response_model=SettingsResponse, summary="Update several settings")
async def upsert_settings(values: dict[str, str], admin: AdminUser, service: Service) -> SettingsResponse:
    return SettingsResponse(settings=await service.upsert(values))


@router.post("/reset", response_model=SettingsResponse, summary="Restore defaults")
async def reset_settings(admin: AdminUser, service: Service) -> SettingsResponse:
    return SettingsResponse(settings=await service.reset())


@router.get("/{key}", response_model=SettingValueResponse, responses={404: {"model": ErrorResponse}})
async def get_setting(key: str, admin: AdminUser, service: Service) -> SettingValueResponse:
    value = await service.get(key)
    if value is None:
        raise_error("SETTING_NOT_FOUND", f"Setting not found: {key}", "SETTING_NOT_FOUND")
    return SettingValueResponse(key=key, value=value)


@router.put("/{key}", response_model=SettingsResponse, summary="Set one setting")
async def set_setting(
    key: str, body: SettingValueRequest, admin: AdminUser, service: Service
) -> SettingsResponse:
    return SettingsResponse(settings=await service.set(key, body.value))


@router.delete("/{key}", response_model=SettingsResponse, responses={404: {"model": ErrorResponse}})
async def delete_setting(key: str, admin: AdminUser, service: Service) -> SettingsResponse:
    result = await service.delete(key)
    if not result.success:
        raise_error(result.error_code, result.error, "SETTING_NOT_FOUND")
    return SettingsResponse(settings=result.settings)
