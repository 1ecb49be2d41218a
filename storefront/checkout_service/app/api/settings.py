"""HTTP routes for storefront settings."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..catalog import FLASH_SALE_SETTING_KEYS
from ..dependencies import get_settings_repository
from ..repository import SettingsRepository
from ..schemas import FlashSaleSettings, SettingResponse, SettingUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


def _serialize_setting(setting) -> dict[str, object]:
    return {
        "key": setting.key,
        "value": setting.value,
        "description": setting.description,
        "updatedAt": setting.updated_at,
    }


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@router.get("", response_model=list[SettingResponse])
async def list_settings(repository: SettingsRepository = Depends(get_settings_repository)):
    return [SettingResponse.model_validate(_serialize_setting(setting)) for setting in await repository.list_settings()]


@router.get("/flash-sale", response_model=FlashSaleSettings)
async def get_flash_sale_settings(
    repository: SettingsRepository = Depends(get_settings_repository),
) -> FlashSaleSettings:
    stored = await repository.get_many(FLASH_SALE_SETTING_KEYS)
    values: dict[str, object] = {}
    for key, alias in FLASH_SALE_SETTING_KEYS.items():
        if key not in stored:
            continue
        values[alias] = _to_bool(stored[key]) if key == "show_flash_sale_section" else stored[key]
    return FlashSaleSettings.model_validate(values)


@router.put("/flash-sale", response_model=FlashSaleSettings)
async def update_flash_sale_settings(
    payload: FlashSaleSettings,
    repository: SettingsRepository = Depends(get_settings_repository),
) -> FlashSaleSettings:
    await repository.upsert("show_flash_sale_section", "true" if payload.show_flash_sale_section else "false")
    await repository.upsert("flash_sale_section_title", payload.flash_sale_section_title)
    await repository.upsert("flash_sale_section_subtitle", payload.flash_sale_section_subtitle)
    return payload


@router.put("/{key}", response_model=SettingResponse)
async def update_setting(
    key: str,
    payload: SettingUpdate,
    repository: SettingsRepository = Depends(get_settings_repository),
) -> SettingResponse:
    setting = await repository.upsert(key, payload.value, description=payload.description)
    return SettingResponse.model_validate(_serialize_setting(setting))
