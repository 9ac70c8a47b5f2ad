"""Settings API: read and write runtime configuration values."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.common import APIResponse
from app.schemas.setting import SettingResponse, SettingUpdateRequest, SettingValueResponse
from app.services.settings_service import get_settings_service

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/public", response_model=APIResponse[dict[str, str]])
async def get_public_settings(db: AsyncSession = Depends(get_db)):
    """Get every public setting as a key -> value mapping."""
    service = get_settings_service()
    return APIResponse(data=await service.get_public(db))


@router.get("/category/{category}", response_model=APIResponse[dict[str, str]])
async def get_settings_by_category(category: str, db: AsyncSession = Depends(get_db)):
    """Get all settings in a category."""
    service = get_settings_service()
    return APIResponse(data=await service.get_by_category(db, category))


@router.get("/{key}", response_model=APIResponse[SettingValueResponse])
async def get_setting(key: str, db: AsyncSession = Depends(get_db)):
    """Get a single setting value (null when unset)."""
    service = get_settings_service()
    value = await service.get(db, key)
    return APIResponse(data=SettingValueResponse(key=key, value=value))


@router.put("/{key}", response_model=APIResponse[SettingResponse])
async def put_setting(
    key: str,
    request: SettingUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create or update a setting."""
    service = get_settings_service()
    setting = await service.set(
        db,
        key,
        request.value,
        description=request.description,
        category=request.category,
        is_public=request.is_public,
        updated_by=request.updated_by,
    )
    return APIResponse(
        data=SettingResponse.model_validate(setting),
        message="Setting saved successfully",
    )
