"""Upload endpoint: validate and store binary assets."""

from dataclasses import replace

from fastapi import APIRouter, Depends, File, UploadFile

from app.exceptions import ValidationException
from app.schemas.common import APIResponse
from app.schemas.storage import StoredAssetResponse
from app.services.storage_service import (
    AssetClass,
    StorageService,
    UploadCandidate,
    get_storage_service,
)

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post("/{asset_class}", response_model=APIResponse[StoredAssetResponse], status_code=201)
async def upload_asset(
    asset_class: str,
    file: UploadFile = File(...),
    service: StorageService = Depends(get_storage_service),
):
    """Upload an avatar, event image, payment screenshot or document."""
    try:
        target = AssetClass(asset_class)
    except ValueError:
        raise ValidationException([{
            "field": "asset_class",
            "message": f"Invalid asset class. Must be one of: {', '.join(c.value for c in AssetClass)}",
        }])

    # Check name, type and size before the body is read into memory
    declared = UploadCandidate(
        asset_class=target,
        original_name=file.filename or "",
        content_type=file.content_type or "",
        size=file.size or 0,
        field_name="file",
    )
    service.ensure_valid(declared)

    content = await file.read()
    stored = await service.store(replace(declared, size=len(content), content=content))

    return APIResponse(
        data=StoredAssetResponse(
            asset_class=stored.asset_class.value,
            storage=stored.storage.value,
            folder=stored.folder,
            filename=stored.filename,
            path=stored.path,
            size=stored.size,
            content_type=stored.content_type,
        ),
        message="File uploaded successfully",
    )
