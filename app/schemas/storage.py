"""Upload-related Pydantic schemas."""

from pydantic import BaseModel


class StoredAssetResponse(BaseModel):
    """Location descriptor returned after an accepted upload."""

    asset_class: str
    storage: str
    folder: str
    filename: str
    path: str
    size: int
    content_type: str
