"""Document-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DocumentInfo(BaseModel):
    """Availability metadata for a named document, without its content."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    available: bool
    storage: str
    filename: str | None = None
    url: str | None = None
    size: int | None = None
    size_formatted: str | None = None
    last_modified: datetime | None = None
    download_url: str | None = None
    view_url: str | None = None
    message: str | None = None

    def to_content(self) -> dict:
        """Serialize with camelCase keys, leaving out unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DocumentError(BaseModel):
    """Error body for document endpoints."""

    success: bool = False
    message: str
