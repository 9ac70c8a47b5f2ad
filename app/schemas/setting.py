"""Setting-related Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import ConfigDict, Field

from app.models.setting import SettingCategory
from app.schemas.common import BaseSchema


class VerbatimSchema(BaseSchema):
    """Setting values are stored and returned exactly as written."""

    model_config = ConfigDict(str_strip_whitespace=False)


class SettingUpdateRequest(VerbatimSchema):
    """Request body for creating or updating a setting."""

    value: str
    description: str = Field("", max_length=1000)
    # Kept as a plain string so unknown categories reach the service's own check.
    category: str = SettingCategory.GENERAL.value
    is_public: bool = False
    updated_by: uuid.UUID | None = None


class SettingResponse(VerbatimSchema):
    """A stored setting record."""

    id: uuid.UUID
    key: str
    value: str
    description: str
    category: str
    is_public: bool
    updated_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime


class SettingValueResponse(VerbatimSchema):
    """A single setting value lookup."""

    key: str
    value: str | None = None
