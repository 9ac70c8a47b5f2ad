"""Pydantic schemas for request/response validation."""

from app.schemas.common import APIResponse, BaseSchema
from app.schemas.document import DocumentError, DocumentInfo
from app.schemas.email import EmailSentResponse, SendEmailRequest, TestEmailRequest
from app.schemas.setting import SettingResponse, SettingUpdateRequest, SettingValueResponse
from app.schemas.storage import StoredAssetResponse

__all__ = [
    # Common
    "APIResponse",
    "BaseSchema",
    # Documents
    "DocumentInfo",
    "DocumentError",
    # Email
    "SendEmailRequest",
    "TestEmailRequest",
    "EmailSentResponse",
    # Settings
    "SettingUpdateRequest",
    "SettingResponse",
    "SettingValueResponse",
    # Storage
    "StoredAssetResponse",
]
