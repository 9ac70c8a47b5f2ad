"""Service layer for business logic."""

from app.services.document_service import DocumentService, get_document_service
from app.services.email_service import EmailMessage, EmailService, get_email_service
from app.services.settings_service import SettingsService, get_settings_service
from app.services.storage_service import AssetClass, StorageService, get_storage_service

__all__ = [
    "SettingsService",
    "get_settings_service",
    "StorageService",
    "AssetClass",
    "get_storage_service",
    "DocumentService",
    "get_document_service",
    "EmailService",
    "EmailMessage",
    "get_email_service",
]
