"""SQLAlchemy models for EventDesk."""

from app.models.base import Base, BaseModel, TimestampMixin
from app.models.setting import Setting, SettingCategory

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TimestampMixin",
    # Setting
    "Setting",
    "SettingCategory",
]
