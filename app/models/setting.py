"""Setting model: durable key-value configuration with visibility metadata."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Index, String, Text, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.models.base import BaseModel


class SettingCategory(str, Enum):
    """Permitted setting categories."""

    GENERAL = "general"
    DOCUMENTS = "documents"
    EMAIL = "email"
    PAYMENT = "payment"
    OTHER = "other"


class Setting(BaseModel):
    """A single runtime-editable configuration value.

    Rows are created on the first write of a key and updated in place
    afterwards. Non-admin callers only ever see rows with ``is_public`` set.
    """

    __tablename__ = "settings"
    __table_args__ = (Index("ix_settings_category", "category"),)

    key: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SettingCategory.GENERAL.value,
    )
    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    # Actor reference only; the users table belongs to the host application.
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    @validates("key")
    def _strip_key(self, _attr: str, key: str) -> str:
        return key.strip()

    def __repr__(self) -> str:
        return f"<Setting {self.key}={self.value!r} ({self.category})>"
