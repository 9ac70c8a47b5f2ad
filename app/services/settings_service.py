"""Settings store: durable key-value configuration.

Reads never raise; a broken or unreachable database degrades to the
caller's default. Writes go through a single ``INSERT ... ON CONFLICT``
statement so concurrent writers of one key serialize in the database.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ValidationException
from app.models.setting import Setting, SettingCategory

logger = logging.getLogger(__name__)

CATEGORY_VALUES = {c.value for c in SettingCategory}


def _insert_for(db: AsyncSession):
    """Pick the dialect-specific insert that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise ValueError(f"Unsupported database dialect for settings upsert: {dialect}")


class SettingsService:
    """Service for reading and writing Setting records."""

    async def get(self, db: AsyncSession, key: str, default: str | None = None) -> str | None:
        """Get a setting value by key, or ``default`` when absent or unreadable."""
        try:
            result = await db.execute(select(Setting.value).where(Setting.key == key.strip()))
            value = result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Error getting setting {key}: {e}")
            return default
        return value if value is not None else default

    async def set(
        self,
        db: AsyncSession,
        key: str,
        value: str,
        description: str = "",
        category: SettingCategory | str = SettingCategory.GENERAL,
        is_public: bool = False,
        updated_by: uuid.UUID | None = None,
    ) -> Setting:
        """Create or update a setting and return the stored record.

        Raises:
            ValidationException: empty key or category outside the permitted set.
        """
        key = key.strip()
        if not key:
            raise ValidationException([{"field": "key", "message": "Setting key is required"}])

        category_value = category.value if isinstance(category, SettingCategory) else category
        if category_value not in CATEGORY_VALUES:
            raise ValidationException([{
                "field": "category",
                "message": f"Invalid category '{category_value}'. Must be one of: "
                f"{', '.join(sorted(CATEGORY_VALUES))}",
            }])

        fields = {
            "value": value,
            "description": description or "",
            "category": category_value,
            "is_public": bool(is_public),
            "updated_by": updated_by,
        }

        insert = _insert_for(db)
        stmt = insert(Setting).values(key=key, **fields)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Setting.key],
            set_={**fields, "updated_at": func.now()},
        ).returning(Setting)

        try:
            result = await db.execute(stmt, execution_options={"populate_existing": True})
            setting = result.scalar_one()
        except Exception as e:
            logger.error(f"Error setting {key}: {e}")
            raise

        logger.info(f"Setting '{key}' stored (category={category_value}, public={is_public})")
        return setting

    async def get_by_category(self, db: AsyncSession, category: SettingCategory | str) -> dict[str, str]:
        """Get all settings in a category as a key -> value mapping."""
        category_value = category.value if isinstance(category, SettingCategory) else category
        try:
            result = await db.execute(
                select(Setting.key, Setting.value).where(Setting.category == category_value)
            )
            return {row.key: row.value for row in result.all()}
        except Exception as e:
            logger.error(f"Error getting settings for category {category_value}: {e}")
            return {}

    async def get_public(self, db: AsyncSession) -> dict[str, str]:
        """Get every public setting as a key -> value mapping."""
        try:
            result = await db.execute(
                select(Setting.key, Setting.value).where(Setting.is_public.is_(True))
            )
            return {row.key: row.value for row in result.all()}
        except Exception as e:
            logger.error(f"Error getting public settings: {e}")
            return {}


# Singleton instance
_settings_service: SettingsService | None = None


def get_settings_service() -> SettingsService:
    """Get the settings service singleton."""
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsService()
    return _settings_service
