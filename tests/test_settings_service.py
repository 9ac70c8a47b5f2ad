"""Tests for the settings store."""

import uuid

import pytest
from sqlalchemy import func, select

from app.exceptions import ValidationException
from app.models.setting import Setting, SettingCategory
from app.services.settings_service import SettingsService


class BrokenSession:
    """A session whose database is unreachable."""

    async def execute(self, *args, **kwargs):
        raise RuntimeError("database unavailable")

    def get_bind(self):
        raise RuntimeError("database unavailable")


@pytest.fixture
def service():
    return SettingsService()


async def count_settings(db) -> int:
    return (await db.execute(select(func.count()).select_from(Setting))).scalar_one()


async def test_set_creates_then_updates_in_place(db, service):
    first = await service.set(db, "rulebook_url", "https://cdn.example/a.pdf", category="documents")
    second = await service.set(db, "rulebook_url", "https://cdn.example/b.pdf", category="documents")

    assert first.id == second.id
    assert second.value == "https://cdn.example/b.pdf"
    assert await count_settings(db) == 1
    assert await service.get(db, "rulebook_url") == "https://cdn.example/b.pdf"


async def test_set_is_idempotent(db, service):
    actor = uuid.uuid4()
    for _ in range(2):
        setting = await service.set(
            db,
            "registration_open",
            "true",
            description="Accept new registrations",
            category=SettingCategory.GENERAL,
            is_public=True,
            updated_by=actor,
        )

    assert await count_settings(db) == 1
    assert setting.value == "true"
    assert setting.description == "Accept new registrations"
    assert setting.is_public is True
    assert setting.updated_by == actor


async def test_set_trims_key(db, service):
    await service.set(db, "  upi_id  ", "event@bank", category="payment")

    assert await service.get(db, "upi_id") == "event@bank"


async def test_set_defaults(db, service):
    setting = await service.set(db, "theme", "dark")

    assert setting.category == "general"
    assert setting.is_public is False
    assert setting.description == ""
    assert setting.updated_by is None


async def test_set_rejects_unknown_category(db, service):
    with pytest.raises(ValidationException) as exc_info:
        await service.set(db, "smtp_host", "smtp.example.com", category="secrets")

    assert exc_info.value.errors[0]["field"] == "category"
    assert await count_settings(db) == 0


async def test_set_rejects_blank_key(db, service):
    with pytest.raises(ValidationException):
        await service.set(db, "   ", "value")


async def test_set_surfaces_store_errors(service):
    with pytest.raises(RuntimeError):
        await service.set(BrokenSession(), "rulebook_url", "https://cdn.example/doc.pdf")


async def test_get_returns_default_when_absent(db, service):
    assert await service.get(db, "missing") is None
    assert await service.get(db, "missing", "fallback") == "fallback"


async def test_reads_degrade_when_store_unavailable(service):
    broken = BrokenSession()

    assert await service.get(broken, "rulebook_url", "fallback") == "fallback"
    assert await service.get_by_category(broken, "documents") == {}
    assert await service.get_public(broken) == {}


async def test_get_by_category(db, service):
    await service.set(db, "rulebook_url", "https://cdn.example/doc.pdf", category="documents")
    await service.set(db, "brochure_url", "https://cdn.example/brochure.pdf", category="documents")
    await service.set(db, "upi_id", "event@bank", category="payment")

    assert await service.get_by_category(db, SettingCategory.DOCUMENTS) == {
        "rulebook_url": "https://cdn.example/doc.pdf",
        "brochure_url": "https://cdn.example/brochure.pdf",
    }
    assert await service.get_by_category(db, "email") == {}


async def test_get_public_only_returns_public_settings(db, service):
    await service.set(db, "rulebook_url", "https://cdn.example/doc.pdf", category="documents", is_public=True)
    await service.set(db, "smtp_note", "internal", category="email", is_public=False)
    await service.set(db, "registration_open", "true", is_public=True)

    assert await service.get_public(db) == {
        "rulebook_url": "https://cdn.example/doc.pdf",
        "registration_open": "true",
    }


async def test_visibility_follows_latest_write(db, service):
    await service.set(db, "results_published", "false", is_public=True)
    await service.set(db, "results_published", "false", is_public=False)

    assert "results_published" not in await service.get_public(db)
