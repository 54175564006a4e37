"""Tests for user settings."""
from unittest.mock import AsyncMock

import pytest

from jquiz.config import APP_THEMES
from jquiz.services.document_store import PathNotFoundError, StoreError
from jquiz.services.settings_service import SettingsService


@pytest.fixture
def service(document_store) -> SettingsService:
    """Settings service over the test database."""
    return SettingsService(document_store)


@pytest.mark.parametrize(
    "document, expected",
    [
        (None, 0),
        ({}, 0),
        ({"settings": {}}, 0),
        ({"settings": {"themeIndex": 2}}, 2),
        ({"settings": {"themeIndex": 99}}, 0),
        ({"settings": {"themeIndex": "1"}}, 0),
        ({"settings": "dark"}, 0),
    ],
)
def test_theme_index_from(service, document, expected):
    """Test reading the theme index from a document."""
    assert service.theme_index_from(document) == expected


@pytest.mark.asyncio
async def test_save_theme_for_new_user(service, document_store):
    """Test that the first save creates the settings map."""
    assert await service.save_theme("user-1", 3) is True

    assert await document_store.get("user-1") == {"settings": {"themeIndex": 3}}
    assert await service.get_theme_index("user-1") == 3


@pytest.mark.asyncio
async def test_save_theme_keeps_vocabulary(service, document_store):
    """Test that saving a theme leaves the counters alone."""
    await document_store.merge("user-1", {"vocabulary": {"水": {"s": 2, "f": 0}}, "settings": {"themeIndex": 1}})

    assert await service.save_theme("user-1", 2) is True

    assert await document_store.get("user-1") == {
        "vocabulary": {"水": {"s": 2, "f": 0}},
        "settings": {"themeIndex": 2},
    }


@pytest.mark.asyncio
async def test_save_theme_out_of_range(service):
    """Test that an unknown theme is refused."""
    with pytest.raises(ValueError):
        await service.save_theme("user-1", len(APP_THEMES))


@pytest.mark.asyncio
async def test_save_theme_failure():
    """Test that a failing store is reported, not raised."""
    store = AsyncMock()
    store.update_field.side_effect = PathNotFoundError("user-1", ("settings", "themeIndex"))
    store.merge.side_effect = StoreError("offline")

    assert await SettingsService(store).save_theme("user-1", 1) is False


def test_get_theme(service):
    """Test looking up a theme."""
    assert service.get_theme(0)["id"] == "midnight"
    assert [t["id"] for t in service.themes] == ["midnight", "forest", "ocean", "sunset"]
