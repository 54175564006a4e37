"""Service for per-user settings stored next to the vocabulary counters."""
import logging
from typing import Any, Dict, List, Optional

from jquiz.config import settings
from jquiz.models.quiz_models import WriteOutcome
from jquiz.services.document_store import DocumentStore
from jquiz.services.reconciliation import write_with_fallback

logger = logging.getLogger(__name__)

SETTINGS_FIELD = "settings"
THEME_INDEX_FIELD = "themeIndex"


class SettingsService:
    """Service for reading and saving user settings."""

    def __init__(self, document_store: DocumentStore, themes: Optional[List[Dict[str, Any]]] = None):
        """Initialize the service with a document store."""
        self.document_store = document_store
        self.themes = themes if themes is not None else settings.themes

    def theme_index_from(self, document: Optional[Dict[str, Any]]) -> int:
        """Theme index stored in a document, or 0 when absent or out of range."""
        user_settings = (document or {}).get(SETTINGS_FIELD)
        if not isinstance(user_settings, dict):
            return 0
        index = user_settings.get(THEME_INDEX_FIELD)
        if isinstance(index, int) and 0 <= index < len(self.themes):
            return index
        return 0

    async def get_theme_index(self, user_id: str) -> int:
        """Get the user's saved theme index."""
        return self.theme_index_from(await self.document_store.get(user_id))

    def get_theme(self, index: int) -> Dict[str, Any]:
        """Get a theme by index."""
        return self.themes[index]

    async def save_theme(self, user_id: str, theme_index: int) -> bool:
        """Save the theme index. Returns True if the store accepted the write."""
        if not 0 <= theme_index < len(self.themes):
            raise ValueError(f"Theme index {theme_index} is out of range")

        outcome = await write_with_fallback(
            self.document_store,
            user_id,
            (SETTINGS_FIELD, THEME_INDEX_FIELD),
            theme_index,
            field=SETTINGS_FIELD,
        )
        if outcome == WriteOutcome.FAILED:
            logger.error("Failed to save theme %d for user %s", theme_index, user_id)
            return False

        logger.info("Saved theme %s for user %s", self.themes[theme_index]["id"], user_id)
        return True
