"""Loading and parsing of word lists."""
import asyncio
import csv
import json
import logging
from io import StringIO
from typing import Iterable, List, Optional, Tuple

import httpx

from jquiz.config import settings
from jquiz.models.quiz_models import WordRecord
from jquiz.monitoring import bootstrap_failures, vocabulary_loads
from jquiz.services.local_cache import LocalCache

logger = logging.getLogger(__name__)

# Column order of the spreadsheet export
CSV_COLUMNS = ("word", "kana", "romaji", "tone", "meaning_en", "category")

ORIGIN_REMOTE = "remote"
ORIGIN_CACHE = "cache"
ORIGIN_IMPORT = "import"
ORIGIN_EMPTY = "empty"


class VocabularyLoadError(Exception):
    """The word list could not be downloaded."""


class VocabularyImportError(ValueError):
    """A pasted word list is not valid."""


def deduplicate(words: Iterable[WordRecord]) -> List[WordRecord]:
    """Keep the first record for every ``word``."""
    seen = set()
    result = []
    for record in words:
        if record.word in seen:
            logger.warning("Dropping duplicate word %r", record.word)
            continue
        seen.add(record.word)
        result.append(record)
    return result


def parse_csv(text: str) -> List[WordRecord]:
    """Parse the spreadsheet export.

    The first line is a header. Rows need at least two columns and a
    non-empty word and meaning; anything else is skipped.
    """
    reader = csv.reader(StringIO(text), skipinitialspace=True)
    next(reader, None)

    words = []
    for row in reader:
        if len(row) < 2:
            continue
        fields = dict(zip(CSV_COLUMNS, (cell.strip() for cell in row)))
        record = WordRecord.from_dict(fields)
        if record.word and record.meaning:
            words.append(record)
    return deduplicate(words)


def parse_json(text: str) -> List[WordRecord]:
    """Parse a pasted JSON array of word objects.

    Raises VocabularyImportError if the text is not an array or an item has
    no ``word`` or meaning.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise VocabularyImportError(f"Invalid JSON: {e.msg}") from e

    if not isinstance(data, list):
        raise VocabularyImportError("Invalid JSON: Not an array")

    words = []
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            raise VocabularyImportError(f"Invalid JSON: item {position} is not an object")
        record = WordRecord.from_dict(item)
        if not record.word or not record.meaning:
            raise VocabularyImportError(
                f"Invalid JSON: item {position} is missing 'word' or 'meaning_en'"
            )
        words.append(record)
    return deduplicate(words)


async def fetch_vocabulary(
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[WordRecord]:
    """Download and parse the word list.

    The whole request is bounded by ``timeout``. Any failure raises
    VocabularyLoadError and nothing is kept from the attempt.
    """
    url = url or settings.vocabulary.csv_url
    timeout = settings.vocabulary.fetch_timeout_seconds if timeout is None else timeout

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            response = await asyncio.wait_for(client.get(url), timeout)
            response.raise_for_status()
    except asyncio.TimeoutError as e:
        raise VocabularyLoadError("Download timed out.") from e
    except httpx.HTTPError as e:
        raise VocabularyLoadError(f"Network error: {e}") from e

    words = parse_csv(response.text)
    if not words:
        raise VocabularyLoadError("No valid data found.")
    return words


class VocabularyService:
    """Keeps the word list available, preferring fresh data over the cache."""

    def __init__(self, cache: Optional[LocalCache] = None):
        """Initialize the service with an optional local cache."""
        self.cache = cache

    async def load(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> List[WordRecord]:
        """Download the word list and cache it. Raises VocabularyLoadError."""
        try:
            words = await fetch_vocabulary(url, timeout, transport)
        except VocabularyLoadError as e:
            bootstrap_failures.labels(source="vocabulary").inc()
            logger.error("Failed to load vocabulary: %s", e)
            raise

        vocabulary_loads.labels(origin=ORIGIN_REMOTE).inc()
        logger.info("Loaded %d words", len(words))
        self._save(words)
        return words

    async def load_or_cached(self, **kwargs) -> Tuple[List[WordRecord], str]:
        """Download the word list, falling back to the cached copy or nothing."""
        try:
            return await self.load(**kwargs), ORIGIN_REMOTE
        except VocabularyLoadError:
            cached = self.cached()
            if cached:
                return cached, ORIGIN_CACHE
            return [], ORIGIN_EMPTY

    def cached(self) -> List[WordRecord]:
        """Get the last cached word list, if any."""
        if self.cache is None:
            return []
        words = self.cache.load_words() or []
        if words:
            vocabulary_loads.labels(origin=ORIGIN_CACHE).inc()
        return words

    def import_json(self, text: str) -> List[WordRecord]:
        """Parse a pasted word list and cache it. Raises VocabularyImportError."""
        words = parse_json(text)
        if not words:
            raise VocabularyImportError("Invalid JSON: the list is empty")
        vocabulary_loads.labels(origin=ORIGIN_IMPORT).inc()
        logger.info("Imported %d words", len(words))
        self._save(words)
        return words

    def _save(self, words: List[WordRecord]) -> None:
        if self.cache is None:
            return
        try:
            self.cache.save_words(words)
        except OSError as e:
            logger.warning("Could not cache vocabulary: %s", e)
