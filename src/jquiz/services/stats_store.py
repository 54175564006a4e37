"""Working copy of a user's per-word statistics."""
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from jquiz.config import settings
from jquiz.models.quiz_models import StatsSnapshot, StatsSummary, WordStat
from jquiz.monitoring import bootstrap_failures
from jquiz.services.document_store import DocumentStore, StoreError
from jquiz.services.local_cache import LocalCache

logger = logging.getLogger(__name__)

VOCABULARY_FIELD = "vocabulary"

SOURCE_REMOTE = "remote"
SOURCE_CACHE = "cache"
SOURCE_EMPTY = "empty"


class StatsLoadError(Exception):
    """The durable statistics could not be read."""


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def decode_vocabulary(document: Optional[Dict[str, Any]]) -> StatsSnapshot:
    """Turn the remote ``{word: {"s": .., "f": ..}}`` map into a snapshot."""
    if not document:
        return {}
    vocabulary = document.get(VOCABULARY_FIELD)
    if not isinstance(vocabulary, dict):
        return {}

    stats: StatsSnapshot = {}
    for word, metrics in vocabulary.items():
        if not isinstance(metrics, dict):
            continue
        successes = _count(metrics.get("s"))
        failures = _count(metrics.get("f"))
        stats[word] = WordStat(successes=successes, attempts=successes + failures)
    return stats


def encode_stat(stat: WordStat) -> Dict[str, int]:
    """Compact remote encoding of one word's counters."""
    return {"s": stat.successes, "f": stat.failures}


def summarize(stats: StatsSnapshot, mastered_ratio: Optional[float] = None) -> StatsSummary:
    """Aggregate counters across all words of a snapshot."""
    if mastered_ratio is None:
        mastered_ratio = settings.quiz.mastered_ratio
    mastered = sum(
        1 for s in stats.values() if s.attempts > 0 and s.successes / s.attempts >= mastered_ratio
    )
    return StatsSummary(
        total_words=len(stats),
        total_correct=sum(s.successes for s in stats.values()),
        total_attempts=sum(s.attempts for s in stats.values()),
        mastered_count=mastered,
    )


class StatsStore:
    """In-memory snapshot mirrored to the local cache.

    The durable document is read once by ``load``; writes to it go through
    AnswerProcessor. ``snapshot`` is swapped as a whole on every commit so
    readers never see a partial update.
    """

    def __init__(
        self,
        user_id: str,
        document_store: DocumentStore,
        cache: Optional[LocalCache] = None,
    ):
        self.user_id = user_id
        self.document_store = document_store
        self.cache = cache
        self._snapshot: StatsSnapshot = {}

    @property
    def snapshot(self) -> StatsSnapshot:
        return self._snapshot

    async def fetch_remote(self, timeout: Optional[float] = None) -> StatsSnapshot:
        """Read the durable document, raising StatsLoadError on failure or timeout."""
        if timeout is None:
            timeout = settings.vocabulary.stats_load_timeout_seconds
        try:
            document = await asyncio.wait_for(self.document_store.get(self.user_id), timeout)
        except asyncio.TimeoutError as e:
            raise StatsLoadError(f"Loading statistics timed out after {timeout}s") from e
        except StoreError as e:
            raise StatsLoadError(str(e)) from e
        return decode_vocabulary(document)

    async def load(self, timeout: Optional[float] = None) -> Tuple[StatsSnapshot, str]:
        """Load the session's starting snapshot.

        Returns the snapshot and where it came from: the durable store, the
        local cache, or an empty default.
        """
        try:
            stats = await self.fetch_remote(timeout)
            source = SOURCE_REMOTE
        except StatsLoadError as e:
            bootstrap_failures.labels(source="stats").inc()
            logger.error("Failed to load statistics for user %s: %s", self.user_id, e)
            cached = self.cache.load_stats(self.user_id) if self.cache else None
            if cached is not None:
                stats, source = cached, SOURCE_CACHE
            else:
                stats, source = {}, SOURCE_EMPTY

        self.commit(stats)
        logger.info("Loaded %d word stats for user %s from %s", len(stats), self.user_id, source)
        return stats, source

    def commit(self, stats: StatsSnapshot) -> None:
        """Make ``stats`` the current snapshot and mirror it to the local cache."""
        self._snapshot = stats
        if self.cache is None:
            return
        try:
            self.cache.save_stats(self.user_id, stats)
        except OSError as e:
            logger.warning("Could not cache statistics for user %s: %s", self.user_id, e)

    def summary(self) -> StatsSummary:
        return summarize(self._snapshot)
