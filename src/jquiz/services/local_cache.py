"""JSON file cache used when the durable store or vocabulary source is unavailable."""
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from jquiz.models.quiz_models import StatsSnapshot, WordRecord, WordStat

logger = logging.getLogger(__name__)

STATS_FILE_PREFIX = "word_stats_"
VOCABULARY_FILE = "vocabulary.json"


class LocalCache:
    """Local copies of per-user statistics and the last loaded word list."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _stats_path(self, user_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.@-]", "_", user_id)
        return self.directory / f"{STATS_FILE_PREFIX}{safe_id}.json"

    def _read(self, path: Path) -> Optional[object]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read cache file %s: %s", path, e)
            return None

    def _write(self, path: Path, data: object) -> None:
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)

    def load_stats(self, user_id: str) -> Optional[StatsSnapshot]:
        """Get the cached snapshot for a user, or None if there is none."""
        data = self._read(self._stats_path(user_id))
        if not isinstance(data, dict):
            return None

        stats: StatsSnapshot = {}
        for word, counters in data.items():
            if not isinstance(counters, dict):
                continue
            try:
                successes = max(0, int(counters.get("successes", 0)))
                attempts = max(successes, int(counters.get("attempts", 0)))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed cached stat for %r", word)
                continue
            stats[word] = WordStat(successes=successes, attempts=attempts)
        return stats

    def save_stats(self, user_id: str, stats: StatsSnapshot) -> None:
        """Store a user's snapshot."""
        data = {
            word: {"successes": stat.successes, "attempts": stat.attempts}
            for word, stat in stats.items()
        }
        self._write(self._stats_path(user_id), data)

    def load_words(self) -> Optional[List[WordRecord]]:
        """Get the last loaded word list, or None if it was never cached."""
        data = self._read(self.directory / VOCABULARY_FILE)
        if not isinstance(data, list):
            return None
        words = [WordRecord.from_dict(item) for item in data if isinstance(item, dict)]
        return [w for w in words if w.word and w.meaning]

    def save_words(self, words: List[WordRecord]) -> None:
        """Store the word list."""
        self._write(self.directory / VOCABULARY_FILE, [w.to_dict() for w in words])
