"""Models for quiz-related data structures."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class WordRecord:
    """A vocabulary entry. Identity is the ``word`` field."""
    word: str
    meaning: str
    kana: str = ""
    romaji: str = ""
    tone: str = ""
    category: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "word": self.word,
            "kana": self.kana,
            "romaji": self.romaji,
            "tone": self.tone,
            "meaning_en": self.meaning,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WordRecord":
        """Create from dictionary. Accepts ``meaning_en`` or ``meaning``."""
        return cls(
            word=str(data.get("word") or "").strip(),
            meaning=str(data.get("meaning_en") or data.get("meaning") or "").strip(),
            kana=str(data.get("kana") or "").strip(),
            romaji=str(data.get("romaji") or "").strip(),
            tone=str(data.get("tone") or "").strip(),
            category=str(data.get("category") or "").strip(),
        )


@dataclass(frozen=True)
class WordStat:
    """Success/attempt counters for one word."""
    successes: int = 0
    attempts: int = 0

    @property
    def failures(self) -> int:
        return self.attempts - self.successes


# word -> WordStat. Always replaced, never mutated in place.
StatsSnapshot = Dict[str, WordStat]


@dataclass(frozen=True)
class AnswerResult:
    """Optimistic outcome of one answer."""
    updated_stats: StatsSnapshot
    correct: bool
    score_delta: int


class WriteOutcome(Enum):
    """States of a background write to the durable store."""
    PENDING = "pending"
    COMMITTED = "committed"
    FALLBACK_COMMITTED = "fallback_committed"
    FAILED = "failed"


@dataclass(frozen=True)
class StatsSummary:
    """Aggregate counters shown on the menu and statistics screens."""
    total_words: int
    total_correct: int
    total_attempts: int
    mastered_count: int

    @property
    def accuracy(self) -> int:
        """Share of correct answers as a rounded percentage."""
        if not self.total_attempts:
            return 0
        return round(self.total_correct / self.total_attempts * 100)


@dataclass(frozen=True)
class QuizSession:
    """Immutable state of one practice session."""
    queue: Tuple[WordRecord, ...]
    index: int = 0
    score: int = 0
    options: Tuple[WordRecord, ...] = ()
    selected: Optional[WordRecord] = None

    @property
    def current(self) -> Optional[WordRecord]:
        """Word being asked, or None once the session is over."""
        if self.index < len(self.queue):
            return self.queue[self.index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.index >= len(self.queue)

    @property
    def is_answered(self) -> bool:
        return self.selected is not None

    @property
    def is_last_question(self) -> bool:
        return self.index == len(self.queue) - 1
