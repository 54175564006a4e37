"""Selection of the words to practice in a session."""
import logging
import random
from typing import List, Optional, Sequence

from jquiz.config import settings
from jquiz.models.quiz_models import StatsSnapshot, WordRecord, WordStat

logger = logging.getLogger(__name__)


def shuffled(items: Sequence, rng: random.Random) -> list:
    """Return a shuffled copy of ``items``."""
    result = list(items)
    rng.shuffle(result)
    return result


class QueueBuilder:
    """Builds a bounded, prioritized and shuffled practice queue.

    Words answered correctly ``mastery_threshold`` times or more are left out.
    The rest are ranked by a priority score: a word never answered gets
    ``new_word_score``; any other word gets
    ``failures * failure_weight - successes``, so that one failure outweighs
    several successes. The highest scores fill the session, which is then
    shuffled so the order does not give the ranking away.
    """

    def __init__(
        self,
        mastery_threshold: Optional[int] = None,
        failure_weight: Optional[int] = None,
        new_word_score: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.mastery_threshold = (
            settings.quiz.mastery_threshold if mastery_threshold is None else mastery_threshold
        )
        self.failure_weight = settings.quiz.failure_weight if failure_weight is None else failure_weight
        self.new_word_score = settings.quiz.new_word_score if new_word_score is None else new_word_score
        self.rng = rng or random.Random()

    def is_eligible(self, stat: Optional[WordStat]) -> bool:
        """A word stays in rotation until it reaches the mastery threshold."""
        return stat is None or stat.successes < self.mastery_threshold

    def priority_score(self, stat: Optional[WordStat]) -> int:
        """Review urgency of a word; higher comes first."""
        if stat is None:
            return self.new_word_score
        return stat.failures * self.failure_weight - stat.successes

    def rank(self, all_words: Sequence[WordRecord], stats: StatsSnapshot) -> List[WordRecord]:
        """Eligible words ordered by priority score, most urgent first."""
        candidates = [w for w in all_words if self.is_eligible(stats.get(w.word))]
        return sorted(candidates, key=lambda w: self.priority_score(stats.get(w.word)), reverse=True)

    def build(
        self,
        all_words: Sequence[WordRecord],
        stats: StatsSnapshot,
        session_size: Optional[int] = None,
    ) -> List[WordRecord]:
        """Choose up to ``session_size`` words for a new session."""
        if session_size is None:
            session_size = settings.quiz.session_size

        ranked = self.rank(all_words, stats)
        if not ranked:
            logger.info("No eligible words out of %d, every word is mastered", len(all_words))
            return []

        top_words = ranked[:session_size]
        logger.info(
            "Selected %d of %d eligible words (%d total)",
            len(top_words),
            len(ranked),
            len(all_words),
        )
        return shuffled(top_words, self.rng)
