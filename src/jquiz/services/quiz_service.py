"""Service for running a multiple-choice practice session."""
import logging
import random
from dataclasses import replace
from typing import Optional, Sequence, Tuple

from jquiz.config import settings
from jquiz.models.quiz_models import AnswerResult, QuizSession, StatsSnapshot, WordRecord
from jquiz.monitoring import quiz_sessions
from jquiz.services.answer_processor import AnswerProcessor
from jquiz.services.queue_builder import QueueBuilder, shuffled

logger = logging.getLogger(__name__)


class NotEnoughWordsError(ValueError):
    """Too few distinct words to build multiple-choice questions."""


class AnswerAlreadySubmittedError(ValueError):
    """The current question already has an answer."""


class QuizService:
    """Moves a QuizSession value from one state to the next.

    The service holds no session state of its own: every call takes the
    current QuizSession and returns a new one.
    """

    def __init__(
        self,
        queue_builder: Optional[QueueBuilder] = None,
        min_words: Optional[int] = None,
        distractor_count: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.rng = rng or random.Random()
        self.queue_builder = queue_builder or QueueBuilder(rng=self.rng)
        self.min_words = settings.quiz.min_words if min_words is None else min_words
        self.distractor_count = (
            settings.quiz.distractor_count if distractor_count is None else distractor_count
        )

    def build_options(
        self, target: WordRecord, all_words: Sequence[WordRecord]
    ) -> Tuple[WordRecord, ...]:
        """Target plus randomly chosen other words, in random order."""
        others = [w for w in all_words if w.word != target.word]
        distractors = shuffled(others, self.rng)[: self.distractor_count]
        return tuple(shuffled(distractors + [target], self.rng))

    def start_session(
        self,
        all_words: Sequence[WordRecord],
        stats: StatsSnapshot,
        session_size: Optional[int] = None,
    ) -> QuizSession:
        """Build the queue and ask the first question.

        Raises NotEnoughWordsError when fewer than ``min_words`` distinct
        words are loaded. An empty queue gives a session that is already
        finished.
        """
        distinct = {w.word for w in all_words}
        if len(distinct) < self.min_words:
            raise NotEnoughWordsError(f"Need at least {self.min_words} words loaded!")

        queue = tuple(self.queue_builder.build(all_words, stats, session_size))
        quiz_sessions.inc()
        session = QuizSession(queue=queue)
        if session.is_finished:
            return session
        return replace(session, options=self.build_options(session.current, all_words))

    def answer(
        self,
        session: QuizSession,
        option: WordRecord,
        stats: StatsSnapshot,
        processor: AnswerProcessor,
    ) -> Tuple[QuizSession, AnswerResult]:
        """Record the chosen option for the current question."""
        if session.is_finished:
            raise ValueError("The session is already finished")
        if session.is_answered:
            raise AnswerAlreadySubmittedError("This question was already answered")

        result = processor.process(stats, session.current.word, option.word)
        updated = replace(session, selected=option, score=session.score + result.score_delta)
        return updated, result

    def advance(self, session: QuizSession, all_words: Sequence[WordRecord]) -> QuizSession:
        """Move to the next question, or past the end of the queue."""
        next_session = replace(session, index=session.index + 1, options=(), selected=None)
        if next_session.is_finished:
            logger.info("Session finished with %d/%d", session.score, len(session.queue))
            return next_session
        return replace(next_session, options=self.build_options(next_session.current, all_words))

    @staticmethod
    def result_percentage(session: QuizSession) -> int:
        """Score as a rounded percentage of the queue length."""
        if not session.queue:
            return 0
        return round(session.score / len(session.queue) * 100)
