"""Scoring of quiz answers and background persistence of the counters."""
import asyncio
import logging
from typing import Optional, Set

from jquiz.models.quiz_models import AnswerResult, StatsSnapshot, WordStat, WriteOutcome
from jquiz.monitoring import answers_total
from jquiz.services.document_store import DocumentStore
from jquiz.services.reconciliation import write_with_fallback
from jquiz.services.stats_store import VOCABULARY_FIELD, encode_stat

logger = logging.getLogger(__name__)


def apply_answer(stats: StatsSnapshot, word: str, submitted_word: str) -> AnswerResult:
    """Compute the counters after one answer without touching ``stats``.

    A correct answer adds a success and clears the failure count; a wrong
    answer adds a failure. ``attempts`` is always ``successes + failures``.
    """
    correct = submitted_word == word
    previous = stats.get(word, WordStat())

    successes = previous.successes
    failures = previous.failures
    if correct:
        successes += 1
        failures = 0
    else:
        failures += 1

    updated_stats = dict(stats)
    updated_stats[word] = WordStat(successes=successes, attempts=successes + failures)

    return AnswerResult(
        updated_stats=updated_stats,
        correct=correct,
        score_delta=1 if correct else 0,
    )


class AnswerProcessor:
    """Applies answers locally and mirrors the result to the durable store.

    ``process`` returns the optimistic result before any store call is made.
    The store write runs as a separate task whose outcome nobody awaits;
    failures are logged and the local snapshot stays authoritative for the
    rest of the session.
    """

    def __init__(self, user_id: Optional[str], document_store: Optional[DocumentStore]):
        """Initialize the processor. Without a user or store, answers stay local."""
        self.user_id = user_id
        self.document_store = document_store
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of background writes still running."""
        return len(self._pending)

    def process(self, stats: StatsSnapshot, word: str, submitted_word: str) -> AnswerResult:
        """Score an answer and schedule its durable write.

        The write needs a running event loop; called from plain synchronous
        code the answer is only applied locally.
        """
        result = apply_answer(stats, word, submitted_word)
        answers_total.labels(result="correct" if result.correct else "incorrect").inc()

        if self.user_id is not None and self.document_store is not None:
            self._spawn(word, result.updated_stats[word])
        return result

    def _spawn(self, word: str, stat: WordStat) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, %r for user %s is kept local only", word, self.user_id)
            return
        task = loop.create_task(self._reconcile_quietly(word, stat))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reconcile_quietly(self, word: str, stat: WordStat) -> WriteOutcome:
        try:
            return await self.reconcile(word, stat)
        except Exception as e:
            logger.exception("Unexpected error while saving %r for user %s: %s", word, self.user_id, e)
            return WriteOutcome.FAILED

    async def reconcile(self, word: str, stat: WordStat) -> WriteOutcome:
        """Write one word's counters to its own slot in the user's document."""
        outcome = await write_with_fallback(
            self.document_store,
            self.user_id,
            (VOCABULARY_FIELD, word),
            encode_stat(stat),
            field=VOCABULARY_FIELD,
        )
        logger.debug("Saved %r for user %s: %s", word, self.user_id, outcome.value)
        return outcome

    async def drain(self) -> None:
        """Wait for every background write started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
