"""Tests for answer processing and background saves."""
from unittest.mock import AsyncMock, patch

import pytest

from jquiz.models.quiz_models import WordStat, WriteOutcome
from jquiz.services.answer_processor import AnswerProcessor, apply_answer
from jquiz.services.document_store import PathNotFoundError, StoreError


@pytest.fixture
def store() -> AsyncMock:
    """Mock document store whose writes succeed."""
    store = AsyncMock()
    store.update_field = AsyncMock(return_value=None)
    store.merge = AsyncMock(return_value=None)
    return store


def test_correct_answer_resets_failures():
    """Test the single-word example from zero successes and one failure."""
    stats = {"水": WordStat(successes=0, attempts=1)}

    result = apply_answer(stats, "水", "水")

    assert result.correct is True
    assert result.score_delta == 1
    assert result.updated_stats["水"] == WordStat(successes=1, attempts=1)
    assert result.updated_stats["水"].failures == 0


def test_wrong_answer_adds_failure():
    """Test that a wrong answer keeps successes and adds a failure."""
    stats = {"火": WordStat(successes=2, attempts=3)}

    result = apply_answer(stats, "火", "水")

    assert result.correct is False
    assert result.score_delta == 0
    assert result.updated_stats["火"] == WordStat(successes=2, attempts=4)


def test_first_answer_creates_stat():
    """Test that an unseen word gets its first counters."""
    assert apply_answer({}, "木", "木").updated_stats == {"木": WordStat(successes=1, attempts=1)}
    assert apply_answer({}, "木", "金").updated_stats == {"木": WordStat(successes=0, attempts=1)}


def test_caller_snapshot_is_not_modified():
    """Test that the returned snapshot is a copy."""
    stats = {"水": WordStat(successes=1, attempts=2), "火": WordStat(successes=0, attempts=1)}
    before = dict(stats)

    result = apply_answer(stats, "水", "火")

    assert stats == before
    assert result.updated_stats is not stats
    assert result.updated_stats["火"] == stats["火"]


def test_attempts_invariant_over_many_answers(words, rng):
    """Test attempts == successes + failures after any answer sequence."""
    stats = {}
    for _ in range(200):
        word = rng.choice(words).word
        submitted = word if rng.random() < 0.5 else rng.choice(words).word
        stats = apply_answer(stats, word, submitted).updated_stats
        stat = stats[word]
        assert stat.failures >= 0
        assert stat.attempts == stat.successes + stat.failures


def test_repeated_correct_answers_never_decrease_successes():
    """Test that correct answers only ever add successes."""
    stats = {"水": WordStat(successes=0, attempts=3)}
    previous = 0
    for _ in range(5):
        stats = apply_answer(stats, "水", "水").updated_stats
        assert stats["水"].successes > previous
        assert stats["水"].failures == 0
        previous = stats["水"].successes


@pytest.mark.asyncio
async def test_process_writes_word_slot_in_background(store):
    """Test that the counters are saved to the word's own slot."""
    processor = AnswerProcessor("user-1", store)

    result = processor.process({"水": WordStat(successes=0, attempts=1)}, "水", "水")
    assert result.correct is True
    await processor.drain()

    store.update_field.assert_awaited_once_with("user-1", ("vocabulary", "水"), {"s": 1, "f": 0})
    store.merge.assert_not_awaited()
    assert processor.pending == 0


@pytest.mark.asyncio
async def test_process_returns_before_the_store_is_called(store):
    """Test that the optimistic result does not wait for the store."""
    processor = AnswerProcessor("user-1", store)

    processor.process({}, "水", "火")

    store.update_field.assert_not_awaited()
    assert processor.pending == 1
    await processor.drain()
    store.update_field.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_parent_falls_back_to_merge(store):
    """Test that a missing vocabulary map is created by a merge."""
    store.update_field.side_effect = PathNotFoundError("user-1", ("vocabulary", "水"))
    processor = AnswerProcessor("user-1", store)

    outcome = await processor.reconcile("水", WordStat(successes=0, attempts=1))

    assert outcome == WriteOutcome.FALLBACK_COMMITTED
    store.merge.assert_awaited_once_with("user-1", {"vocabulary": {"水": {"s": 0, "f": 1}}})


@pytest.mark.asyncio
async def test_other_failures_do_not_fall_back(store):
    """Test that only a missing path leads to the merge."""
    store.update_field.side_effect = StoreError("connection refused")
    processor = AnswerProcessor("user-1", store)

    outcome = await processor.reconcile("水", WordStat(successes=1, attempts=1))

    assert outcome == WriteOutcome.FAILED
    store.merge.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_fallback_is_reported(store):
    """Test that a failing merge ends in FAILED."""
    store.update_field.side_effect = PathNotFoundError("user-1", ("vocabulary", "水"))
    store.merge.side_effect = StoreError("disk full")
    processor = AnswerProcessor("user-1", store)

    outcome = await processor.reconcile("水", WordStat(successes=1, attempts=1))

    assert outcome == WriteOutcome.FAILED
    store.merge.assert_awaited_once()


@pytest.mark.asyncio
async def test_background_errors_are_swallowed(store):
    """Test that an unexpected error never reaches the caller."""
    store.update_field.side_effect = RuntimeError("boom")
    processor = AnswerProcessor("user-1", store)

    result = processor.process({}, "水", "水")
    await processor.drain()

    assert result.updated_stats["水"] == WordStat(successes=1, attempts=1)
    assert processor.pending == 0


@pytest.mark.asyncio
async def test_answers_stay_local_without_a_user(store):
    """Test that nothing is written when no user is known."""
    processor = AnswerProcessor(None, store)

    result = processor.process({}, "水", "水")
    await processor.drain()

    assert result.correct is True
    store.update_field.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_counts_answers(store):
    """Test that every processed answer is counted."""
    processor = AnswerProcessor("user-1", store)
    with patch("jquiz.services.answer_processor.answers_total") as answers_total:
        processor.process({}, "水", "水")
        processor.process({}, "水", "火")
        await processor.drain()

    answers_total.labels.assert_any_call(result="correct")
    answers_total.labels.assert_any_call(result="incorrect")


@pytest.mark.asyncio
async def test_writes_for_different_words_keep_each_other(document_store):
    """Test that saving one word does not clobber another word's slot."""
    await document_store.merge("user-1", {"vocabulary": {"水": {"s": 3, "f": 0}}, "settings": {"themeIndex": 2}})
    processor = AnswerProcessor("user-1", document_store)

    processor.process({}, "火", "火")
    await processor.drain()

    document = await document_store.get("user-1")
    assert document["vocabulary"] == {"水": {"s": 3, "f": 0}, "火": {"s": 1, "f": 0}}
    assert document["settings"] == {"themeIndex": 2}


def test_process_without_event_loop_stays_local(store):
    """Test that synchronous callers get the result without a store write."""
    processor = AnswerProcessor("user-1", store)

    result = processor.process({}, "水", "水")

    assert result.updated_stats["水"] == WordStat(successes=1, attempts=1)
    assert processor.pending == 0
    store.update_field.assert_not_called()
