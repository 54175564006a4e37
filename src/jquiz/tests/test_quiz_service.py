"""Tests for the quiz session flow."""
from unittest.mock import AsyncMock

import pytest

from jquiz.models.quiz_models import QuizSession, WordRecord, WordStat
from jquiz.services.answer_processor import AnswerProcessor
from jquiz.services.queue_builder import QueueBuilder
from jquiz.services.quiz_service import (
    AnswerAlreadySubmittedError,
    NotEnoughWordsError,
    QuizService,
)


@pytest.fixture
def service(rng) -> QuizService:
    """Quiz service with a seeded generator."""
    return QuizService(
        queue_builder=QueueBuilder(mastery_threshold=7, failure_weight=5, new_word_score=2, rng=rng),
        min_words=4,
        distractor_count=3,
        rng=rng,
    )


@pytest.fixture
def processor() -> AnswerProcessor:
    """Answer processor that keeps answers local."""
    return AnswerProcessor(None, None)


def test_start_needs_enough_words(service, make_word):
    """Test that fewer than four distinct words are refused."""
    words = [make_word() for _ in range(3)]

    with pytest.raises(NotEnoughWordsError, match="Need at least 4 words loaded!"):
        service.start_session(words, {})


def test_duplicates_do_not_count_towards_minimum(service, make_word):
    """Test that repeated words count once."""
    word = make_word()
    words = [word, word, make_word(), make_word()]

    with pytest.raises(NotEnoughWordsError):
        service.start_session(words, {})


def test_start_session(service, words):
    """Test the first question of a new session."""
    session = service.start_session(words, {}, session_size=5)

    assert len(session.queue) == 5
    assert session.index == 0
    assert session.score == 0
    assert not session.is_answered
    assert session.current in session.options


def test_options_hold_target_and_distinct_distractors(service, words):
    """Test that every question offers four different words."""
    for target in words:
        options = service.build_options(target, words)

        assert len(options) == 4
        assert len({o.word for o in options}) == 4
        assert target in options


def test_start_with_everything_mastered(service, words):
    """Test that a session without eligible words is already finished."""
    stats = {w.word: WordStat(successes=7, attempts=7) for w in words}

    session = service.start_session(words, stats)

    assert session.is_finished
    assert session.current is None
    assert session.options == ()


@pytest.mark.asyncio
async def test_answer_correct(service, words, processor):
    """Test that a correct answer adds to the score."""
    session = service.start_session(words, {}, session_size=3)

    answered, result = service.answer(session, session.current, {}, processor)

    assert result.correct is True
    assert answered.score == 1
    assert answered.selected == session.current
    assert answered.is_answered
    assert session.score == 0
    assert result.updated_stats[session.current.word] == WordStat(successes=1, attempts=1)


@pytest.mark.asyncio
async def test_answer_wrong(service, words, processor):
    """Test that a wrong answer leaves the score alone."""
    session = service.start_session(words, {}, session_size=3)
    wrong = next(o for o in session.options if o != session.current)

    answered, result = service.answer(session, wrong, {}, processor)

    assert result.correct is False
    assert answered.score == 0
    assert result.updated_stats[session.current.word] == WordStat(successes=0, attempts=1)


@pytest.mark.asyncio
async def test_answer_twice_is_rejected(service, words, processor):
    """Test that a question only takes one answer."""
    session = service.start_session(words, {}, session_size=3)
    answered, _ = service.answer(session, session.current, {}, processor)

    with pytest.raises(AnswerAlreadySubmittedError):
        service.answer(answered, answered.current, {}, processor)


@pytest.mark.asyncio
async def test_answer_schedules_save():
    """Test that answering goes through the processor's background save."""
    store = AsyncMock()
    processor = AnswerProcessor("user-1", store)
    service = QuizService(min_words=4, distractor_count=3)
    words = [WordRecord(w, w.lower()) for w in "ABCDE"]
    session = service.start_session(words, {}, session_size=1)

    service.answer(session, session.current, {}, processor)
    await processor.drain()

    store.update_field.assert_awaited_once_with("user-1", ("vocabulary", session.current.word), {"s": 1, "f": 0})


@pytest.mark.asyncio
async def test_full_session(service, words, processor):
    """Test playing a session to the end."""
    stats = {}
    session = service.start_session(words, stats, session_size=4)
    seen = []

    while not session.is_finished:
        seen.append(session.current)
        session, result = service.answer(session, session.current, stats, processor)
        stats = result.updated_stats
        session = service.advance(session, words)

    assert len(seen) == 4
    assert len(set(seen)) == 4
    assert session.score == 4
    assert session.options == ()
    assert service.result_percentage(session) == 100
    assert all(stats[w.word] == WordStat(successes=1, attempts=1) for w in seen)


def test_advance_clears_answer(service, words, processor):
    """Test that moving on resets the selection and draws new options."""
    session = QuizSession(queue=tuple(words[:2]), selected=words[0], score=1)

    next_session = service.advance(session, words)

    assert next_session.index == 1
    assert next_session.selected is None
    assert next_session.score == 1
    assert words[1] in next_session.options


def test_result_percentage():
    """Test rounding of the final score."""
    session = QuizSession(queue=tuple(range(3)), index=3, score=2)

    assert QuizService.result_percentage(session) == 67
    assert QuizService.result_percentage(QuizSession(queue=())) == 0
