"""Unit tests for GamificationService (chemlab/services/gamification_service.py)"""
import pytest
from unittest.mock import AsyncMock, patch

from chemlab.db.connection import db
from chemlab.exceptions import AuthenticationError, ValidationError
from chemlab.services import GamificationService


@pytest.fixture
def service(fake_store):
    return GamificationService(db)


@pytest.fixture(autouse=True)
def bonus_policy():
    with patch('chemlab.gamification.streak_system.STREAK_BONUS_PER_DAY', 5):
        with patch('chemlab.gamification.streak_system.STREAK_BONUS_CAP', 50):
            yield


# ============================================================================
# Lesson Completion Tests
# ============================================================================

@pytest.mark.asyncio
async def test_complete_lesson_first_time(service, fake_store, learner):
    fake_store.add_achievement("first_lesson", {"type": "lessons_completed", "count": 1}, xp_reward=20)

    result = await service.complete_lesson(learner, "lesson-1", stars=3, is_first_completion=True)

    assert result["first_completion"] is True
    assert result["xp_awarded"] == 45
    assert result["streak"]["streak"] == 1
    assert [a["code"] for a in result["achievements_unlocked"]] == ["first_lesson"]

    progress = fake_store.progress[learner.user_id]
    assert progress["total_lessons_completed"] == 1
    assert progress["total_stars_earned"] == 3
    assert progress["total_xp"] == 65
    # One transaction for the whole activity
    assert fake_store.transactions_opened == 1


@pytest.mark.asyncio
async def test_complete_lesson_first_bonus_claimed_once(service, fake_store, learner):
    await service.complete_lesson(learner, "lesson-1", stars=2, is_first_completion=True)
    result = await service.complete_lesson(learner, "lesson-1", stars=2, is_first_completion=True)

    assert result["first_completion"] is False
    assert result["xp_awarded"] == 20
    assert fake_store.progress[learner.user_id]["total_xp"] == 35 + 20


@pytest.mark.asyncio
async def test_complete_lesson_repeat(service, fake_store, learner):
    result = await service.complete_lesson(learner, "lesson-1", stars=1)

    assert result["first_completion"] is False
    assert result["xp_awarded"] == 10


@pytest.mark.asyncio
async def test_complete_lesson_invalid_stars(service, fake_store, learner):
    with pytest.raises(ValidationError):
        await service.complete_lesson(learner, "lesson-1", stars=5)

    assert fake_store.ledger == []


@pytest.mark.asyncio
async def test_complete_lesson_rolls_back_on_failure(service, fake_store, learner):
    fake_store.add_achievement("first_lesson", {"type": "lessons_completed", "count": 1}, xp_reward=20)
    fake_store.fail_on = "update_learner_xp"

    with pytest.raises(RuntimeError):
        await service.complete_lesson(learner, "lesson-1", stars=3, is_first_completion=True)

    assert fake_store.ledger == []
    assert fake_store.unlocked == {}
    assert learner.user_id not in fake_store.progress


@pytest.mark.asyncio
async def test_complete_lesson_requires_identity(service, fake_store):
    with pytest.raises(AuthenticationError):
        await service.complete_lesson(None, "lesson-1", stars=3)


# ============================================================================
# Quiz Completion Tests
# ============================================================================

@pytest.mark.asyncio
async def test_complete_quiz_updates_streak_and_achievements(service, fake_store, learner):
    fake_store.add_achievement("perfect", {"type": "perfect_quizzes", "count": 1}, xp_reward=25)
    quiz_id = fake_store.add_quiz("Bảng tuần hoàn", [{"id": "q1", "correct_answer": 2}])

    result = await service.complete_quiz(learner, quiz_id, [{"questionId": "q1", "answer": 2}])

    assert result["xpAwarded"] == 50
    assert result["streak"]["streak"] == 1
    assert [a["code"] for a in result["achievementsUnlocked"]] == ["perfect"]
    assert fake_store.progress[learner.user_id]["total_xp"] == 75
    assert fake_store.transactions_opened == 1


@pytest.mark.asyncio
async def test_complete_quiz_notifies_after_commit(service, fake_store, learner):
    quiz_id = fake_store.add_quiz("Tự luận", [{"id": "e1", "question_type": "essay"}])

    with patch('chemlab.services.gamification_service.notify_pending_grade', AsyncMock()) as mock_notify:
        with patch('chemlab.quiz.grader.notify_pending_grade', AsyncMock()) as grader_notify:
            result = await service.complete_quiz(learner, quiz_id, [], essay_answers={"e1": "..."})

    assert result["status"] == "pending_grade"
    assert result["xpAwarded"] == 0
    mock_notify.assert_called_once()
    assert mock_notify.call_args.kwargs["attempt_id"] == result["attemptId"]
    # The grader leaves notification to the caller that owns the transaction
    grader_notify.assert_not_called()


@pytest.mark.asyncio
async def test_complete_quiz_review_only(service, fake_store, learner):
    quiz_id = fake_store.add_quiz("Ôn tập", [{"id": "q1", "correct_answer": 0}])

    result = await service.complete_quiz(learner, quiz_id, [{"questionId": "q1", "answer": 0}], review_only=True)

    assert result["streak"] is None
    assert result["achievementsUnlocked"] == []
    assert fake_store.progress == {}


@pytest.mark.asyncio
async def test_complete_quiz_duplicate_submission(service, fake_store, learner):
    quiz_id = fake_store.add_quiz("Ôn tập", [{"id": "q1", "correct_answer": 0}])
    answers = [{"questionId": "q1", "answer": 0}]

    await service.complete_quiz(learner, quiz_id, answers, submission_id="s-1")
    result = await service.complete_quiz(learner, quiz_id, answers, submission_id="s-1")

    assert result["duplicate"] is True
    assert result["streak"] is None
    assert fake_store.progress[learner.user_id]["total_quizzes_completed"] == 1
