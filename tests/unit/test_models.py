"""Unit tests for Pydantic models"""
import pytest
from datetime import datetime, timezone
from pydantic import ValidationError

from chemlab.models.achievement import Achievement, AchievementCriteria, StudentAchievement
from chemlab.models.progress import LearnerProgress, XPSourceType, XPTransaction
from chemlab.models.quiz import AttemptStatus, QuestionType, QuizAttempt, QuizQuestion, SubmittedAnswer
from chemlab.models.shop import ShopItem, ShopItemCategory


def test_learner_progress_defaults():
    """A new learner starts at level 1 with nothing earned"""
    progress = LearnerProgress(user_id="u1")

    assert progress.total_xp == 0
    assert progress.current_level == 1
    assert progress.xp_to_next_level == 50
    assert progress.last_activity_date is None


@pytest.mark.parametrize("field,value", [
    ("total_xp", -1),
    ("current_level", 0),
    ("current_streak", -3),
])
def test_learner_progress_rejects_out_of_range(field, value):
    with pytest.raises(ValidationError):
        LearnerProgress(user_id="u1", **{field: value})


def test_xp_transaction_source_type():
    transaction = XPTransaction(user_id="u1", xp_amount=-20, source_type="admin_adjustment")

    assert transaction.source_type == XPSourceType.ADMIN_ADJUSTMENT
    assert transaction.xp_amount == -20


def test_xp_transaction_unknown_source():
    with pytest.raises(ValidationError):
        XPTransaction(user_id="u1", xp_amount=10, source_type="meal_logged")


def test_achievement_criteria():
    criteria = AchievementCriteria(type="perfect_quizzes", count=3)
    assert criteria.count == 3

    with pytest.raises(ValidationError):
        AchievementCriteria(type="perfect_quizzes", count=-1)


def test_achievement_reward_non_negative():
    with pytest.raises(ValidationError):
        Achievement(id="a1", code="x", title="X", criteria={}, xp_reward=-5)


def test_student_achievement():
    unlocked = StudentAchievement(user_id="u1", achievement_id="a1", unlocked_at=datetime.now(timezone.utc))
    assert unlocked.notified is False


def test_quiz_question_is_essay():
    essay = QuizQuestion(id="e1", question="Giải thích", question_type="essay")
    choice = QuizQuestion(id="q1", question="Chọn", correct_answer=2)

    assert essay.is_essay is True
    assert choice.is_essay is False
    assert choice.question_type == QuestionType.MULTIPLE_CHOICE


def test_submitted_answer_alias():
    answer = SubmittedAnswer.model_validate({"questionId": "q1", "answer": -1})
    assert answer.question_id == "q1"


def test_quiz_attempt_requires_questions():
    with pytest.raises(ValidationError):
        QuizAttempt(id="t1", quiz_id="z1", user_id="u1", score=0, total_questions=0, status="completed")


def test_quiz_attempt_status():
    attempt = QuizAttempt(
        id="t1", quiz_id="z1", user_id="u1", score=2, total_questions=3,
        user_answers={"q1": 1, "q2": None, "e1": "..."}, status="pending_grade",
    )

    assert attempt.status == AttemptStatus.PENDING_GRADE


def test_shop_item_defaults():
    item = ShopItem(id="s1", name="Mũ", xp_cost=10)

    assert item.category == ShopItemCategory.OTHER
    assert item.is_available is True
    assert item.stock_limit is None


def test_shop_item_rejects_negative_cost():
    with pytest.raises(ValidationError):
        ShopItem(id="s1", name="Mũ", xp_cost=-1)
