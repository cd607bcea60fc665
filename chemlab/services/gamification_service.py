"""
GamificationService - Learning Activity Orchestration

Runs every progression effect of one learning activity (XP, counters, streak,
achievements) inside a single transaction, so an activity is either fully
applied or not applied at all.
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime

from chemlab.auth import LearnerIdentity, require_identity
from chemlab.db import queries
from chemlab.gamification import (
    award_xp,
    update_streak,
    check_and_award_achievements,
)
from chemlab.gamification.xp_system import calculate_lesson_xp
from chemlab.models.progress import XPSourceType
from chemlab.models.quiz import AttemptStatus
from chemlab.quiz.grader import submit_quiz
from chemlab.quiz.notifications import notify_pending_grade

logger = logging.getLogger(__name__)


class GamificationService:
    """
    Service for learning activity completion.

    Responsibilities:
    - Lesson completion: star XP, first-completion bonus, lesson counters
    - Quiz completion: grading, quiz XP, pending-grade notification
    - Streak update and achievement evaluation after each activity
    """

    def __init__(self, db_connection):
        """
        Initialize GamificationService.

        Args:
            db_connection: Database instance (chemlab.db.connection.db)
        """
        self.db = db_connection
        logger.debug("GamificationService initialized")

    async def complete_lesson(
        self,
        identity: Optional[LearnerIdentity],
        lesson_id: str,
        stars: int,
        is_first_completion: bool = False
    ) -> Dict[str, Any]:
        """
        Apply all gamification for a completed lesson.

        The first-completion bonus is recorded under ``lesson:<lesson_id>``
        in the ledger; a second claim for the same lesson earns star XP only.

        Returns:
            {
                'xp_awarded': int,
                'total_xp': int,
                'leveled_up': bool,
                'new_level': int,
                'first_completion': bool,
                'streak': {...},            # update_streak result
                'achievements_unlocked': [...]
            }
        """
        user_id = require_identity(identity, operation="complete_lesson")
        star_xp = calculate_lesson_xp(stars, is_first_completion=False)
        bonus_xp = calculate_lesson_xp(stars, is_first_completion=True) - star_xp

        async with self.db.transaction(operation="complete_lesson", user_id=user_id) as tx:
            first_completion = False
            xp_result = None

            if is_first_completion:
                xp_result = await award_xp(
                    user_id=user_id,
                    amount=star_xp + bonus_xp,
                    source_type=XPSourceType.LESSON_COMPLETE.value,
                    source_id=lesson_id,
                    description=f"Hoàn thành bài học {stars} sao (lần đầu)",
                    dedup_key=f"lesson:{lesson_id}",
                    conn=tx,
                )
                first_completion = not xp_result["duplicate"]

            if not first_completion:
                xp_result = await award_xp(
                    user_id=user_id,
                    amount=star_xp,
                    source_type=XPSourceType.LESSON_COMPLETE.value,
                    source_id=lesson_id,
                    description=f"Hoàn thành bài học {stars} sao",
                    conn=tx,
                )

            await queries.increment_lesson_stats(tx, user_id, stars)
            streak_result = await update_streak(user_id, conn=tx)
            achievement_result = await check_and_award_achievements(user_id, conn=tx)

        logger.info(
            f"Lesson {lesson_id} completed by user {user_id}: {stars} stars, "
            f"xp={xp_result['xp_awarded']}, streak={streak_result['streak']}, "
            f"achievements={achievement_result['unlocked_count']}"
        )

        return {
            "xp_awarded": xp_result["xp_awarded"],
            "total_xp": xp_result["total_xp"],
            "leveled_up": xp_result["leveled_up"],
            "new_level": xp_result["new_level"],
            "first_completion": first_completion,
            "streak": streak_result,
            "achievements_unlocked": achievement_result["achievements"],
        }

    async def complete_quiz(
        self,
        identity: Optional[LearnerIdentity],
        quiz_id: str,
        answers: Any,
        start_time: Optional[datetime] = None,
        essay_answers: Optional[Dict[str, str]] = None,
        review_only: bool = False,
        submission_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Grade a quiz and apply its gamification.

        Review-only and duplicate submissions grade without touching the
        streak or achievements. Admins are notified about essay attempts
        only after everything has committed.

        Returns:
            submit_quiz response plus 'streak' and 'achievementsUnlocked'
        """
        user_id = require_identity(identity, operation="complete_quiz")

        streak_result = None
        achievements = []

        async with self.db.transaction(operation="complete_quiz", user_id=user_id) as tx:
            result = await submit_quiz(
                identity,
                quiz_id,
                answers,
                start_time=start_time,
                essay_answers=essay_answers,
                review_only=review_only,
                submission_id=submission_id,
                conn=tx,
            )

            new_attempt = not review_only and not result["duplicate"]
            if new_attempt:
                streak_result = await update_streak(user_id, conn=tx)
                achievement_result = await check_and_award_achievements(user_id, conn=tx)
                achievements = achievement_result["achievements"]

        if new_attempt and result["status"] == AttemptStatus.PENDING_GRADE.value:
            await notify_pending_grade(
                attempt_id=result["attemptId"],
                quiz_title=result["quizTitle"] or "Unknown Quiz",
                student_id=user_id,
                student_email=identity.email,
            )

        result["streak"] = streak_result
        result["achievementsUnlocked"] = achievements
        return result
