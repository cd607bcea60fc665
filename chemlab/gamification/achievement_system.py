"""
Achievement System

Evaluates the active achievement catalog against a learner's statistics and
unlocks every achievement whose rule is satisfied.

Rules are stored as JSON criteria, e.g.:
    {"type": "lessons_completed", "count": 10}
    {"type": "streak", "count": 7}
    {"type": "level", "count": 5}

Unlocking is insert-if-absent on (learner, achievement), so an achievement is
unlocked, rewarded and reported at most once per learner.
"""

from typing import Dict, List, Optional, Any
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import AuthenticationError
from chemlab.gamification.xp_system import award_xp, calculate_level_from_xp
from chemlab.models.achievement import AchievementCriteria, AchievementRuleType
from chemlab.models.progress import XPSourceType
from chemlab.observability import metrics

logger = logging.getLogger(__name__)

# Statistic each rule type reads from the learner snapshot
RULE_STATISTICS = {
    AchievementRuleType.LESSONS_COMPLETED: "total_lessons_completed",
    AchievementRuleType.QUIZZES_COMPLETED: "total_quizzes_completed",
    AchievementRuleType.STARS_EARNED: "total_stars_earned",
    AchievementRuleType.STREAK: "longest_streak",
    AchievementRuleType.LEVEL: "current_level",
    AchievementRuleType.TOTAL_XP: "total_xp",
    AchievementRuleType.PERFECT_QUIZZES: "perfect_quizzes",
}


def parse_criteria(raw: Any) -> Optional[AchievementCriteria]:
    """Parse stored criteria JSON; None if the rule is malformed or unknown"""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Achievement criteria is not valid JSON: {raw!r}")
            return None

    try:
        return AchievementCriteria.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"Unsupported achievement criteria {raw!r}: {e.error_count()} error(s)")
        return None


def rule_progress(criteria: AchievementCriteria, stats: Dict[str, Any]) -> int:
    """Current value of the statistic a rule tracks"""
    return int(stats.get(RULE_STATISTICS[criteria.type]) or 0)


def evaluate_rule(raw_criteria: Any, stats: Dict[str, Any]) -> bool:
    """True if the learner statistics satisfy the unlock rule"""
    criteria = parse_criteria(raw_criteria)
    if criteria is None:
        return False
    return rule_progress(criteria, stats) >= criteria.count


def build_statistics(progress: Dict[str, Any], perfect_quizzes: int) -> Dict[str, Any]:
    """Snapshot of everything rules can reference"""
    stats = dict(progress)
    # Level is derived from XP, never trusted from the cached column
    stats["current_level"] = calculate_level_from_xp(progress["total_xp"])["current_level"]
    stats["longest_streak"] = max(progress.get("longest_streak") or 0, progress.get("current_streak") or 0)
    stats["perfect_quizzes"] = perfect_quizzes
    return stats


async def check_and_award_achievements(user_id: str, conn=None) -> Dict[str, Any]:
    """
    Unlock every active achievement the learner now qualifies for

    Args:
        user_id: Verified learner ID
        conn: Join an open transaction instead of starting one

    Returns:
        {
            'success': bool,
            'unlocked_count': int,
            'achievements': [
                {'id': str, 'code': str, 'title': str, 'icon': str, 'xp_reward': int}
            ]
        }
    """
    if not user_id:
        raise AuthenticationError(
            "Learner identity could not be established", operation="check_and_award_achievements"
        )

    newly_unlocked = []

    async with db.transaction(conn, operation="check_and_award_achievements", user_id=user_id) as tx:
        progress = await queries.lock_learner_progress(tx, user_id)
        perfect_quizzes = await queries.count_perfect_quizzes(tx, user_id)
        stats = build_statistics(progress, perfect_quizzes)

        catalog = await queries.get_active_achievements(tx)
        unlocked_ids = await queries.get_unlocked_achievement_ids(tx, user_id)

        for achievement in catalog:
            achievement_id = str(achievement["id"])
            if achievement_id in unlocked_ids:
                continue

            if not evaluate_rule(achievement["criteria"], stats):
                continue

            inserted = await queries.insert_student_achievement(tx, user_id, achievement_id)
            if not inserted:
                # Unlocked concurrently since we read the unlocked set
                continue

            xp_reward = achievement.get("xp_reward") or 0
            if xp_reward > 0:
                await award_xp(
                    user_id=user_id,
                    amount=xp_reward,
                    source_type=XPSourceType.ACHIEVEMENT.value,
                    source_id=achievement_id,
                    description=f"Thành tích: {achievement['title']}",
                    dedup_key=f"achievement:{achievement_id}",
                    conn=tx,
                )

            newly_unlocked.append({
                "id": achievement_id,
                "code": achievement["code"],
                "title": achievement["title"],
                "icon": achievement.get("icon", ""),
                "xp_reward": xp_reward,
            })

    for unlocked in newly_unlocked:
        metrics.achievements_unlocked_total.labels(code=unlocked["code"]).inc()
        logger.info(
            f"User {user_id} unlocked achievement: {unlocked['code']} "
            f"({unlocked['title']}) +{unlocked['xp_reward']} XP"
        )

    return {
        "success": True,
        "unlocked_count": len(newly_unlocked),
        "achievements": newly_unlocked,
    }


async def get_learner_achievements(user_id: str, include_locked: bool = False) -> Dict[str, Any]:
    """
    Get learner's achievements, optionally with progress toward locked ones

    Returns:
        {
            'unlocked': [...],
            'locked': [...] (if include_locked=True),
            'total_unlocked': int,
            'total_achievements': int,
            'total_xp_from_achievements': int
        }
    """
    if not user_id:
        raise AuthenticationError("Learner identity could not be established", operation="get_learner_achievements")

    unlocked = await queries.get_student_achievements(user_id)

    async with db.connection() as conn:
        catalog = await queries.get_active_achievements(conn)
        perfect_quizzes = await queries.count_perfect_quizzes(conn, user_id)

    result = {
        "unlocked": unlocked,
        "total_unlocked": len(unlocked),
        "total_achievements": len(catalog),
        "total_xp_from_achievements": sum(a.get("xp_reward") or 0 for a in unlocked),
    }

    if include_locked:
        progress = await queries.get_learner_progress(user_id) or {"total_xp": 0}
        stats = build_statistics(progress, perfect_quizzes)
        unlocked_ids = {str(a["achievement_id"]) for a in unlocked}

        locked = []
        for achievement in catalog:
            if str(achievement["id"]) in unlocked_ids:
                continue
            criteria = parse_criteria(achievement["criteria"])
            if criteria is None:
                continue
            current = rule_progress(criteria, stats)
            locked.append({
                "achievement_id": str(achievement["id"]),
                "code": achievement["code"],
                "title": achievement["title"],
                "description": achievement.get("description", ""),
                "icon": achievement.get("icon", ""),
                "xp_reward": achievement.get("xp_reward") or 0,
                "progress": min(current, criteria.count),
                "target": criteria.count,
            })
        result["locked"] = locked

    return result
