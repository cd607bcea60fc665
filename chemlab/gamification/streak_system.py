"""
Daily Streak Tracking

One streak per learner, counting consecutive UTC calendar days with at least
one learning activity.

Transitions on an activity:
- already active today: nothing changes
- last active yesterday: streak + 1 and a streak bonus
- otherwise (never active, or a gap): streak restarts at 1
"""

from typing import Dict, Optional, Any
from datetime import date, timedelta
import logging

from chemlab.config import STREAK_BONUS_PER_DAY, STREAK_BONUS_CAP
from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import AuthenticationError
from chemlab.gamification.xp_system import award_xp
from chemlab.models.progress import XPSourceType
from chemlab.observability import metrics
from chemlab.utils.datetime_helpers import today_utc, to_date

logger = logging.getLogger(__name__)


def calculate_streak_bonus(streak: int) -> int:
    """Bonus XP for reaching ``streak`` consecutive days"""
    if streak <= 1:
        return 0
    return min(STREAK_BONUS_PER_DAY * streak, STREAK_BONUS_CAP)


def apply_streak_transition(
    current_streak: int,
    longest_streak: int,
    last_activity_date: Optional[date],
    today: date
) -> Dict[str, Any]:
    """
    Pure streak state machine

    Returns:
        {
            'current_streak': int,
            'longest_streak': int,
            'last_activity_date': date,
            'outcome': 'already_counted' | 'continued' | 'broken' | 'started',
            'streak_continued': bool,
            'streak_broken': bool,
            'changed': bool
        }
    """
    if last_activity_date == today:
        return {
            "current_streak": current_streak,
            "longest_streak": longest_streak,
            "last_activity_date": last_activity_date,
            "outcome": "already_counted",
            "streak_continued": False,
            "streak_broken": False,
            "changed": False,
        }

    if last_activity_date is not None and last_activity_date == today - timedelta(days=1):
        new_streak = current_streak + 1
        outcome = "continued"
    else:
        # First activity, a gap, or a clock that went backwards
        new_streak = 1
        outcome = "broken" if current_streak > 0 else "started"

    return {
        "current_streak": new_streak,
        "longest_streak": max(longest_streak, new_streak),
        "last_activity_date": today,
        "outcome": outcome,
        "streak_continued": outcome == "continued",
        "streak_broken": outcome == "broken",
        "changed": True,
    }


async def update_streak(
    user_id: str,
    activity_date: Optional[date] = None,
    conn=None
) -> Dict[str, Any]:
    """
    Record today's learning activity for the learner's streak

    Idempotent within one UTC day. A continued streak awards the bonus XP
    through the XP ledger in the same transaction (keyed by date so a retry
    never pays twice).

    Args:
        user_id: Verified learner ID
        activity_date: UTC date of the activity (defaults to today)
        conn: Join an open transaction instead of starting one

    Returns:
        {
            'success': bool,
            'streak': int,
            'longest_streak': int,
            'streak_continued': bool,
            'streak_broken': bool,
            'streak_bonus_xp': int
        }
    """
    if not user_id:
        raise AuthenticationError("Learner identity could not be established", operation="update_streak")

    today = activity_date or today_utc()
    bonus_xp = 0

    async with db.transaction(conn, operation="update_streak", user_id=user_id) as tx:
        progress = await queries.lock_learner_progress(tx, user_id)
        old_streak = progress["current_streak"]

        transition = apply_streak_transition(
            current_streak=old_streak,
            longest_streak=progress["longest_streak"],
            last_activity_date=to_date(progress["last_activity_date"]),
            today=today,
        )

        if transition["changed"]:
            await queries.update_learner_streak(
                tx,
                user_id,
                transition["current_streak"],
                transition["longest_streak"],
                transition["last_activity_date"],
            )

        if transition["streak_continued"]:
            bonus = calculate_streak_bonus(transition["current_streak"])
            if bonus > 0:
                xp_result = await award_xp(
                    user_id=user_id,
                    amount=bonus,
                    source_type=XPSourceType.STREAK_BONUS.value,
                    description=f"Chuỗi {transition['current_streak']} ngày học liên tiếp",
                    dedup_key=f"streak:{today.isoformat()}",
                    conn=tx,
                )
                bonus_xp = xp_result["xp_awarded"]

    metrics.streak_updates_total.labels(outcome=transition["outcome"]).inc()

    if transition["streak_broken"]:
        logger.info(
            f"User {user_id} streak broken. Was {old_streak}, "
            f"last activity {progress['last_activity_date']}"
        )
    elif transition["changed"]:
        logger.info(f"Updated streak for user {user_id}: {old_streak} → {transition['current_streak']} days")

    return {
        "success": True,
        "streak": transition["current_streak"],
        "longest_streak": transition["longest_streak"],
        "streak_continued": transition["streak_continued"],
        "streak_broken": transition["streak_broken"],
        "streak_bonus_xp": bonus_xp,
    }
