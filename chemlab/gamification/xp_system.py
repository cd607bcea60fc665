"""
XP and Leveling System

Manages XP awards and level calculations.

Leveling Curve:
- Level L starts at 50 * (L - 1)^2 cumulative XP
- Completing level L therefore takes 50 * L^2 cumulative XP
  (level 2 at 50 XP, level 3 at 200 XP, level 4 at 450 XP, ...)
- No level cap

XP Award Rules:
- Lesson completion: 10 XP per star, +15 XP the first time
- Quiz completion: 50 / 30 / 15 / 0 XP by percentage correct
- Daily streak continuation: see streak_system
- Achievement unlocks: per-achievement reward
- Admin adjustments may be negative; totals never drop below 0
"""

from typing import Dict, List, Optional, Any
from datetime import timedelta
from math import isqrt
import logging

from chemlab.config import LESSON_XP_PER_STAR, LESSON_FIRST_COMPLETION_BONUS
from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import AuthenticationError, ValidationError
from chemlab.models.progress import XPSourceType
from chemlab.observability import metrics
from chemlab.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

XP_PER_LEVEL_UNIT = 50


def level_threshold(level: int) -> int:
    """Cumulative XP at which ``level`` starts"""
    if level < 1:
        raise ValueError("level must be >= 1")
    return XP_PER_LEVEL_UNIT * (level - 1) ** 2


def calculate_level_from_xp(total_xp: int) -> Dict[str, int]:
    """
    Calculate level from total XP

    Returns:
        {
            'current_level': int,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_next_level': int
        }
    """
    total_xp = max(0, total_xp)

    # Largest L with 50 * (L - 1)^2 <= total_xp
    level = isqrt(total_xp // XP_PER_LEVEL_UNIT) + 1

    next_threshold = level_threshold(level + 1)

    return {
        "current_level": level,
        "xp_in_current_level": total_xp - level_threshold(level),
        "xp_to_next_level": next_threshold - total_xp,
        "total_xp_for_next_level": next_threshold,
    }


def replay_ledger(amounts: List[int]) -> int:
    """
    Total XP obtained by applying ledger amounts in order, flooring at 0
    after every entry (the same rule award_xp applies)
    """
    total = 0
    for amount in amounts:
        total = max(0, total + amount)
    return total


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise AuthenticationError("Learner identity could not be established", operation="award_xp")
    return user_id


def _parse_source_type(source_type: Any) -> XPSourceType:
    try:
        return XPSourceType(source_type)
    except ValueError:
        raise ValidationError(
            f"Unknown XP source type: {source_type}",
            field="source_type",
            value=source_type,
        )


async def award_xp(
    user_id: str,
    amount: int,
    source_type: str,
    source_id: Optional[str] = None,
    description: Optional[str] = None,
    dedup_key: Optional[str] = None,
    conn=None
) -> Dict[str, Any]:
    """
    Award (or deduct) XP and recompute the learner's level

    The ledger entry and the stats update happen in one transaction, under a
    row lock on the learner's progress, so concurrent awards serialize and a
    failure leaves neither visible.

    Args:
        user_id: Verified learner ID
        amount: Signed XP amount (negative for admin corrections)
        source_type: One of XPSourceType
        source_id: ID of the lesson/quiz/achievement that granted XP
        description: Human-readable description
        dedup_key: Idempotency key; a repeated key changes nothing
        conn: Join an open transaction instead of starting one

    Returns:
        {
            'success': bool,
            'xp_awarded': int,
            'total_xp': int,
            'old_level': int,
            'new_level': int,
            'leveled_up': bool,
            'xp_to_next_level': int,
            'duplicate': bool
        }
    """
    user_id = _require_user(user_id)
    source = _parse_source_type(source_type)
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValidationError("XP amount must be an integer", field="xp_amount", value=amount, user_id=user_id)

    async with db.transaction(conn, operation="award_xp", user_id=user_id) as tx:
        progress = await queries.lock_learner_progress(tx, user_id)
        old_total_xp = progress["total_xp"]
        old_level = calculate_level_from_xp(old_total_xp)["current_level"]

        # Log first: the ledger is the source of truth
        transaction_id = await queries.insert_xp_transaction(
            tx, user_id, amount, source.value, source_id, description, dedup_key
        )

        if transaction_id is None:
            logger.info(f"Duplicate XP award ignored for user {user_id} (dedup_key={dedup_key})")
            metrics.xp_transactions_total.labels(source_type=source.value, outcome="duplicate").inc()
            level_info = calculate_level_from_xp(old_total_xp)
            return {
                "success": True,
                "xp_awarded": 0,
                "total_xp": old_total_xp,
                "old_level": old_level,
                "new_level": old_level,
                "leveled_up": False,
                "xp_to_next_level": level_info["xp_to_next_level"],
                "duplicate": True,
            }

        new_total_xp = max(0, old_total_xp + amount)
        level_info = calculate_level_from_xp(new_total_xp)
        new_level = level_info["current_level"]
        leveled_up = new_level > old_level

        await queries.update_learner_xp(
            tx, user_id, new_total_xp, new_level, level_info["xp_to_next_level"]
        )

    metrics.xp_transactions_total.labels(source_type=source.value, outcome="recorded").inc()
    metrics.xp_awarded_total.labels(source_type=source.value).inc(max(0, amount))

    logger.info(
        f"Awarded {amount} XP to user {user_id} for {source.value}. "
        f"Total: {new_total_xp} XP, Level: {new_level}"
    )

    if leveled_up:
        metrics.level_ups_total.inc()
        logger.info(f"User {user_id} leveled up from {old_level} to {new_level}!")

    return {
        "success": True,
        "xp_awarded": new_total_xp - old_total_xp,
        "total_xp": new_total_xp,
        "old_level": old_level,
        "new_level": new_level,
        "leveled_up": leveled_up,
        "xp_to_next_level": level_info["xp_to_next_level"],
        "duplicate": False,
    }


async def get_learner_xp(user_id: str) -> Dict[str, Any]:
    """
    Get learner's current XP and level information

    Learners without any activity yet report the initial state.
    """
    user_id = _require_user(user_id)
    progress = await queries.get_learner_progress(user_id)
    total_xp = progress["total_xp"] if progress else 0
    level_info = calculate_level_from_xp(total_xp)

    return {
        "user_id": user_id,
        "total_xp": total_xp,
        "current_level": level_info["current_level"],
        "xp_to_next_level": level_info["xp_to_next_level"],
        "xp_in_current_level": level_info["xp_in_current_level"],
        "current_streak": progress["current_streak"] if progress else 0,
        "longest_streak": progress["longest_streak"] if progress else 0,
        "last_activity_date": progress["last_activity_date"] if progress else None,
    }


async def get_xp_history(user_id: str, days: int = 7, limit: int = 50) -> List[Dict[str, Any]]:
    """
    Get recent XP transaction history (newest first)

    Args:
        user_id: Learner ID
        days: Number of days of history to retrieve
        limit: Maximum number of transactions to read
    """
    transactions = await queries.get_xp_transactions(user_id, limit=limit)

    cutoff = now_utc() - timedelta(days=days)
    return [t for t in transactions if t["created_at"] >= cutoff]


async def rebuild_progress_from_ledger(user_id: str, conn=None) -> Dict[str, Any]:
    """
    Recompute the cached XP total and level by replaying the ledger

    Returns:
        {'total_xp': int, 'current_level': int, 'corrected': bool}
    """
    user_id = _require_user(user_id)

    async with db.transaction(conn, operation="rebuild_progress_from_ledger", user_id=user_id) as tx:
        progress = await queries.lock_learner_progress(tx, user_id)
        amounts = await queries.get_ledger_amounts(tx, user_id)
        total_xp = replay_ledger(amounts)
        level_info = calculate_level_from_xp(total_xp)
        corrected = (
            total_xp != progress["total_xp"]
            or level_info["current_level"] != progress["current_level"]
        )
        if corrected:
            await queries.update_learner_xp(
                tx, user_id, total_xp, level_info["current_level"], level_info["xp_to_next_level"]
            )

    if corrected:
        logger.warning(
            f"Reconciled XP for user {user_id}: cached {progress['total_xp']} -> ledger {total_xp}"
        )

    return {
        "total_xp": total_xp,
        "current_level": level_info["current_level"],
        "corrected": corrected,
    }


def calculate_lesson_xp(stars: int, is_first_completion: bool) -> int:
    """XP for completing a lesson with 1-3 stars"""
    if stars < 1 or stars > 3:
        raise ValidationError("Stars must be between 1 and 3", field="stars", value=stars)

    amount = stars * LESSON_XP_PER_STAR
    if is_first_completion:
        amount += LESSON_FIRST_COMPLETION_BONUS
    return amount
