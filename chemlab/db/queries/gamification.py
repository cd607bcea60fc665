"""Gamification database queries

Functions taking ``conn`` run inside the caller's transaction and never
commit; the rest open their own pooled connection and are read-only.
"""
import logging
from datetime import date
from typing import Optional
from chemlab.db.connection import db

logger = logging.getLogger(__name__)

PROGRESS_COLUMNS = """
    user_id, total_xp, current_level, xp_to_next_level,
    current_streak, longest_streak, last_activity_date, streak_freeze_count,
    total_lessons_completed, total_stars_earned, total_quizzes_completed
"""


# ==========================================
# Learner Progress
# ==========================================

async def lock_learner_progress(conn, user_id: str) -> dict:
    """
    Get the learner's progress row, creating it on first activity, and lock
    it until the surrounding transaction ends.

    The row lock serializes concurrent XP/streak/achievement updates for the
    same learner; other learners are not affected.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO student_gamification (user_id)
            VALUES (%s)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (user_id,)
        )
        await cur.execute(
            f"""
            SELECT {PROGRESS_COLUMNS}
            FROM student_gamification
            WHERE user_id = %s
            FOR UPDATE
            """,
            (user_id,)
        )
        row = await cur.fetchone()
        return dict(row)


async def get_learner_progress(user_id: str) -> Optional[dict]:
    """Get learner progress without locking (None if the learner has no activity yet)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {PROGRESS_COLUMNS}
                FROM student_gamification
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def update_learner_xp(
    conn,
    user_id: str,
    total_xp: int,
    current_level: int,
    xp_to_next_level: int
) -> None:
    """Write recomputed XP/level columns"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE student_gamification
            SET total_xp = %s,
                current_level = %s,
                xp_to_next_level = %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = %s
            """,
            (total_xp, current_level, xp_to_next_level, user_id)
        )


async def update_learner_streak(
    conn,
    user_id: str,
    current_streak: int,
    longest_streak: int,
    last_activity_date: date
) -> None:
    """Write streak state"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE student_gamification
            SET current_streak = %s,
                longest_streak = %s,
                last_activity_date = %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = %s
            """,
            (current_streak, longest_streak, last_activity_date, user_id)
        )


async def increment_lesson_stats(conn, user_id: str, stars: int) -> None:
    """Atomically count a completed lesson and its stars"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE student_gamification
            SET total_lessons_completed = total_lessons_completed + 1,
                total_stars_earned = total_stars_earned + %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = %s
            """,
            (stars, user_id)
        )


async def increment_quiz_stats(conn, user_id: str) -> None:
    """Atomically count a completed quiz"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE student_gamification
            SET total_quizzes_completed = total_quizzes_completed + 1,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = %s
            """,
            (user_id,)
        )


async def count_perfect_quizzes(conn, user_id: str) -> int:
    """
    Count completed attempts with every multiple-choice question correct

    Judged on the score recorded at submission; essay points added by
    grading never make an attempt perfect.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT COUNT(*) AS count
            FROM quiz_attempts
            WHERE user_id = %s
              AND status = 'completed'
              AND gradable_questions > 0
              AND mc_score >= gradable_questions
            """,
            (user_id,)
        )
        row = await cur.fetchone()
        return row["count"] if row else 0


# ==========================================
# XP Ledger
# ==========================================

async def insert_xp_transaction(
    conn,
    user_id: str,
    amount: int,
    source_type: str,
    source_id: Optional[str],
    description: Optional[str],
    dedup_key: Optional[str] = None
) -> Optional[str]:
    """
    Append an XP transaction

    Returns:
        Transaction ID, or None if ``dedup_key`` was already used by this learner
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO xp_transactions (user_id, xp_amount, source_type, source_id, description, dedup_key)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, dedup_key) DO NOTHING
            RETURNING id
            """,
            (user_id, amount, source_type, source_id, description, dedup_key)
        )
        result = await cur.fetchone()
        return str(result["id"]) if result else None


async def get_xp_transactions(user_id: str, limit: int = 50) -> list[dict]:
    """
    Get recent XP transactions for a learner

    Returns:
        List of transactions ordered by created_at DESC
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id::text AS id, user_id::text AS user_id, xp_amount, source_type,
                       source_id, description, dedup_key, created_at
                FROM xp_transactions
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (user_id, limit)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


async def get_ledger_amounts(conn, user_id: str) -> list[int]:
    """Every XP amount for a learner, oldest first (for reconciliation)"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT xp_amount
            FROM xp_transactions
            WHERE user_id = %s
            ORDER BY created_at ASC, id ASC
            """,
            (user_id,)
        )
        rows = await cur.fetchall()
        return [row["xp_amount"] for row in rows]


# ==========================================
# Achievements
# ==========================================

async def get_active_achievements(conn) -> list[dict]:
    """Active achievement catalog in display order"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT id::text AS id, code, title, description, icon, category, criteria, xp_reward, is_active, order_index
            FROM achievements
            WHERE is_active = TRUE
            ORDER BY order_index
            """
        )
        rows = await cur.fetchall()
        return [dict(row) for row in rows]


async def get_unlocked_achievement_ids(conn, user_id: str) -> set[str]:
    """IDs of achievements the learner already unlocked"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT achievement_id
            FROM student_achievements
            WHERE user_id = %s
            """,
            (user_id,)
        )
        rows = await cur.fetchall()
        return {str(row["achievement_id"]) for row in rows}


async def insert_student_achievement(conn, user_id: str, achievement_id: str) -> bool:
    """
    Unlock an achievement for a learner

    Returns True if unlocked (new), False if already unlocked
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO student_achievements (user_id, achievement_id)
            VALUES (%s, %s)
            ON CONFLICT (user_id, achievement_id) DO NOTHING
            RETURNING id
            """,
            (user_id, achievement_id)
        )
        result = await cur.fetchone()
        return result is not None


async def get_student_achievements(user_id: str) -> list[dict]:
    """Learner's unlocked achievements, most recent first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT a.id::text AS achievement_id, a.code, a.title, a.description, a.icon,
                       a.category, a.xp_reward, sa.unlocked_at
                FROM student_achievements sa
                JOIN achievements a ON a.id = sa.achievement_id
                WHERE sa.user_id = %s
                ORDER BY sa.unlocked_at DESC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [dict(row) for row in rows]
