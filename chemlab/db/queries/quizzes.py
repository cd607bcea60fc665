"""Quiz and quiz attempt database queries"""
import logging
from datetime import datetime
from typing import Optional
from psycopg.types.json import Jsonb

logger = logging.getLogger(__name__)

ATTEMPT_COLUMNS = """
    id::text AS id, quiz_id::text AS quiz_id, user_id::text AS user_id, score, total_questions,
    mc_score, gradable_questions, user_answers, time_taken_seconds,
    status, essay_scores, essay_feedback, graded_by, graded_at, submission_id, completed_at
"""


async def get_quiz(conn, quiz_id: str) -> Optional[dict]:
    """Get quiz header (None if unknown)"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT id::text AS id, title
            FROM quizzes
            WHERE id = %s
            """,
            (quiz_id,)
        )
        row = await cur.fetchone()
        return dict(row) if row else None


async def get_quiz_questions(conn, quiz_id: str) -> list[dict]:
    """
    Get quiz questions including the answer key

    Never return these rows to a learner before grading.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT id::text AS id, question, options, correct_answer, explanation, question_type
            FROM quiz_questions
            WHERE quiz_id = %s
            ORDER BY order_index
            """,
            (quiz_id,)
        )
        rows = await cur.fetchall()
        return [dict(row) for row in rows]


async def get_attempt_by_submission(conn, user_id: str, submission_id: str) -> Optional[dict]:
    """Find an attempt by the client's idempotency key"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {ATTEMPT_COLUMNS}
            FROM quiz_attempts
            WHERE user_id = %s AND submission_id = %s
            """,
            (user_id, submission_id)
        )
        row = await cur.fetchone()
        return dict(row) if row else None


async def insert_quiz_attempt(
    conn,
    quiz_id: str,
    user_id: str,
    score: int,
    total_questions: int,
    user_answers: dict,
    time_taken_seconds: Optional[int],
    status: str,
    completed_at: datetime,
    submission_id: Optional[str] = None,
    mc_score: int = 0,
    gradable_questions: int = 0
) -> str:
    """
    Save a graded quiz attempt

    ``mc_score`` and ``gradable_questions`` keep the multiple-choice result;
    ``score`` later grows by the essay points.

    Returns:
        Attempt ID (UUID string)
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO quiz_attempts (
                quiz_id, user_id, score, total_questions, mc_score, gradable_questions,
                user_answers, time_taken_seconds, status, essay_scores, essay_feedback,
                submission_id, completed_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, '[]'::jsonb, '[]'::jsonb, %s, %s)
            RETURNING id
            """,
            (
                quiz_id,
                user_id,
                score,
                total_questions,
                mc_score,
                gradable_questions,
                Jsonb(user_answers),
                time_taken_seconds,
                status,
                submission_id,
                completed_at,
            )
        )
        result = await cur.fetchone()
        return str(result["id"])


async def lock_quiz_attempt(conn, attempt_id: str) -> Optional[dict]:
    """Get an attempt and lock it until the transaction ends"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {ATTEMPT_COLUMNS}
            FROM quiz_attempts
            WHERE id = %s
            FOR UPDATE
            """,
            (attempt_id,)
        )
        row = await cur.fetchone()
        return dict(row) if row else None


async def complete_essay_grading(
    conn,
    attempt_id: str,
    score: int,
    essay_scores: list[dict],
    essay_feedback: list[dict],
    graded_by: str,
    graded_at: datetime
) -> None:
    """Record essay grades; the attempt leaves pending_grade for good"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE quiz_attempts
            SET status = 'completed',
                score = %s,
                essay_scores = %s,
                essay_feedback = %s,
                graded_by = %s,
                graded_at = %s
            WHERE id = %s AND status = 'pending_grade'
            """,
            (score, Jsonb(essay_scores), Jsonb(essay_feedback), graded_by, graded_at, attempt_id)
        )
