"""Learner profile and role queries"""
import logging
from typing import Optional
from chemlab.db.connection import db

logger = logging.getLogger(__name__)


async def is_admin(conn, user_id: str) -> bool:
    """Check the admin role server-side (token claims are not trusted for this)"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT 1
            FROM user_roles
            WHERE user_id = %s AND role = 'admin'
            LIMIT 1
            """,
            (user_id,)
        )
        row = await cur.fetchone()
        return row is not None


async def get_admin_emails() -> list[str]:
    """Email addresses of every admin"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT u.email
                FROM user_roles r
                JOIN auth.users u ON u.id = r.user_id
                WHERE r.role = 'admin' AND u.email IS NOT NULL
                """
            )
            rows = await cur.fetchall()
            return [row["email"] for row in rows]


async def get_profile_name(user_id: str) -> Optional[str]:
    """Learner's display name, if the profile has one"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT full_name
                FROM profiles
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()
            return row["full_name"] if row else None
