"""
Pending-grade notifications

When a learner submits a quiz with essay questions, every admin is told that
an attempt is waiting for grading. Email goes out through Resend when
RESEND_API_KEY is configured; otherwise the notification is only logged.

Notification happens after the attempt has committed, so a failure here is
logged and counted but never undoes or fails the submission.
"""

from typing import Any, Dict, List, Optional
import html
import logging

import httpx
import psycopg

from chemlab.config import (
    NOTIFICATION_FROM_EMAIL,
    NOTIFICATION_TIMEOUT_SECONDS,
    RESEND_API_KEY,
    RESEND_API_URL,
)
from chemlab.db import queries
from chemlab.exceptions import ChemLabError, wrap_external_exception
from chemlab.observability import metrics
from chemlab.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def build_pending_grade_email(student_name: str, quiz_title: str) -> Dict[str, str]:
    """Subject and HTML body for the admin email"""
    safe_name = html.escape(student_name)
    safe_title = html.escape(quiz_title)
    return {
        "subject": f"[Cần chấm điểm] Bài thi mới từ {student_name}",
        "html": (
            "<h2>Có bài thi mới cần chấm điểm</h2>"
            f"<p><strong>Học sinh:</strong> {safe_name}</p>"
            f"<p><strong>Bài kiểm tra:</strong> {safe_title}</p>"
            "<p>Vui lòng truy cập trang chấm bài để xem và chấm điểm câu tự luận.</p>"
        ),
    }


async def send_email(client: httpx.AsyncClient, to: List[str], subject: str, body: str) -> None:
    """POST one email, addressed to every recipient, to the Resend API"""
    response = await client.post(
        RESEND_API_URL,
        headers={"Authorization": f"Bearer {RESEND_API_KEY}"},
        json={
            "from": NOTIFICATION_FROM_EMAIL,
            "to": to,
            "subject": subject,
            "html": body,
        },
    )
    response.raise_for_status()


async def notify_pending_grade(
    attempt_id: Optional[str],
    quiz_title: str,
    student_id: str,
    student_email: Optional[str] = None
) -> Dict[str, Any]:
    """
    Tell admins that a quiz attempt needs essay grading

    Returns:
        {
            'success': bool,
            'message': str,
            'adminEmails': [str, ...]
        }
    """
    admin_emails: List[str] = []

    try:
        student_name = await queries.get_profile_name(student_id) or student_email or "Học sinh"
        admin_emails = await queries.get_admin_emails()

        if not admin_emails:
            logger.info(f"No admin users to notify about attempt {attempt_id}")
            metrics.notifications_total.labels(outcome="logged").inc()
            return {"success": True, "message": "No admin users to notify", "adminEmails": []}

        logger.info(
            f"Pending grade notification: quiz '{quiz_title}' submitted by {student_name} "
            f"({student_email}), attempt {attempt_id}, admins: {len(admin_emails)}, "
            f"at {now_utc().isoformat()}"
        )

        if not RESEND_API_KEY:
            metrics.notifications_total.labels(outcome="logged").inc()
            return {
                "success": True,
                "message": f"Notification logged for {len(admin_emails)} admins",
                "adminEmails": admin_emails,
            }

        email = build_pending_grade_email(student_name, quiz_title)
        async with httpx.AsyncClient(timeout=NOTIFICATION_TIMEOUT_SECONDS) as client:
            await send_email(client, admin_emails, email["subject"], email["html"])

        metrics.notifications_total.labels(outcome="sent").inc()
        return {
            "success": True,
            "message": f"Notification sent to {len(admin_emails)} admins",
            "adminEmails": admin_emails,
        }

    except (httpx.HTTPError, psycopg.Error, ChemLabError) as e:
        error = wrap_external_exception(
            e,
            operation="notify_pending_grade",
            user_id=student_id,
            context={"attempt_id": attempt_id},
            committed=True,
        )
        metrics.notifications_total.labels(outcome="failed").inc()
        metrics.track_error(type(error).__name__, "notifications")
        return {"success": False, "message": error.message, "adminEmails": admin_emails}
