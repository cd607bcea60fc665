"""
Prometheus metrics definitions for chemlab.

Metrics are organized by category:
- HTTP/API metrics: request counts and latency
- Gamification metrics: XP, levels, streaks, achievements
- Quiz metrics: submissions and essay grading
- Error metrics

Metrics are exposed at the /metrics endpoint for Prometheus scraping.
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP/API Metrics
# =============================================================================

http_requests_total = Counter(
    "chemlab_http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "chemlab_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
)

# =============================================================================
# Gamification Metrics
# =============================================================================

xp_awarded_total = Counter(
    "chemlab_xp_awarded_total",
    "XP applied to learner totals",
    ["source_type"],
)

xp_transactions_total = Counter(
    "chemlab_xp_transactions_total",
    "XP ledger writes",
    ["source_type", "outcome"],  # outcome: recorded/duplicate
)

level_ups_total = Counter(
    "chemlab_level_ups_total",
    "Number of level-up events",
)

streak_updates_total = Counter(
    "chemlab_streak_updates_total",
    "Streak transitions",
    ["outcome"],  # outcome: started/continued/broken/already_counted
)

achievements_unlocked_total = Counter(
    "chemlab_achievements_unlocked_total",
    "Achievements unlocked",
    ["code"],
)

# =============================================================================
# Quiz Metrics
# =============================================================================

quiz_submissions_total = Counter(
    "chemlab_quiz_submissions_total",
    "Quiz submissions graded",
    ["status"],  # status: completed/pending_grade/review/duplicate
)

essay_gradings_total = Counter(
    "chemlab_essay_gradings_total",
    "Essay attempts graded by admins",
)

notifications_total = Counter(
    "chemlab_notifications_total",
    "Pending-grade notifications",
    ["outcome"],  # outcome: sent/logged/failed
)

# =============================================================================
# Shop Metrics
# =============================================================================

shop_purchases_total = Counter(
    "chemlab_shop_purchases_total",
    "Shop purchase attempts",
    ["outcome"],  # outcome: purchased/rejected
)

shop_xp_spent_total = Counter(
    "chemlab_shop_xp_spent_total",
    "XP spent in the shop",
)

# =============================================================================
# Error Metrics
# =============================================================================

errors_total = Counter(
    "chemlab_errors_total",
    "Total errors by type and component",
    ["error_type", "component"],
)


def track_error(error_type: str, component: str) -> None:
    """Count an error"""
    errors_total.labels(error_type=error_type, component=component).inc()
