"""Learner progress and XP ledger models"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime


class XPSourceType(str, Enum):
    """What granted (or removed) XP"""
    LESSON_COMPLETE = "lesson_complete"
    QUIZ_COMPLETE = "quiz_complete"
    MANUAL = "manual"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    STREAK_BONUS = "streak_bonus"
    ACHIEVEMENT = "achievement"
    SHOP_PURCHASE = "shop_purchase"


class LearnerProgress(BaseModel):
    """Cached per-learner stats (derived from the XP ledger)"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    xp_to_next_level: int = Field(default=50, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None
    streak_freeze_count: int = 0
    total_lessons_completed: int = 0
    total_stars_earned: int = 0
    total_quizzes_completed: int = 0


class XPTransaction(BaseModel):
    """Append-only XP ledger entry"""
    id: Optional[str] = None
    user_id: str
    xp_amount: int
    source_type: XPSourceType
    source_id: Optional[str] = None
    description: Optional[str] = None
    dedup_key: Optional[str] = None
    created_at: Optional[datetime] = None
