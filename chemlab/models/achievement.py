"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class AchievementRuleType(str, Enum):
    """Learner statistic an unlock rule is evaluated against"""
    LESSONS_COMPLETED = "lessons_completed"
    QUIZZES_COMPLETED = "quizzes_completed"
    STARS_EARNED = "stars_earned"
    STREAK = "streak"
    LEVEL = "level"
    TOTAL_XP = "total_xp"
    PERFECT_QUIZZES = "perfect_quizzes"


class AchievementCriteria(BaseModel):
    """Unlock rule: statistic `type` must reach `count`"""
    type: AchievementRuleType
    count: int = Field(ge=0)


class Achievement(BaseModel):
    """Achievement definition"""
    id: str
    code: str
    title: str
    description: str = ""
    icon: str = ""
    category: str = "general"
    criteria: dict
    xp_reward: int = Field(default=0, ge=0)
    is_active: bool = True
    order_index: int = 0


class StudentAchievement(BaseModel):
    """Learner's unlocked achievement"""
    user_id: str
    achievement_id: str
    unlocked_at: datetime
    notified: bool = False
