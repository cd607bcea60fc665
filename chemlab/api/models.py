"""Pydantic models for API request/response validation"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime

from chemlab.models.progress import XPSourceType, XPTransaction
from chemlab.models.shop import InventoryItem, ShopItem


class ProgressResponse(BaseModel):
    """Learner XP, level and streak"""
    user_id: str
    total_xp: int
    current_level: int
    xp_to_next_level: int
    xp_in_current_level: int
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date] = None


class XPHistoryResponse(BaseModel):
    """Recent XP ledger entries, newest first"""
    user_id: str
    transactions: List[XPTransaction]


class AwardXPRequest(BaseModel):
    """Admin XP adjustment for a learner"""
    user_id: str = Field(..., description="Learner receiving the adjustment")
    amount: int = Field(..., description="Signed XP amount")
    source_type: XPSourceType = Field(default=XPSourceType.ADMIN_ADJUSTMENT)
    source_id: Optional[str] = None
    description: Optional[str] = None
    dedup_key: Optional[str] = Field(default=None, description="Idempotency key")


class XPAwardResponse(BaseModel):
    success: bool
    xp_awarded: int
    total_xp: int
    old_level: int
    new_level: int
    leveled_up: bool
    xp_to_next_level: int
    duplicate: bool


class LessonCompleteRequest(BaseModel):
    """Lesson completion reported by the lesson player"""
    model_config = ConfigDict(populate_by_name=True)

    stars: int = Field(..., ge=1, le=3, description="Stars earned (1-3)")
    is_first_completion: bool = Field(default=False, alias="isFirstCompletion")


class StreakResponse(BaseModel):
    success: bool
    streak: int
    longest_streak: int
    streak_continued: bool
    streak_broken: bool
    streak_bonus_xp: int


class AchievementCheckResponse(BaseModel):
    success: bool
    unlocked_count: int
    achievements: List[Dict[str, Any]]


class AchievementListResponse(BaseModel):
    """Unlocked achievements, plus progress toward locked ones on request"""
    user_id: str
    unlocked: List[Dict[str, Any]]
    locked: Optional[List[Dict[str, Any]]] = None
    total_unlocked: int
    total_achievements: int
    total_xp_from_achievements: int


class QuizSubmitRequest(BaseModel):
    """Selected options only; the answer key never comes from the client"""
    model_config = ConfigDict(populate_by_name=True)

    quiz_id: str = Field(..., alias="quizId")
    answers: List[Dict[str, Any]] = Field(default_factory=list)
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    essay_answers: Optional[Dict[str, str]] = Field(default=None, alias="essayAnswers")
    review_only: bool = Field(default=False, alias="reviewOnly")
    submission_id: Optional[str] = Field(default=None, alias="submissionId")


class EssayGradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    essay_scores: List[Dict[str, Any]] = Field(default_factory=list, alias="essayScores")
    essay_feedback: List[Dict[str, Any]] = Field(default_factory=list, alias="essayFeedback")


class EquationCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., description="Equation key, e.g. 'H₂+O₂→H₂O'")
    coefficients: List[float]
    time_seconds: Optional[float] = Field(default=None, ge=0, alias="timeSeconds")


class EquationCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    balanced: bool
    score: int


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database connection status")
    timestamp: datetime = Field(..., description="Check timestamp")


class ShopItemsResponse(BaseModel):
    items: List[ShopItem]


class InventoryResponse(BaseModel):
    user_id: str
    items: List[InventoryItem]


class PurchaseResponse(BaseModel):
    success: bool
    item_id: str
    item_name: str
    xp_spent: int
    total_xp: int
    new_level: int
    leveled_down: bool


class EquipResponse(BaseModel):
    success: bool
    item_id: str
    category: str
