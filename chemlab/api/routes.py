"""API routes for learner progress, quizzes and practice games"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from chemlab.api.auth import get_current_identity
from chemlab.api.middleware import limiter
from chemlab.api.models import (
    ProgressResponse, XPHistoryResponse,
    AwardXPRequest, XPAwardResponse,
    LessonCompleteRequest, StreakResponse,
    AchievementCheckResponse, AchievementListResponse,
    QuizSubmitRequest, EssayGradeRequest,
    ShopItemsResponse, InventoryResponse, PurchaseResponse, EquipResponse,
    EquationCheckRequest, EquationCheckResponse,
    HealthCheckResponse,
)
from chemlab.auth import LearnerIdentity, require_admin
from chemlab.config import RATE_LIMIT_DEFAULT
from chemlab.db.connection import db
from chemlab.equation_balancer import (
    calculate_score,
    check_balance,
    find_equation,
    get_random_equation,
)
from chemlab.exceptions import NotFoundError, ValidationError
from chemlab.gamification import (
    award_xp,
    get_learner_xp,
    get_xp_history,
    update_streak,
    check_and_award_achievements,
    get_learner_achievements,
    get_shop_items,
    get_learner_inventory,
    purchase_item,
    equip_item,
)
from chemlab.quiz.grader import grade_essay
from chemlab.services import GamificationService
from chemlab.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

router = APIRouter()

_gamification_service: Optional[GamificationService] = None


def get_gamification_service() -> GamificationService:
    """GamificationService bound to the global database"""
    global _gamification_service
    if _gamification_service is None:
        _gamification_service = GamificationService(db)
    return _gamification_service


# ==========================================
# Progress & XP
# ==========================================

@router.get("/api/v1/progress", response_model=ProgressResponse)
@limiter.limit("30/minute")
async def get_progress(
    request: Request,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Get the caller's XP, level and streak (Rate limit: 30/minute)"""
    progress = await get_learner_xp(identity.user_id)
    return ProgressResponse(**progress)


@router.get("/api/v1/xp/history", response_model=XPHistoryResponse)
@limiter.limit("30/minute")
async def get_xp_history_endpoint(
    request: Request,
    days: int = Query(default=7, ge=1, le=365),
    limit: int = Query(default=50, ge=1, le=500),
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Get the caller's recent XP transactions (Rate limit: 30/minute)"""
    transactions = await get_xp_history(identity.user_id, days=days, limit=limit)
    return XPHistoryResponse(user_id=identity.user_id, transactions=transactions)


@router.post("/api/v1/xp/award", response_model=XPAwardResponse)
@limiter.limit("20/minute")
async def award_xp_endpoint(
    request: Request,
    body: AwardXPRequest,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Admin XP adjustment, may be negative (Rate limit: 20/minute)"""
    admin_id = await require_admin(identity, operation="award_xp")

    result = await award_xp(
        user_id=body.user_id,
        amount=body.amount,
        source_type=body.source_type.value,
        source_id=body.source_id,
        description=body.description or f"Điều chỉnh bởi quản trị viên {admin_id}",
        dedup_key=body.dedup_key,
    )

    logger.info(f"Admin {admin_id} adjusted XP for user {body.user_id} by {body.amount}")
    return XPAwardResponse(**result)


# ==========================================
# Learning Activities
# ==========================================

@router.post("/api/v1/lessons/{lesson_id}/complete")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def complete_lesson(
    request: Request,
    lesson_id: str,
    body: LessonCompleteRequest,
    identity: LearnerIdentity = Depends(get_current_identity),
    service: GamificationService = Depends(get_gamification_service)
):
    """Apply XP, streak and achievements for a completed lesson"""
    return await service.complete_lesson(
        identity,
        lesson_id,
        stars=body.stars,
        is_first_completion=body.is_first_completion,
    )


@router.post("/api/v1/streak", response_model=StreakResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def update_streak_endpoint(
    request: Request,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Record today's activity for the caller's streak"""
    result = await update_streak(identity.user_id)
    return StreakResponse(**result)


@router.post("/api/v1/achievements/check", response_model=AchievementCheckResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def check_achievements_endpoint(
    request: Request,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Unlock every achievement the caller now qualifies for"""
    result = await check_and_award_achievements(identity.user_id)
    return AchievementCheckResponse(**result)


@router.get("/api/v1/achievements", response_model=AchievementListResponse)
@limiter.limit("30/minute")
async def get_achievements_endpoint(
    request: Request,
    include_locked: bool = Query(default=False),
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Get the caller's achievements (Rate limit: 30/minute)"""
    result = await get_learner_achievements(identity.user_id, include_locked=include_locked)
    return AchievementListResponse(user_id=identity.user_id, **result)


# ==========================================
# Quizzes
# ==========================================

@router.post("/api/v1/quizzes/submit")
@limiter.limit("20/minute")
async def submit_quiz_endpoint(
    request: Request,
    body: QuizSubmitRequest,
    identity: LearnerIdentity = Depends(get_current_identity),
    service: GamificationService = Depends(get_gamification_service)
):
    """Grade a quiz submission server-side (Rate limit: 20/minute)"""
    return await service.complete_quiz(
        identity,
        body.quiz_id,
        body.answers,
        start_time=body.start_time,
        essay_answers=body.essay_answers,
        review_only=body.review_only,
        submission_id=body.submission_id,
    )


@router.post("/api/v1/quizzes/attempts/{attempt_id}/grade")
@limiter.limit("20/minute")
async def grade_essay_endpoint(
    request: Request,
    attempt_id: str,
    body: EssayGradeRequest,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Admin grading of essay answers (Rate limit: 20/minute)"""
    return await grade_essay(
        identity,
        attempt_id,
        essay_scores=body.essay_scores,
        essay_feedback=body.essay_feedback,
    )


# ==========================================
# XP Shop
# ==========================================

@router.get("/api/v1/shop/items", response_model=ShopItemsResponse)
@limiter.limit("30/minute")
async def shop_items_endpoint(request: Request):
    """Items currently for sale"""
    return ShopItemsResponse(items=await get_shop_items())


@router.get("/api/v1/shop/inventory", response_model=InventoryResponse)
@limiter.limit("30/minute")
async def inventory_endpoint(
    request: Request,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    items = await get_learner_inventory(identity)
    return InventoryResponse(user_id=identity.user_id, items=items)


@router.post("/api/v1/shop/items/{item_id}/purchase", response_model=PurchaseResponse)
@limiter.limit("10/minute")
async def purchase_item_endpoint(
    request: Request,
    item_id: str,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    """Spend the caller's XP on an item (Rate limit: 10/minute)"""
    result = await purchase_item(identity, item_id)
    return PurchaseResponse(**result)


@router.post("/api/v1/shop/items/{item_id}/equip", response_model=EquipResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def equip_item_endpoint(
    request: Request,
    item_id: str,
    identity: LearnerIdentity = Depends(get_current_identity)
):
    result = await equip_item(identity, item_id)
    return EquipResponse(**result)


# ==========================================
# Equation Balancer
# ==========================================

@router.get("/api/v1/equations/random")
@limiter.limit(RATE_LIMIT_DEFAULT)
async def random_equation_endpoint(
    request: Request,
    difficulty: Optional[str] = Query(default=None)
):
    """Pick a practice equation (no answer included)"""
    try:
        equation = get_random_equation(difficulty)
    except ValueError as e:
        raise ValidationError(str(e), field="difficulty", value=difficulty)
    return equation.to_dict()


@router.post("/api/v1/equations/check", response_model=EquationCheckResponse)
@limiter.limit(RATE_LIMIT_DEFAULT)
async def check_equation_endpoint(
    request: Request,
    body: EquationCheckRequest
):
    """Check learner coefficients; balanced answers score by speed"""
    equation = find_equation(body.key)
    if equation is None:
        raise NotFoundError(f"Equation {body.key} not found", record_type="equation", record_id=body.key)

    balanced = check_balance(equation, body.coefficients)
    score = 0
    if balanced and body.time_seconds is not None:
        score = calculate_score(body.time_seconds, equation.difficulty)

    return EquationCheckResponse(key=body.key, balanced=balanced, score=score)


# ==========================================
# Health
# ==========================================

@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()

        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"

    return HealthCheckResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        timestamp=now_utc()
    )
