"""
Quiz Grader

All scoring happens here, against the answer key held in the database. The
client sends only its selected options; scores, correct answers and XP are
never taken from the request.

Essay questions are not auto-graded: the attempt is stored as pending_grade
and an admin later adds essay scores exactly once (grade_essay).
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from pydantic import ValidationError as PydanticValidationError

from chemlab.auth import LearnerIdentity, require_admin, require_identity
from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import NotFoundError, ValidationError
from chemlab.gamification.xp_system import award_xp
from chemlab.models.progress import XPSourceType
from chemlab.models.quiz import (
    AttemptStatus,
    EssayFeedback,
    EssayScore,
    QuestionResult,
    QuestionType,
    QuizQuestion,
    SubmittedAnswer,
)
from chemlab.observability import metrics
from chemlab.quiz.notifications import notify_pending_grade
from chemlab.utils.datetime_helpers import now_utc, seconds_since

logger = logging.getLogger(__name__)

SKIPPED_ANSWER = -1

# (minimum percentage, XP); first match wins
QUIZ_XP_TIERS = [
    (100, 50),
    (80, 30),
    (60, 15),
]


def calculate_quiz_xp(score: int, total_gradable: int) -> int:
    """
    XP for a quiz result

    100% -> 50 XP, >= 80% -> 30 XP, >= 60% -> 15 XP, otherwise 0.
    Quizzes without gradable questions earn nothing at submission.
    """
    if total_gradable <= 0:
        return 0

    # Integer comparison avoids float rounding at the tier boundaries
    for min_percentage, xp in QUIZ_XP_TIERS:
        if score * 100 >= min_percentage * total_gradable:
            return xp
    return 0


def parse_answers(raw_answers: Any) -> List[SubmittedAnswer]:
    """Validate the submitted answer array"""
    if not isinstance(raw_answers, list):
        raise ValidationError("answers must be an array", field="answers", value=type(raw_answers).__name__)

    try:
        return [SubmittedAnswer.model_validate(a) for a in raw_answers]
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed answer: {e.errors()[0]['msg']}", field="answers")


def grade_answers(
    questions: List[QuizQuestion],
    answers: List[SubmittedAnswer],
    essay_answers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Score submitted answers against the answer key

    Args:
        questions: Quiz questions in display order, with correct answers
        answers: Selected options (-1 or null = skipped)
        essay_answers: Essay text by question ID

    Returns:
        {
            'score': int,  # correct gradable answers
            'total_questions': int,
            'total_gradable_questions': int,
            'has_essay_questions': bool,
            'results': [QuestionResult, ...],
            'user_answers': {question_id: answer-or-None}
        }

    Raises:
        ValidationError: answers reference unknown or duplicate questions
    """
    essay_answers = essay_answers or {}
    question_ids = {q.id for q in questions}

    selected: Dict[str, Any] = {}
    for answer in answers:
        if answer.question_id not in question_ids:
            raise ValidationError(
                f"Answer references unknown question {answer.question_id}",
                field="answers",
                value=answer.question_id,
            )
        if answer.question_id in selected:
            raise ValidationError(
                f"Duplicate answer for question {answer.question_id}",
                field="answers",
                value=answer.question_id,
            )
        selected[answer.question_id] = None if answer.answer == SKIPPED_ANSWER else answer.answer

    unknown_essays = set(essay_answers) - question_ids
    if unknown_essays:
        raise ValidationError(
            "Essay answers reference unknown questions",
            field="essayAnswers",
            value=sorted(unknown_essays),
        )

    user_answers: Dict[str, Any] = dict(selected)
    user_answers.update(essay_answers)

    score = 0
    total_gradable = 0
    results = []

    for question in questions:
        if question.is_essay:
            results.append(QuestionResult(
                question_id=question.id,
                question=question.question,
                options=question.options,
                user_answer=essay_answers.get(question.id),
                correct_answer=None,
                is_correct=None,
                is_essay=True,
                explanation=question.explanation,
            ))
            continue

        total_gradable += 1
        user_answer = selected.get(question.id)
        is_correct = user_answer is not None and user_answer == question.correct_answer
        if is_correct:
            score += 1

        results.append(QuestionResult(
            question_id=question.id,
            question=question.question,
            options=question.options,
            user_answer=user_answer,
            correct_answer=question.correct_answer,
            is_correct=is_correct,
            is_essay=False,
            explanation=question.explanation,
        ))

    return {
        "score": score,
        "total_questions": len(questions),
        "total_gradable_questions": total_gradable,
        "has_essay_questions": total_gradable < len(questions),
        "results": results,
        "user_answers": user_answers,
    }


def _response(
    graded: Dict[str, Any],
    attempt_id: Optional[str],
    status: str,
    time_taken: Optional[int],
    xp_awarded: int,
    quiz_title: Optional[str] = None,
    duplicate: bool = False
) -> Dict[str, Any]:
    return {
        "score": graded["score"],
        "totalQuestions": graded["total_questions"],
        "totalGradableQuestions": graded["total_gradable_questions"],
        "results": [r.model_dump(by_alias=True) for r in graded["results"]],
        "attemptId": attempt_id,
        "status": status,
        "timeTakenSeconds": time_taken,
        "hasEssayQuestions": graded["has_essay_questions"],
        "xpAwarded": xp_awarded,
        "quizTitle": quiz_title,
        "duplicate": duplicate,
    }


async def _load_questions(tx, quiz_id: str) -> tuple:
    quiz = await queries.get_quiz(tx, quiz_id)
    if quiz is None:
        raise NotFoundError(f"Quiz {quiz_id} not found", record_type="quiz", record_id=quiz_id)

    rows = await queries.get_quiz_questions(tx, quiz_id)
    if not rows:
        raise ValidationError(f"Quiz {quiz_id} has no questions", field="quizId", value=quiz_id)

    return quiz, [QuizQuestion.model_validate(row) for row in rows]


async def submit_quiz(
    identity: Optional[LearnerIdentity],
    quiz_id: str,
    answers: Any,
    start_time: Optional[datetime] = None,
    essay_answers: Optional[Dict[str, str]] = None,
    review_only: bool = False,
    submission_id: Optional[str] = None,
    conn=None
) -> Dict[str, Any]:
    """
    Grade a quiz submission and persist the attempt

    The attempt, the quiz counter and the quiz XP commit together. A repeated
    ``submission_id`` returns the stored attempt without awarding again.
    ``review_only`` grades without saving anything.

    When this call owns the transaction, admins are notified about essay
    attempts after commit; callers passing ``conn`` notify themselves.

    Returns:
        {score, totalQuestions, totalGradableQuestions, results, attemptId,
         status, timeTakenSeconds, hasEssayQuestions, xpAwarded, quizTitle,
         duplicate}

    Raises:
        AuthenticationError: no verified identity
        NotFoundError: unknown quiz
        ValidationError: empty quiz or malformed answers
        PersistenceError: attempt could not be saved (nothing committed)
    """
    user_id = require_identity(identity, operation="submit_quiz")
    if not quiz_id:
        raise ValidationError("quizId is required", field="quizId", user_id=user_id)

    parsed_answers = parse_answers(answers)
    if essay_answers is not None and not isinstance(essay_answers, dict):
        raise ValidationError("essayAnswers must be an object", field="essayAnswers", user_id=user_id)

    time_taken = seconds_since(start_time)
    xp_awarded = 0
    attempt_id = None

    async with db.transaction(conn, operation="submit_quiz", user_id=user_id) as tx:
        if not review_only:
            # Taken before the submission lookup so retries of one submission serialize
            await queries.lock_learner_progress(tx, user_id)

            if submission_id:
                existing = await queries.get_attempt_by_submission(tx, user_id, submission_id)
                if existing is not None:
                    return await _replay_submission(tx, existing, quiz_id)

        quiz, questions = await _load_questions(tx, quiz_id)
        graded = grade_answers(questions, parsed_answers, essay_answers)
        status = (
            AttemptStatus.PENDING_GRADE if graded["has_essay_questions"] else AttemptStatus.COMPLETED
        ).value

        if review_only:
            metrics.quiz_submissions_total.labels(status="review").inc()
            logger.info(f"Quiz {quiz_id} reviewed by user {user_id}: {graded['score']}/{graded['total_gradable_questions']}")
            return _response(graded, None, status, time_taken, 0, quiz.get("title"))

        attempt_id = await queries.insert_quiz_attempt(
            tx,
            quiz_id=quiz_id,
            user_id=user_id,
            score=graded["score"],
            total_questions=graded["total_questions"],
            user_answers=graded["user_answers"],
            time_taken_seconds=time_taken,
            status=status,
            completed_at=now_utc(),
            submission_id=submission_id,
            mc_score=graded["score"],
            gradable_questions=graded["total_gradable_questions"],
        )

        await queries.increment_quiz_stats(tx, user_id)

        xp_amount = calculate_quiz_xp(graded["score"], graded["total_gradable_questions"])
        if xp_amount > 0:
            xp_result = await award_xp(
                user_id=user_id,
                amount=xp_amount,
                source_type=XPSourceType.QUIZ_COMPLETE.value,
                source_id=quiz_id,
                description=f"Quiz: {graded['score']}/{graded['total_gradable_questions']} đúng",
                dedup_key=f"quiz_attempt:{attempt_id}",
                conn=tx,
            )
            xp_awarded = xp_result["xp_awarded"]

    metrics.quiz_submissions_total.labels(status=status).inc()
    logger.info(
        f"Quiz {quiz_id} submitted by user {user_id}: "
        f"{graded['score']}/{graded['total_gradable_questions']} in {time_taken}s, status: {status}"
    )

    if conn is None and status == AttemptStatus.PENDING_GRADE.value:
        await notify_pending_grade(
            attempt_id=attempt_id,
            quiz_title=quiz.get("title") or "Unknown Quiz",
            student_id=user_id,
            student_email=identity.email,
        )

    return _response(graded, attempt_id, status, time_taken, xp_awarded, quiz.get("title"))


async def _replay_submission(tx, attempt: Dict[str, Any], quiz_id: str) -> Dict[str, Any]:
    """Rebuild the response for an attempt that was already stored"""
    if str(attempt["quiz_id"]) != str(quiz_id):
        raise ValidationError(
            "submissionId was already used for a different quiz",
            field="submissionId",
            value=attempt.get("submission_id"),
        )

    quiz, questions = await _load_questions(tx, quiz_id)
    stored = attempt.get("user_answers") or {}
    essay_ids = {q.id for q in questions if q.is_essay}
    answers = [
        SubmittedAnswer(question_id=qid, answer=value)
        for qid, value in stored.items()
        if qid not in essay_ids and any(q.id == qid for q in questions)
    ]
    essay_answers = {qid: value for qid, value in stored.items() if qid in essay_ids}

    graded = grade_answers(questions, answers, essay_answers)
    graded["score"] = attempt["score"]

    metrics.quiz_submissions_total.labels(status="duplicate").inc()
    logger.info(f"Duplicate submission {attempt.get('submission_id')} returned stored attempt {attempt['id']}")

    return _response(
        graded,
        str(attempt["id"]),
        attempt["status"],
        attempt.get("time_taken_seconds"),
        0,
        quiz.get("title"),
        duplicate=True,
    )


async def grade_essay(
    identity: Optional[LearnerIdentity],
    attempt_id: str,
    essay_scores: Any = None,
    essay_feedback: Any = None,
    conn=None
) -> Dict[str, Any]:
    """
    Record admin scores for the essay answers of a pending attempt

    The attempt moves from pending_grade to completed exactly once and its
    score becomes original_mc_score + sum(essay scores).

    Returns:
        {success, attemptId, originalMcScore, essayScoreTotal, essayMaxScore,
         newTotalScore, gradedBy, gradedAt}

    Raises:
        AuthorizationError: caller is not an admin
        NotFoundError: unknown attempt
        ValidationError: attempt already graded, or malformed scores
    """
    if not attempt_id:
        raise ValidationError("attemptId is required", field="attemptId")

    try:
        scores = [EssayScore.model_validate(s) for s in (essay_scores or [])]
        feedback = [EssayFeedback.model_validate(f) for f in (essay_feedback or [])]
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed essay grading: {e.errors()[0]['msg']}", field="essayScores")

    async with db.transaction(conn, operation="grade_essay") as tx:
        grader_id = await require_admin(identity, operation="grade_essay", conn=tx)

        attempt = await queries.lock_quiz_attempt(tx, attempt_id)
        if attempt is None:
            raise NotFoundError(
                f"Quiz attempt {attempt_id} not found", record_type="quiz_attempt", record_id=attempt_id
            )
        if attempt["status"] != AttemptStatus.PENDING_GRADE.value:
            raise ValidationError(
                f"Quiz attempt {attempt_id} is not awaiting grading",
                field="attemptId",
                value=attempt["status"],
                user_id=grader_id,
            )

        graded_ids = [s.question_id for s in scores]
        if len(graded_ids) != len(set(graded_ids)):
            raise ValidationError("Each essay question may be scored once", field="essayScores")

        questions = await queries.get_quiz_questions(tx, attempt["quiz_id"])
        essay_ids = {
            str(q["id"]) for q in questions if q.get("question_type") == QuestionType.ESSAY.value
        }
        not_essays = sorted(set(graded_ids) - essay_ids)
        if not_essays:
            raise ValidationError(
                "Only essay questions of this quiz can be scored",
                field="essayScores",
                value=not_essays,
                user_id=grader_id,
            )

        original_mc_score = attempt["score"]
        essay_total = sum(s.score for s in scores)
        essay_max = sum(s.max_score for s in scores)
        new_total = original_mc_score + essay_total
        graded_at = now_utc()

        await queries.complete_essay_grading(
            tx,
            attempt_id=attempt_id,
            score=new_total,
            essay_scores=[s.model_dump() for s in scores],
            essay_feedback=[f.model_dump() for f in feedback],
            graded_by=grader_id,
            graded_at=graded_at,
        )

    metrics.essay_gradings_total.inc()
    logger.info(
        f"Attempt {attempt_id} graded: MC={original_mc_score}, "
        f"Essay={essay_total}/{essay_max}, Total={new_total}"
    )

    return {
        "success": True,
        "attemptId": attempt_id,
        "originalMcScore": original_mc_score,
        "essayScoreTotal": essay_total,
        "essayMaxScore": essay_max,
        "newTotalScore": new_total,
        "gradedBy": grader_id,
        "gradedAt": graded_at.isoformat(),
    }
