"""Quiz, answer and attempt models"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Optional, Union
from datetime import datetime


class QuestionType(str, Enum):
    """Question kinds; only essays need human grading"""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"


class AttemptStatus(str, Enum):
    COMPLETED = "completed"
    PENDING_GRADE = "pending_grade"


class QuizQuestion(BaseModel):
    """Server-side question row, including the answer key"""
    id: str
    question: str
    options: Optional[Any] = None
    correct_answer: Optional[int] = None
    explanation: Optional[str] = None
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE

    @property
    def is_essay(self) -> bool:
        return self.question_type == QuestionType.ESSAY


class SubmittedAnswer(BaseModel):
    """One selected option; -1 means the question was skipped"""
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId", min_length=1)
    answer: Optional[Union[int, str]] = None


class QuestionResult(BaseModel):
    """Per-question grading outcome returned to the learner"""
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId")
    question: str
    options: Optional[Any] = None
    user_answer: Optional[Union[int, str]] = Field(default=None, alias="userAnswer")
    correct_answer: Optional[int] = Field(default=None, alias="correctAnswer")
    is_correct: Optional[bool] = Field(default=None, alias="isCorrect")
    is_essay: bool = Field(default=False, alias="isEssay")
    explanation: Optional[str] = None


class EssayScore(BaseModel):
    """Admin-assigned score for one essay answer"""
    question_id: str
    score: int = Field(ge=0)
    max_score: int = Field(gt=0)

    @model_validator(mode="after")
    def _score_within_max(self):
        if self.score > self.max_score:
            raise ValueError(f"score {self.score} exceeds max_score {self.max_score}")
        return self


class EssayFeedback(BaseModel):
    question_id: str
    feedback: str


class QuizAttempt(BaseModel):
    """Stored quiz submission"""
    id: str
    quiz_id: str
    user_id: str
    score: int
    total_questions: int = Field(gt=0)
    mc_score: int = Field(default=0, ge=0)
    gradable_questions: int = Field(default=0, ge=0)
    user_answers: dict[str, Optional[Union[int, str]]] = Field(default_factory=dict)
    time_taken_seconds: Optional[int] = None
    status: AttemptStatus
    essay_scores: list[dict] = Field(default_factory=list)
    essay_feedback: list[dict] = Field(default_factory=list)
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    submission_id: Optional[str] = None
    completed_at: Optional[datetime] = None
