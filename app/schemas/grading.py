from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.core.constants import GradingStatusEnum

class GradedAnswer(BaseModel):
    id: int
    grading_session_id: int
    question_id: int
    score: Optional[float] = None
    max_points: float
    is_correct: Optional[bool] = None
    is_manually_graded: bool
    grader_comment: Optional[str] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    selected_option_ids: Optional[List[int]] = None
    text_answer: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class GradingSessionSummary(BaseModel):
    id: int
    attempt_id: int
    status: GradingStatusEnum
    total_score: float
    is_passed: Optional[bool] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class GradingSession(GradingSessionSummary):
    graded_answers: List[GradedAnswer] = []

class ManualGrade(BaseModel):
    question_id: int
    score: float = Field(..., allow_inf_nan=False)
    comment: Optional[str] = None

class BulkManualGrade(BaseModel):
    grades: List[ManualGrade] = Field(..., min_length=1)

class BulkGradeItemResult(BaseModel):
    question_id: int
    success: bool
    error: Optional[str] = None

class BulkGradeResult(BaseModel):
    session: GradingSession
    results: List[BulkGradeItemResult]
    succeeded: int
    failed: int

class Regrade(BaseModel):
    question_id: int
    score: float = Field(..., allow_inf_nan=False)
    reason: str = Field(..., min_length=1)
    comment: Optional[str] = None

class PendingGradingResult(BaseModel):
    processed: int
    failed: int

class GradeSuggestion(BaseModel):
    question_id: int
    suggested_score: float
    max_points: float
    comment: str
    confidence: float = Field(..., ge=0, le=1)
    provider: str
