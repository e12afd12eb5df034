from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.constants import GradingStatusEnum
from app.crud.base import PaginatedResponse
from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.grading import (
    BulkGradeResult,
    BulkManualGrade,
    GradeSuggestion,
    GradingSession,
    GradingSessionSummary,
    ManualGrade,
    PendingGradingResult,
    Regrade,
)
from app.schemas.user import UserContext
from app.services.ai_grading import ai_grading_service
from app.services.grading import grading_service

router = APIRouter()

@router.post("/attempts/{attempt_id}/initiate", response_model=APIResponse[GradingSession])
async def initiate_grading(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.require_grader)
):
    session = grading_service.initiate_grading(db, attempt_id, actor_id=context.actor_id)
    return APIResponse(message="Grading initiated", data=session)


@router.get("/attempts/{attempt_id}", response_model=APIResponse[GradingSession])
async def get_session_by_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    session = grading_service.get_session_by_attempt(db, context, attempt_id)
    return APIResponse(message="Grading session retrieved successfully", data=session)


@router.get("/sessions", response_model=APIResponse[PaginatedResponse[GradingSessionSummary]])
async def list_sessions(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_grader),
    status: Optional[GradingStatusEnum] = Query(None),
    exam_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    page = grading_service.list_sessions(db, context, status=status, exam_id=exam_id, skip=skip, limit=limit)
    return APIResponse(message="Grading sessions retrieved successfully", data=page)


@router.get("/queue", response_model=APIResponse[PaginatedResponse[GradingSessionSummary]])
async def manual_grading_queue(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_grader),
    exam_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    page = grading_service.get_manual_grading_queue(db, context, exam_id=exam_id, skip=skip, limit=limit)
    return APIResponse(message="Manual grading queue retrieved successfully", data=page)


@router.get("/sessions/{session_id}", response_model=APIResponse[GradingSession])
async def get_session(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    session = grading_service.get_session(db, context, session_id)
    return APIResponse(message="Grading session retrieved successfully", data=session)


@router.post("/sessions/{session_id}/grades", response_model=APIResponse[GradingSession])
async def submit_manual_grade(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    grade_in: ManualGrade,
    context: UserContext = Depends(deps.require_grader)
):
    session = grading_service.submit_manual_grade(db, context, session_id, grade_in)
    return APIResponse(message="Grade saved", data=session)


@router.post("/sessions/{session_id}/grades/bulk", response_model=APIResponse[BulkGradeResult])
async def bulk_submit_manual_grades(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    bulk_in: BulkManualGrade,
    context: UserContext = Depends(deps.require_grader)
):
    result = grading_service.bulk_submit_manual_grades(db, context, session_id, bulk_in)
    return APIResponse(message=f"{result.succeeded} grade(s) saved, {result.failed} failed", data=result)


@router.post("/sessions/{session_id}/complete", response_model=APIResponse[GradingSession])
async def complete_grading(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    context: UserContext = Depends(deps.require_grader)
):
    session = grading_service.complete_grading(db, context, session_id)
    return APIResponse(message="Grading completed", data=session)


@router.post("/sessions/{session_id}/regrade", response_model=APIResponse[GradingSession])
async def regrade(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    regrade_in: Regrade,
    context: UserContext = Depends(deps.require_grader)
):
    session = grading_service.regrade(db, context, session_id, regrade_in)
    return APIResponse(message="Answer regraded", data=session)


@router.post("/sessions/{session_id}/questions/{question_id}/suggestion", response_model=APIResponse[GradeSuggestion])
async def suggest_grade(
    *,
    db: Session = Depends(deps.get_db),
    session_id: int,
    question_id: int,
    context: UserContext = Depends(deps.require_grader)
):
    suggestion = await ai_grading_service.suggest_grade(db, context, session_id, question_id)
    return APIResponse(message="Suggestion generated; review before applying", data=suggestion)


@router.post("/process-pending", response_model=APIResponse[PendingGradingResult])
async def process_pending(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_operator)
):
    result = grading_service.process_pending_grading_sessions(db)
    return APIResponse(message="Pending grading processed", data=result)
