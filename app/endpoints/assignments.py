from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.exam_assignment import (
    AssignmentCreate,
    AssignmentResult,
    ExamAssignment,
    UnassignItemResult,
    UnassignMany,
)
from app.schemas.user import UserContext
from app.services.exam_assignment import exam_assignment_service

router = APIRouter()

@router.post("/", response_model=APIResponse[AssignmentResult])
async def assign(
    *,
    db: Session = Depends(deps.get_db),
    assign_in: AssignmentCreate,
    context: UserContext = Depends(deps.require_operator)
):
    result = exam_assignment_service.assign(db, context, assign_in)
    return APIResponse(message="Assignments processed", data=result)


@router.get("/exams/{exam_id}", response_model=APIResponse[List[ExamAssignment]])
async def list_assignments(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    active_only: bool = Query(True),
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    assignments = exam_assignment_service.list_assignments(db, context, exam_id, active_only=active_only)
    return APIResponse(message="Assignments retrieved successfully", data=assignments)


@router.delete("/exams/{exam_id}/candidates/{candidate_id}", response_model=APIResponse[dict])
async def unassign(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    candidate_id: int,
    context: UserContext = Depends(deps.require_operator)
):
    exam_assignment_service.unassign(db, context, exam_id, candidate_id)
    return APIResponse(message="Candidate unassigned", data={"exam_id": exam_id, "candidate_id": candidate_id})


@router.post("/unassign", response_model=APIResponse[List[UnassignItemResult]])
async def unassign_many(
    *,
    db: Session = Depends(deps.get_db),
    unassign_in: UnassignMany,
    context: UserContext = Depends(deps.require_operator)
):
    results = exam_assignment_service.unassign_many(db, context, unassign_in)
    return APIResponse(message="Unassignment processed", data=results)
