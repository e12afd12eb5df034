from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.constants import AttemptStatusEnum
from app.crud.base import PaginatedResponse
from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.attempt import Attempt, AttemptTimer
from app.schemas.attempt_control import (
    AddTimeRequest,
    AddTimeResult,
    AllowNewAttemptRequest,
    AttemptMonitorRow,
    AttemptOverride,
    CancelRequest,
    ExpirySweepResult,
    ForceEndRequest,
    PauseRequest,
    ResumeRequest,
)
from app.schemas.user import UserContext
from app.services.attempt_control import attempt_control_service

router = APIRouter()

@router.get("/attempts", response_model=APIResponse[PaginatedResponse[AttemptMonitorRow]])
async def list_attempts(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_monitor),
    status: Optional[AttemptStatusEnum] = Query(None),
    exam_id: Optional[int] = Query(None),
    candidate_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    page = attempt_control_service.list_attempts(
        db, context, status=status, exam_id=exam_id, candidate_id=candidate_id, skip=skip, limit=limit
    )
    return APIResponse(message="Attempts retrieved successfully", data=page)


@router.post("/attempts/{attempt_id}/force-end", response_model=APIResponse[Attempt])
async def force_end(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    force_in: ForceEndRequest,
    context: UserContext = Depends(deps.require_operator)
):
    attempt = attempt_control_service.force_end(db, context, attempt_id, reason=force_in.reason)
    return APIResponse(message="Attempt force-ended successfully", data=attempt)


@router.post("/attempts/{attempt_id}/pause", response_model=APIResponse[Attempt])
async def pause_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    pause_in: PauseRequest,
    context: UserContext = Depends(deps.require_operator)
):
    attempt = attempt_control_service.pause_attempt(db, context, attempt_id, reason=pause_in.reason)
    return APIResponse(message="Attempt paused", data=attempt)


@router.post("/attempts/{attempt_id}/resume", response_model=APIResponse[AttemptTimer])
async def resume_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    resume_in: ResumeRequest,
    context: UserContext = Depends(deps.require_operator)
):
    timer = attempt_control_service.resume_attempt(db, context, attempt_id, reason=resume_in.reason)
    return APIResponse(message="Attempt resumed successfully", data=timer)


@router.post("/attempts/{attempt_id}/add-time", response_model=APIResponse[AddTimeResult])
async def add_time(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    time_in: AddTimeRequest,
    context: UserContext = Depends(deps.require_operator)
):
    result = attempt_control_service.add_time(
        db, context, attempt_id, extra_minutes=time_in.extra_minutes, reason=time_in.reason
    )
    return APIResponse(message=f"{time_in.extra_minutes} minute(s) added successfully", data=result)


@router.post("/attempts/{attempt_id}/cancel", response_model=APIResponse[Attempt])
async def cancel_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    cancel_in: CancelRequest,
    context: UserContext = Depends(deps.require_operator)
):
    attempt = attempt_control_service.cancel_attempt(db, context, attempt_id, reason=cancel_in.reason)
    return APIResponse(message="Attempt cancelled", data=attempt)


@router.post("/overrides", response_model=APIResponse[AttemptOverride])
async def allow_new_attempt(
    *,
    db: Session = Depends(deps.get_db),
    override_in: AllowNewAttemptRequest,
    context: UserContext = Depends(deps.require_operator)
):
    override = attempt_control_service.allow_new_attempt(db, context, override_in)
    return APIResponse(message="New attempt allowed", data=override)


@router.post("/expire-overdue", response_model=APIResponse[ExpirySweepResult])
async def expire_overdue(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.require_operator)
):
    result = attempt_control_service.expire_overdue(db)
    return APIResponse(message=f"{result.expired_count} attempt(s) expired", data=result)
