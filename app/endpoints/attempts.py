from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.attempt import (
    AnswerSave,
    Attempt,
    AttemptAnswer,
    AttemptDetail,
    AttemptEventCreate,
    AttemptStart,
    AttemptStartResult,
    AttemptTimer,
)
from app.schemas.attempt_control import PauseRequest, ResumeRequest
from app.schemas.user import UserContext
from app.services.attempt import attempt_service

router = APIRouter()

@router.post("/start", response_model=APIResponse[AttemptStartResult], status_code=status.HTTP_201_CREATED)
async def start_attempt(
    *,
    request: Request,
    db: Session = Depends(deps.get_db),
    start_in: AttemptStart,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    ip_address = request.client.host if request.client else None
    result = attempt_service.start_attempt(db, context, start_in, ip_address=ip_address)
    message = "Resuming existing attempt" if result.resumed else "Attempt started successfully"
    return APIResponse(message=message, data=result)


@router.get("/{attempt_id}", response_model=APIResponse[AttemptDetail])
async def get_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    detail = attempt_service.get_attempt_detail(db, context, attempt_id)
    return APIResponse(message="Attempt retrieved successfully", data=detail)


@router.post("/{attempt_id}/answers", response_model=APIResponse[AttemptAnswer])
async def save_answer(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    answer_in: AnswerSave,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    answer = attempt_service.save_answer(db, context, attempt_id, answer_in)
    return APIResponse(message="Answer saved successfully", data=answer)


@router.post("/{attempt_id}/events", response_model=APIResponse[AttemptTimer])
async def log_event(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    event_in: AttemptEventCreate,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    timer = attempt_service.log_event(db, context, attempt_id, event_in)
    return APIResponse(message="Event recorded", data=timer)


@router.post("/{attempt_id}/heartbeat", response_model=APIResponse[AttemptTimer])
async def heartbeat(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    timer = attempt_service.heartbeat(db, context, attempt_id)
    return APIResponse(message="Heartbeat recorded", data=timer)


@router.get("/{attempt_id}/timer", response_model=APIResponse[AttemptTimer])
async def get_timer(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    timer = attempt_service.get_timer(db, context, attempt_id)
    return APIResponse(message="Timer retrieved successfully", data=timer)


@router.post("/{attempt_id}/pause", response_model=APIResponse[Attempt])
async def pause_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    pause_in: PauseRequest,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt = attempt_service.pause_attempt(db, context, attempt_id, reason=pause_in.reason)
    return APIResponse(message="Attempt paused", data=attempt)


@router.post("/{attempt_id}/resume", response_model=APIResponse[AttemptTimer])
async def resume_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    resume_in: ResumeRequest,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    timer = attempt_service.resume_attempt(db, context, attempt_id, reason=resume_in.reason)
    return APIResponse(message="Attempt resumed successfully", data=timer)


@router.post("/{attempt_id}/submit", response_model=APIResponse[Attempt])
async def submit_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    context: UserContext = Depends(deps.get_current_user_with_context)
):
    attempt = attempt_service.submit_attempt(db, context, attempt_id)
    return APIResponse(message="Attempt submitted successfully", data=attempt)
