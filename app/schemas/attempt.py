from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.core.constants import AttemptStatusEnum, AttemptEventTypeEnum, ExpiryReasonEnum
from app.schemas.question import CandidateQuestion

# Event types a candidate client may report; the rest are written by the server.
CLIENT_EVENT_TYPES = frozenset({
    AttemptEventTypeEnum.NAVIGATED,
    AttemptEventTypeEnum.TAB_SWITCHED,
    AttemptEventTypeEnum.FULLSCREEN_EXITED,
    AttemptEventTypeEnum.WINDOW_BLUR,
    AttemptEventTypeEnum.WINDOW_FOCUS,
    AttemptEventTypeEnum.COPY_ATTEMPT,
    AttemptEventTypeEnum.PASTE_ATTEMPT,
    AttemptEventTypeEnum.HEARTBEAT,
})

class AttemptStart(BaseModel):
    exam_id: int
    access_code: Optional[str] = None
    device_info: Optional[str] = None

class AttemptCreate(BaseModel):
    candidate_id: int
    exam_id: int
    attempt_number: int = 1
    status: AttemptStatusEnum = AttemptStatusEnum.NOT_STARTED
    base_duration_seconds: int
    override_id: Optional[int] = None
    ip_address: Optional[str] = None
    device_info: Optional[str] = None

class AttemptUpdate(BaseModel):
    status: Optional[AttemptStatusEnum] = None
    total_score: Optional[float] = None
    is_passed: Optional[bool] = None

class Attempt(BaseModel):
    id: int
    candidate_id: int
    exam_id: int
    attempt_number: int
    status: AttemptStatusEnum
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    base_duration_seconds: int
    extra_time_seconds: int
    consumed_seconds: int
    resume_count: int
    paused_by: Optional[str] = None
    paused_at: Optional[datetime] = None
    expiry_reason: Optional[ExpiryReasonEnum] = None
    force_submitted_by: Optional[str] = None
    force_submitted_at: Optional[datetime] = None
    total_score: Optional[float] = None
    is_passed: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)

class AttemptStartResult(BaseModel):
    attempt: Attempt
    remaining_seconds: int
    resumed: bool
    questions: List[CandidateQuestion] = []

class AnswerSave(BaseModel):
    question_id: int
    selected_option_ids: Optional[List[int]] = None
    text_answer: Optional[str] = None

    @model_validator(mode='after')
    def at_least_one_answer(self):
        if self.selected_option_ids is None and self.text_answer is None:
            raise ValueError("Provide selected_option_ids or text_answer")
        return self

class AttemptAnswer(BaseModel):
    id: int
    attempt_id: int
    question_id: int
    selected_option_ids: Optional[List[int]] = None
    text_answer: Optional[str] = None
    answered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AttemptEventCreate(BaseModel):
    event_type: AttemptEventTypeEnum
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("event_type")
    @classmethod
    def client_reportable(cls, v):
        if v not in CLIENT_EVENT_TYPES:
            raise ValueError(f"Event type '{v.value}' cannot be reported by a client")
        return v

class AttemptEvent(BaseModel):
    id: int
    attempt_id: int
    event_type: AttemptEventTypeEnum
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

class AttemptTimer(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    remaining_seconds: int
    is_running: bool
    server_time: datetime

class AttemptDetail(Attempt):
    remaining_seconds: int = 0
    answers: List[AttemptAnswer] = []
    events: List[AttemptEvent] = []
