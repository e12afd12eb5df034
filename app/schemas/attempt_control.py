from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.attempt import Attempt

class AttemptMonitorRow(Attempt):
    candidate_name: Optional[str] = None
    exam_title: Optional[str] = None
    remaining_seconds: int = 0
    can_force_end: bool = False
    can_resume: bool = False
    can_add_time: bool = False

class ForceEndRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class PauseRequest(BaseModel):
    reason: Optional[str] = None

class ResumeRequest(BaseModel):
    reason: Optional[str] = None

class AddTimeRequest(BaseModel):
    extra_minutes: int
    reason: Optional[str] = None

class AddTimeResult(BaseModel):
    attempt_id: int
    extra_time_seconds: int
    remaining_seconds: int

class AllowNewAttemptRequest(BaseModel):
    candidate_id: int
    exam_id: int
    reason: str = Field(..., min_length=1)

class AttemptOverride(BaseModel):
    id: int
    candidate_id: int
    exam_id: int
    granted_by: str
    reason: str
    granted_at: datetime
    is_used: bool
    used_attempt_id: Optional[int] = None
    used_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ExpirySweepResult(BaseModel):
    expired_count: int
    attempt_ids: List[int] = []
