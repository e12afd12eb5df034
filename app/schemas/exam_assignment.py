from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

class AssignmentCreate(BaseModel):
    exam_id: int
    candidate_ids: List[int] = Field(..., min_length=1)
    schedule_from: Optional[datetime] = None
    schedule_to: Optional[datetime] = None

class AssignmentSkip(BaseModel):
    candidate_id: int
    reason: str

class AssignmentResult(BaseModel):
    created: int
    updated: int
    skipped: List[AssignmentSkip] = []

class UnassignMany(BaseModel):
    exam_id: int
    candidate_ids: List[int] = Field(..., min_length=1)

class UnassignItemResult(BaseModel):
    candidate_id: int
    success: bool
    error: Optional[str] = None

class ExamAssignment(BaseModel):
    id: int
    exam_id: int
    candidate_id: int
    schedule_from: Optional[datetime] = None
    schedule_to: Optional[datetime] = None
    is_active: bool
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
