from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime

from app.core.constants import AuditActionEnum

class AuditLog(BaseModel):
    id: int
    action: AuditActionEnum
    actor_id: str
    candidate_id: Optional[int] = None
    exam_id: Optional[int] = None
    attempt_id: Optional[int] = None
    previous_attempt_id: Optional[int] = None
    entity_name: Optional[str] = None
    entity_id: Optional[int] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)
