from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List
from datetime import datetime

from app.schemas.question import Question

class ExamBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    duration_minutes: int = Field(60, gt=0)
    pass_score: float = Field(0, ge=0)
    max_attempts: int = Field(1, ge=0)
    access_code: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_active: bool = True
    is_published: bool = False

    @model_validator(mode='after')
    def check_window(self):
        if self.start_at and self.end_at and self.start_at >= self.end_at:
            raise ValueError("start_at must be before end_at")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Final Exam",
                "description": "End of term assessment",
                "duration_minutes": 60,
                "pass_score": 50,
                "max_attempts": 1,
                "access_code": None,
                "is_active": True,
                "is_published": True
            }
        }

class ExamCreate(ExamBase):
    pass

class ExamUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    pass_score: Optional[float] = Field(None, ge=0)
    max_attempts: Optional[int] = Field(None, ge=0)
    access_code: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_published: Optional[bool] = None

class Exam(ExamBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    questions: List[Question] = []

    model_config = ConfigDict(from_attributes=True)
