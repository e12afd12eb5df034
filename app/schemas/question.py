from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List
from datetime import datetime

from app.core.constants import QuestionTypeEnum, OBJECTIVE_QUESTION_TYPES

class QuestionOption(BaseModel):
    id: int
    text: str

class QuestionBase(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    question_text: str = Field(..., min_length=1)
    question_type: QuestionTypeEnum
    points: float = Field(1, gt=0)
    position: int = 0
    options: Optional[List[QuestionOption]] = None
    correct_option_ids: Optional[List[int]] = None
    model_answer: Optional[str] = None

class QuestionCreate(QuestionBase):

    @model_validator(mode='after')
    def check_answer_key(self):
        if self.question_type in OBJECTIVE_QUESTION_TYPES:
            if not self.options:
                raise ValueError("Objective questions need options")
            if not self.correct_option_ids:
                raise ValueError("Objective questions need correct_option_ids")
            option_ids = {o.id for o in self.options}
            if not set(self.correct_option_ids) <= option_ids:
                raise ValueError("correct_option_ids must reference existing options")
            if self.question_type != QuestionTypeEnum.MULTIPLE_CHOICE and len(self.correct_option_ids) != 1:
                raise ValueError("Single choice and true/false questions take exactly one correct option")
        return self

class QuestionUpdate(BaseModel):
    question_text: Optional[str] = None
    points: Optional[float] = Field(None, gt=0)
    position: Optional[int] = None
    model_answer: Optional[str] = None

class Question(QuestionBase):
    id: int
    exam_id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CandidateQuestion(BaseModel):
    """Question as shown to a candidate, without the answer key."""
    id: int
    position: int
    question_text: str
    question_type: QuestionTypeEnum
    points: float
    options: Optional[List[QuestionOption]] = None

    model_config = ConfigDict(from_attributes=True)
