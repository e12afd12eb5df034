from sqlalchemy import Column, Integer, String, ForeignKey, Enum, Numeric, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from app.core.database import Base
from app.core.constants import QuestionTypeEnum, OBJECTIVE_QUESTION_TYPES
from app.models.mixins import AuditMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")

class Question(AuditMixin, Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    question_text = Column(String, nullable=False)
    question_type = Column(Enum(QuestionTypeEnum), nullable=False)
    points = Column(Numeric(10, 2), nullable=False, default=1)
    options = Column(JSONType, nullable=True)  # [{"id": 1, "text": "..."}]
    correct_option_ids = Column(JSONType, nullable=True)
    model_answer = Column(String, nullable=True)  # reference answer for subjective questions

    exam = relationship("Exam", back_populates="questions")

    @property
    def is_objective(self) -> bool:
        return self.question_type in OBJECTIVE_QUESTION_TYPES
