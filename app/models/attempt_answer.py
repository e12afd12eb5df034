from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.mixins import AuditMixin
from app.models.question import JSONType

class AttemptAnswer(AuditMixin, Base):
    __tablename__ = "attempt_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answers_attempt_question"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    selected_option_ids = Column(JSONType, nullable=True)
    text_answer = Column(String, nullable=True)
    answered_at = Column(DateTime, nullable=True)

    attempt = relationship("Attempt", back_populates="answers")
    question = relationship("Question")
