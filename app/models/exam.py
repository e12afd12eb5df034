from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.mixins import AuditMixin

class Exam(AuditMixin, Base):
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    pass_score = Column(Numeric(10, 2), nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=1)  # 0 means unlimited
    access_code = Column(String, nullable=True)
    start_at = Column(DateTime, nullable=True)
    end_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    is_published = Column(Boolean, default=False)

    questions = relationship(
        "Question",
        back_populates="exam",
        order_by="Question.position",
        cascade="all, delete-orphan",
    )
    attempts = relationship("Attempt", back_populates="exam")
    assignments = relationship("ExamAssignment", back_populates="exam")

    @property
    def duration_seconds(self) -> int:
        return (self.duration_minutes or 0) * 60
