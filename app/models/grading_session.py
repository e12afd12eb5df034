from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Enum, Numeric, Boolean
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.constants import GradingStatusEnum
from app.models.mixins import AuditMixin

class GradingSession(AuditMixin, Base):
    __tablename__ = "grading_sessions"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, unique=True, index=True)
    status = Column(Enum(GradingStatusEnum), nullable=False, default=GradingStatusEnum.PENDING, index=True)
    total_score = Column(Numeric(10, 2), nullable=False, default=0)
    is_passed = Column(Boolean, nullable=True)
    graded_by = Column(String, nullable=True)
    graded_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    attempt = relationship("Attempt", back_populates="grading_session")
    graded_answers = relationship(
        "GradedAnswer",
        back_populates="grading_session",
        cascade="all, delete-orphan",
        order_by="GradedAnswer.question_id",
    )

    @property
    def is_completed(self) -> bool:
        return self.status == GradingStatusEnum.COMPLETED
