from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Boolean
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.mixins import AuditMixin

class AttemptOverride(AuditMixin, Base):
    """Admin grant of one extra attempt beyond the exam's max_attempts."""
    __tablename__ = "attempt_overrides"

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    granted_by = Column(String, nullable=False)
    reason = Column(String, nullable=False)
    granted_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    used_attempt_id = Column(Integer, nullable=True)
    used_at = Column(DateTime, nullable=True)

    candidate = relationship("User", foreign_keys=[candidate_id])
    exam = relationship("Exam")
