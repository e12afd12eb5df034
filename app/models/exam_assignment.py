from sqlalchemy import Column, Integer, ForeignKey, Boolean, DateTime, String, Index, text
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.mixins import AuditMixin

class ExamAssignment(AuditMixin, Base):
    __tablename__ = "exam_assignments"
    __table_args__ = (
        Index(
            "uq_exam_assignments_active_pair",
            "exam_id",
            "candidate_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    candidate_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    schedule_from = Column(DateTime, nullable=True)
    schedule_to = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    assigned_by = Column(String, nullable=True)
    assigned_at = Column(DateTime, nullable=True)

    exam = relationship("Exam", back_populates="assignments")
    candidate = relationship("User", back_populates="assignments", foreign_keys=[candidate_id])

    def covers(self, moment) -> bool:
        if self.schedule_from and moment < self.schedule_from:
            return False
        if self.schedule_to and moment > self.schedule_to:
            return False
        return True
