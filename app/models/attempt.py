from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Enum, Numeric, Boolean, Index, text
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.constants import AttemptStatusEnum, ExpiryReasonEnum, LIVE_ATTEMPT_STATUSES, RUNNING_ATTEMPT_STATUSES
from app.models.mixins import AuditMixin

_LIVE_STATUS_SQL = "status IN ('NOT_STARTED', 'IN_PROGRESS', 'PAUSED')"

class Attempt(AuditMixin, Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # one live attempt per candidate and exam
        Index(
            "uq_attempts_live_candidate_exam",
            "candidate_id",
            "exam_id",
            unique=True,
            sqlite_where=text(_LIVE_STATUS_SQL),
            postgresql_where=text(_LIVE_STATUS_SQL),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    status = Column(Enum(AttemptStatusEnum), nullable=False, default=AttemptStatusEnum.NOT_STARTED, index=True)

    started_at = Column(DateTime, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    base_duration_seconds = Column(Integer, nullable=False, default=0)
    extra_time_seconds = Column(Integer, nullable=False, default=0)
    consumed_seconds = Column(Integer, nullable=False, default=0)
    running_since = Column(DateTime, nullable=True)
    resume_count = Column(Integer, nullable=False, default=0)
    paused_by = Column(String, nullable=True)
    paused_at = Column(DateTime, nullable=True)

    expiry_reason = Column(Enum(ExpiryReasonEnum), nullable=True)
    force_submitted_by = Column(String, nullable=True)
    force_submitted_at = Column(DateTime, nullable=True)
    override_id = Column(Integer, ForeignKey("attempt_overrides.id"), nullable=True)

    total_score = Column(Numeric(10, 2), nullable=True)
    is_passed = Column(Boolean, nullable=True)
    ip_address = Column(String, nullable=True)
    device_info = Column(String, nullable=True)

    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    candidate = relationship("User", back_populates="attempts", foreign_keys=[candidate_id])
    exam = relationship("Exam", back_populates="attempts")
    answers = relationship("AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan")
    events = relationship("AttemptEvent", back_populates="attempt", order_by="AttemptEvent.occurred_at")
    grading_session = relationship("GradingSession", back_populates="attempt", uselist=False)
    override = relationship("AttemptOverride", foreign_keys=[override_id])

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_ATTEMPT_STATUSES

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_ATTEMPT_STATUSES and self.running_since is not None

    @property
    def total_allowed_seconds(self) -> int:
        return (self.base_duration_seconds or 0) + (self.extra_time_seconds or 0)
