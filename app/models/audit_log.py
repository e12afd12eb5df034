from sqlalchemy import Column, Integer, DateTime, String, Enum, event
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import AuditActionEnum
from app.models.question import JSONType

class AuditLog(Base):
    """Append-only record of administrative and grading operations."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(Enum(AuditActionEnum), nullable=False, index=True)
    actor_id = Column(String, nullable=False, index=True)
    candidate_id = Column(Integer, nullable=True, index=True)
    exam_id = Column(Integer, nullable=True, index=True)
    attempt_id = Column(Integer, nullable=True, index=True)
    previous_attempt_id = Column(Integer, nullable=True)
    entity_name = Column(String, nullable=True)
    entity_id = Column(Integer, nullable=True)
    reason = Column(String, nullable=True)
    details = Column(JSONType, nullable=True)
    occurred_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")
