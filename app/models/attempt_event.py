from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.constants import AttemptEventTypeEnum
from app.models.mixins import AuditMixin
from app.models.question import JSONType

class AttemptEvent(AuditMixin, Base):
    __tablename__ = "attempt_events"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    event_type = Column(Enum(AttemptEventTypeEnum), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSONType, nullable=True)
    occurred_at = Column(DateTime, nullable=False)

    attempt = relationship("Attempt", back_populates="events")
