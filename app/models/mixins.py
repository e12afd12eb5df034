from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func


class AuditMixin:
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    updated_by = Column(String, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
