from sqlalchemy import Boolean, Column, String, Integer, Enum
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.constants import RoleEnum
from app.models.mixins import AuditMixin

class User(AuditMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    roll_no = Column(String, nullable=True, index=True)
    role = Column(Enum(RoleEnum), nullable=False, default=RoleEnum.CANDIDATE)
    is_active = Column(Boolean(), default=True)
    is_blocked = Column(Boolean(), default=False)

    attempts = relationship("Attempt", back_populates="candidate", foreign_keys="Attempt.candidate_id")
    assignments = relationship("ExamAssignment", back_populates="candidate", foreign_keys="ExamAssignment.candidate_id")
