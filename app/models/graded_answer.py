from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Numeric, Boolean, UniqueConstraint, event
from sqlalchemy.orm import relationship
from sqlalchemy.orm.attributes import get_history
from app.core.database import Base
from app.models.mixins import AuditMixin
from app.models.question import JSONType

SNAPSHOT_FIELDS = ("selected_option_ids", "text_answer")

class GradedAnswer(AuditMixin, Base):
    __tablename__ = "graded_answers"
    __table_args__ = (UniqueConstraint("grading_session_id", "question_id", name="uq_graded_answers_session_question"),)

    id = Column(Integer, primary_key=True, index=True)
    grading_session_id = Column(Integer, ForeignKey("grading_sessions.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    score = Column(Numeric(10, 2), nullable=True)  # NULL until graded
    max_points = Column(Numeric(10, 2), nullable=False, default=0)
    is_correct = Column(Boolean, nullable=True)
    is_manually_graded = Column(Boolean, nullable=False, default=False)
    grader_comment = Column(String, nullable=True)
    graded_by = Column(String, nullable=True)
    graded_at = Column(DateTime, nullable=True)

    # snapshot of the candidate's answer at grading time
    selected_option_ids = Column(JSONType, nullable=True)
    text_answer = Column(String, nullable=True)

    grading_session = relationship("GradingSession", back_populates="graded_answers")
    question = relationship("Question")

    @property
    def is_graded(self) -> bool:
        return self.score is not None


@event.listens_for(GradedAnswer, "before_update")
def _protect_snapshot(mapper, connection, target):
    for field in SNAPSHOT_FIELDS:
        if get_history(target, field).has_changes():
            raise ValueError(f"GradedAnswer.{field} is an immutable snapshot")
