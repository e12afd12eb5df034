from sqlalchemy.orm import Session
from typing import Optional

from app.crud.base import CRUDBase
from app.models.graded_answer import GradedAnswer
from app.schemas.grading import ManualGrade

class CRUDGradedAnswer(CRUDBase[GradedAnswer, ManualGrade, ManualGrade]):
    def get_by_session_and_question(
        self, db: Session, *, grading_session_id: int, question_id: int
    ) -> Optional[GradedAnswer]:
        return (
            self.query(db)
            .filter(
                GradedAnswer.grading_session_id == grading_session_id,
                GradedAnswer.question_id == question_id,
            )
            .first()
        )

graded_answer = CRUDGradedAnswer(GradedAnswer)
