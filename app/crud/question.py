from sqlalchemy.orm import Session
from typing import List, Optional

from app.crud.base import CRUDBase
from app.models.question import Question
from app.schemas.question import QuestionCreate, QuestionUpdate

class CRUDQuestion(CRUDBase[Question, QuestionCreate, QuestionUpdate]):
    def get_by_exam(self, db: Session, exam_id: int) -> List[Question]:
        return (
            self.query(db)
            .filter(Question.exam_id == exam_id)
            .order_by(Question.position, Question.id)
            .all()
        )

    def get_in_exam(self, db: Session, *, exam_id: int, question_id: int) -> Optional[Question]:
        return (
            self.query(db)
            .filter(Question.exam_id == exam_id, Question.id == question_id)
            .first()
        )

question = CRUDQuestion(Question)
