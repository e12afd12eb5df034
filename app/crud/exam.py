from sqlalchemy.orm import Session, selectinload
from typing import Optional

from app.crud.base import CRUDBase
from app.models.exam import Exam
from app.schemas.exam import ExamCreate, ExamUpdate

class CRUDExam(CRUDBase[Exam, ExamCreate, ExamUpdate]):
    def get_with_questions(self, db: Session, id: int) -> Optional[Exam]:
        return (
            self.query(db)
            .options(selectinload(Exam.questions))
            .filter(Exam.id == id)
            .first()
        )

exam = CRUDExam(Exam)
