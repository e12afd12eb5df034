from sqlalchemy.orm import Session
from typing import Dict, Optional

from app.crud.base import CRUDBase
from app.models.attempt_answer import AttemptAnswer
from app.schemas.attempt import AnswerSave

class CRUDAttemptAnswer(CRUDBase[AttemptAnswer, AnswerSave, AnswerSave]):
    def get_by_attempt_and_question(self, db: Session, *, attempt_id: int, question_id: int) -> Optional[AttemptAnswer]:
        return (
            self.query(db)
            .filter(AttemptAnswer.attempt_id == attempt_id, AttemptAnswer.question_id == question_id)
            .first()
        )

    def get_map_by_attempt(self, db: Session, attempt_id: int) -> Dict[int, AttemptAnswer]:
        answers = self.query(db).filter(AttemptAnswer.attempt_id == attempt_id).all()
        return {a.question_id: a for a in answers}

attempt_answer = CRUDAttemptAnswer(AttemptAnswer)
