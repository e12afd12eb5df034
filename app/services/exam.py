import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.decorators import closes_transaction
from app.core.exceptions import NotFoundException
from app.crud.exam import exam as crud_exam
from app.crud.question import question as crud_question
from app.schemas.exam import Exam, ExamCreate, ExamUpdate
from app.schemas.question import Question, QuestionCreate
from app.schemas.user import UserContext
from app.utils.permission import PermissionHelper as permission_helper
from app.utils.time import as_naive_utc

logger = logging.getLogger(__name__)


class ExamService:
    """Minimal exam configuration and question bank used by attempts and grading."""

    def _require_exam(self, db: Session, exam_id: int):
        exam = crud_exam.get_with_questions(db, id=exam_id)
        if not exam:
            raise NotFoundException("Exam not found.")
        return exam

    @closes_transaction
    def create_exam(self, db: Session, current_user_context: UserContext, exam_in: ExamCreate) -> Exam:
        permission_helper.require_operator(current_user_context)
        data = exam_in.model_dump()
        for field in ("start_at", "end_at"):
            if data[field]:
                data[field] = as_naive_utc(data[field])
        data["created_by"] = current_user_context.actor_id
        exam = crud_exam.create(db, obj_in=data)
        logger.info(f"Exam {exam.id} created by {current_user_context.actor_id}")
        return Exam.model_validate(exam)

    @closes_transaction
    def update_exam(self, db: Session, current_user_context: UserContext, exam_id: int, exam_in: ExamUpdate) -> Exam:
        permission_helper.require_operator(current_user_context)
        exam = self._require_exam(db, exam_id)
        data = exam_in.model_dump(exclude_unset=True)
        for field in ("start_at", "end_at"):
            if data.get(field):
                data[field] = as_naive_utc(data[field])
        data["updated_by"] = current_user_context.actor_id
        exam = crud_exam.update(db, db_obj=exam, obj_in=data)
        return Exam.model_validate(exam)

    @closes_transaction
    def get_exam(self, db: Session, current_user_context: UserContext, exam_id: int) -> Exam:
        permission_helper.require_grader(current_user_context)
        return Exam.model_validate(self._require_exam(db, exam_id))

    @closes_transaction
    def add_question(
        self, db: Session, current_user_context: UserContext, exam_id: int, question_in: QuestionCreate
    ) -> Question:
        permission_helper.require_operator(current_user_context)
        self._require_exam(db, exam_id)
        data = question_in.model_dump()
        data["exam_id"] = exam_id
        data["created_by"] = current_user_context.actor_id
        question = crud_question.create(db, obj_in=data)
        return Question.model_validate(question)

    @closes_transaction
    def list_questions(self, db: Session, current_user_context: UserContext, exam_id: int) -> List[Question]:
        permission_helper.require_grader(current_user_context)
        self._require_exam(db, exam_id)
        return [Question.model_validate(q) for q in crud_question.get_by_exam(db, exam_id)]


exam_service = ExamService()
