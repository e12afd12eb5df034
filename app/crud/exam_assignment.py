from sqlalchemy.orm import Session, selectinload
from typing import List, Optional

from app.crud.base import CRUDBase
from app.models.exam_assignment import ExamAssignment
from app.schemas.exam_assignment import AssignmentCreate

class CRUDExamAssignment(CRUDBase[ExamAssignment, AssignmentCreate, AssignmentCreate]):
    def get_active(self, db: Session, *, exam_id: int, candidate_id: int) -> Optional[ExamAssignment]:
        return (
            self.query(db)
            .filter(
                ExamAssignment.exam_id == exam_id,
                ExamAssignment.candidate_id == candidate_id,
                ExamAssignment.is_active == True,
            )
            .first()
        )

    def get_by_exam(self, db: Session, exam_id: int, *, active_only: bool = True) -> List[ExamAssignment]:
        query = (
            self.query(db)
            .options(selectinload(ExamAssignment.candidate))
            .filter(ExamAssignment.exam_id == exam_id)
        )
        if active_only:
            query = query.filter(ExamAssignment.is_active == True)
        return query.order_by(ExamAssignment.candidate_id).all()

exam_assignment = CRUDExamAssignment(ExamAssignment)
