from sqlalchemy.orm import Session, selectinload
from typing import List, Optional, Tuple

from app.core.constants import GradingStatusEnum
from app.crud.base import CRUDBase
from app.models.attempt import Attempt
from app.models.grading_session import GradingSession
from app.schemas.grading import GradingSessionSummary

class CRUDGradingSession(CRUDBase[GradingSession, GradingSessionSummary, GradingSessionSummary]):

    def _query_with_relationships(self, db: Session):
        return self.query(db).options(
            selectinload(GradingSession.graded_answers),
            selectinload(GradingSession.attempt),
        )

    def get_detail(self, db: Session, id: int) -> Optional[GradingSession]:
        return self._query_with_relationships(db).filter(GradingSession.id == id).first()

    def get_by_attempt(self, db: Session, attempt_id: int) -> Optional[GradingSession]:
        return self._query_with_relationships(db).filter(GradingSession.attempt_id == attempt_id).first()

    def get_pending_ids(self, db: Session) -> List[int]:
        rows = (
            self.query(db)
            .with_entities(GradingSession.id)
            .filter(GradingSession.status == GradingStatusEnum.PENDING)
            .order_by(GradingSession.id)
            .all()
        )
        return [row[0] for row in rows]

    def list_filtered(
        self,
        db: Session,
        *,
        status: Optional[GradingStatusEnum] = None,
        exam_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[GradingSession], int]:
        query = self.query(db)
        if status is not None:
            query = query.filter(GradingSession.status == status)
        if exam_id is not None:
            query = query.join(Attempt, Attempt.id == GradingSession.attempt_id).filter(Attempt.exam_id == exam_id)
        total = query.count()
        items = query.order_by(GradingSession.id).offset(skip).limit(limit).all()
        return items, total

grading_session = CRUDGradingSession(GradingSession)
