from sqlalchemy.orm import Session, selectinload
from typing import List, Optional, Sequence, Tuple

from app.core.constants import AttemptStatusEnum, LIVE_ATTEMPT_STATUSES, GRADABLE_ATTEMPT_STATUSES
from app.crud.base import CRUDBase
from app.models.attempt import Attempt
from app.models.grading_session import GradingSession
from app.schemas.attempt import AttemptCreate, AttemptUpdate

class CRUDAttempt(CRUDBase[Attempt, AttemptCreate, AttemptUpdate]):

    def _query_with_relationships(self, db: Session):
        return self.query(db).options(
            selectinload(Attempt.exam),
            selectinload(Attempt.candidate),
        )

    def get_detail(self, db: Session, id: int) -> Optional[Attempt]:
        return (
            self._query_with_relationships(db)
            .options(selectinload(Attempt.answers), selectinload(Attempt.events))
            .filter(Attempt.id == id)
            .first()
        )

    def get_live(self, db: Session, *, candidate_id: int, exam_id: int) -> Optional[Attempt]:
        return (
            self.query(db)
            .filter(
                Attempt.candidate_id == candidate_id,
                Attempt.exam_id == exam_id,
                Attempt.status.in_(LIVE_ATTEMPT_STATUSES),
            )
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_live_elsewhere(self, db: Session, *, candidate_id: int, exam_id: int) -> Optional[Attempt]:
        return (
            self.query(db)
            .filter(
                Attempt.candidate_id == candidate_id,
                Attempt.exam_id != exam_id,
                Attempt.status.in_(LIVE_ATTEMPT_STATUSES),
            )
            .first()
        )

    def count_for_pair(self, db: Session, *, candidate_id: int, exam_id: int) -> int:
        return (
            self.query(db)
            .filter(Attempt.candidate_id == candidate_id, Attempt.exam_id == exam_id)
            .count()
        )

    def get_finished_without_session_ids(self, db: Session) -> List[int]:
        """Gradable attempts whose grading session was never created."""
        rows = (
            self.query(db)
            .with_entities(Attempt.id)
            .outerjoin(GradingSession, GradingSession.attempt_id == Attempt.id)
            .filter(
                Attempt.status.in_(GRADABLE_ATTEMPT_STATUSES),
                GradingSession.id == None,
            )
            .order_by(Attempt.id)
            .all()
        )
        return [row[0] for row in rows]

    def exists_for_pair(self, db: Session, *, candidate_id: int, exam_id: int) -> bool:
        return (
            self.query(db)
            .filter(Attempt.candidate_id == candidate_id, Attempt.exam_id == exam_id)
            .first()
        ) is not None

    def get_live_attempts(self, db: Session) -> List[Attempt]:
        return (
            self.query(db)
            .options(selectinload(Attempt.exam))
            .filter(Attempt.status.in_(LIVE_ATTEMPT_STATUSES))
            .order_by(Attempt.id)
            .all()
        )

    def list_filtered(
        self,
        db: Session,
        *,
        statuses: Optional[Sequence[AttemptStatusEnum]] = None,
        exam_id: Optional[int] = None,
        candidate_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Attempt], int]:
        query = self._query_with_relationships(db)
        if statuses:
            query = query.filter(Attempt.status.in_(list(statuses)))
        if exam_id is not None:
            query = query.filter(Attempt.exam_id == exam_id)
        if candidate_id is not None:
            query = query.filter(Attempt.candidate_id == candidate_id)
        total = query.count()
        items = query.order_by(Attempt.started_at.desc(), Attempt.id.desc()).offset(skip).limit(limit).all()
        return items, total

    def add_extra_time(self, db: Session, *, id: int, seconds: int) -> int:
        """Atomic increment; bumps the version so stale in-memory copies fail their next flush."""
        return (
            db.query(Attempt)
            .filter(Attempt.id == id, Attempt.status.in_(LIVE_ATTEMPT_STATUSES))
            .update(
                {
                    Attempt.extra_time_seconds: Attempt.extra_time_seconds + seconds,
                    Attempt.version_id: Attempt.version_id + 1,
                },
                synchronize_session=False,
            )
        )

attempt = CRUDAttempt(Attempt)
