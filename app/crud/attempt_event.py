from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.constants import AttemptEventTypeEnum
from app.crud.base import CRUDBase
from app.models.attempt_event import AttemptEvent
from app.schemas.attempt import AttemptEventCreate

class CRUDAttemptEvent(CRUDBase[AttemptEvent, AttemptEventCreate, AttemptEventCreate]):
    def get_by_attempt(
        self, db: Session, attempt_id: int, *, event_type: Optional[AttemptEventTypeEnum] = None
    ) -> List[AttemptEvent]:
        query = self.query(db).filter(AttemptEvent.attempt_id == attempt_id)
        if event_type is not None:
            query = query.filter(AttemptEvent.event_type == event_type)
        return query.order_by(AttemptEvent.occurred_at, AttemptEvent.id).all()

attempt_event = CRUDAttemptEvent(AttemptEvent)
