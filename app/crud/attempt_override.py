from sqlalchemy.orm import Session
from typing import Optional

from app.crud.base import CRUDBase
from app.models.attempt_override import AttemptOverride
from app.schemas.attempt_control import AllowNewAttemptRequest

class CRUDAttemptOverride(CRUDBase[AttemptOverride, AllowNewAttemptRequest, AllowNewAttemptRequest]):
    def get_unused(self, db: Session, *, candidate_id: int, exam_id: int) -> Optional[AttemptOverride]:
        return (
            self.query(db)
            .filter(
                AttemptOverride.candidate_id == candidate_id,
                AttemptOverride.exam_id == exam_id,
                AttemptOverride.is_used == False,
            )
            .order_by(AttemptOverride.granted_at)
            .with_for_update()
            .first()
        )

attempt_override = CRUDAttemptOverride(AttemptOverride)
