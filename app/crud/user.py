from typing import List, Optional
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.user import User
from app.schemas.user import UserCreate, UserUpdate

class CRUDUser(CRUDBase[User, UserCreate, UserUpdate]):
    def get_by_email(self, db: Session, *, email: str) -> Optional[User]:
        return self.query(db).filter(User.email == email).first()

    def get_many(self, db: Session, ids: List[int]) -> List[User]:
        if not ids:
            return []
        return self.query(db).filter(User.id.in_(ids)).all()

user = CRUDUser(User)
