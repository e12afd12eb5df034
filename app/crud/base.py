import math
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy.orm import Session, Query
from app.core.database import Base
from app.utils.time import utcnow

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)
T = TypeVar('T')

class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    size: int
    pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, items: List[Any], total: int, skip: int, limit: int) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=(skip // limit) + 1 if limit > 0 else 1,
            size=limit,
            pages=math.ceil(total / limit) if limit > 0 else 0,
            has_next=(skip + limit) < total,
            has_previous=skip > 0,
        )

class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _active(self, query: Query) -> Query:
        if hasattr(self.model, 'deleted_at'):
            query = query.filter(self.model.deleted_at == None)
        return query

    def query(self, db: Session) -> Query:
        return self._active(db.query(self.model))

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return self.query(db).filter(self.model.id == id).first()

    def get_for_update(self, db: Session, id: Any) -> Optional[ModelType]:
        """Row-locked read that also refreshes any copy already in the session."""
        return (
            self.query(db)
            .filter(self.model.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_multi(
        self, db: Session, *, skip: int = 0, limit: int = 100
    ) -> List[ModelType]:
        return self.query(db).order_by(self.model.id).offset(skip).limit(limit).all()

    def count(self, db: Session) -> int:
        return self.query(db).count()

    def create(self, db: Session, *, obj_in: Union[CreateSchemaType, Dict[str, Any]], commit: bool = True) -> ModelType:
        obj_in_data = obj_in if isinstance(obj_in, dict) else jsonable_encoder(obj_in)
        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        db.flush() # Populate ID
        db.refresh(db_obj) # Refresh to get ID and other defaults
        if commit:
            db.commit()
        return db_obj

    def update(
        self, db: Session, *, db_obj: ModelType, obj_in: Union[UpdateSchemaType, Dict[str, Any]], commit: bool = True
    ) -> ModelType:
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def delete(self, db: Session, *, id: int, deleted_by: Optional[str] = None) -> Optional[ModelType]:
        obj = db.get(self.model, id)
        if not obj:
            return None

        if hasattr(self.model, 'deleted_at'):
            obj.deleted_at = utcnow()
            obj.deleted_by = deleted_by
            db.add(obj)
            db.commit()
            db.refresh(obj)
        else:
            db.delete(obj)
            db.commit()
        return obj
