from typing import List
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.user import User, UserCreate, UserUpdate, UserContext
from app.services.user import user_service

router = APIRouter()

@router.get("/me", response_model=APIResponse[User])
async def get_me(context: UserContext = Depends(deps.get_current_user_with_context)):
    return APIResponse(message="User retrieved successfully", data=user_service.get_me(context))


@router.post("/", response_model=APIResponse[User], status_code=status.HTTP_201_CREATED)
async def create_user(
    *,
    db: Session = Depends(deps.get_db),
    user_in: UserCreate,
    context: UserContext = Depends(deps.require_operator)
):
    user = user_service.create_user(db, context, user_in)
    return APIResponse(message="User created successfully", data=user)


@router.get("/", response_model=APIResponse[List[User]])
async def list_users(
    db: Session = Depends(deps.get_db),
    context: UserContext = Depends(deps.get_current_user_with_context),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    users = user_service.list_users(db, context, skip=skip, limit=limit)
    return APIResponse(message="Users retrieved successfully", data=users)


@router.put("/{user_id}", response_model=APIResponse[User])
async def update_user(
    *,
    db: Session = Depends(deps.get_db),
    user_id: int,
    user_in: UserUpdate,
    context: UserContext = Depends(deps.require_operator)
):
    user = user_service.update_user(db, context, user_id, user_in)
    return APIResponse(message="User updated successfully", data=user)
