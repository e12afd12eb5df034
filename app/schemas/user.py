from pydantic import BaseModel, EmailStr, field_validator, ConfigDict, model_validator
from typing import Optional, Any
from datetime import datetime

from app.core.constants import RoleEnum

class UserBase(BaseModel):
    """Base user schema with common fields."""
    full_name: str
    email: EmailStr
    roll_no: Optional[str] = None

class UserCreate(UserBase):
    """Schema for registering a user with a role."""
    role: RoleEnum = RoleEnum.CANDIDATE

    @field_validator("full_name")
    def not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("Full name cannot be empty")
        return v.strip()

class UserUpdate(BaseModel):
    """Schema for updating a user's profile or access."""
    full_name: Optional[str] = None
    is_active: Optional[bool] = None
    is_blocked: Optional[bool] = None

    @model_validator(mode='before')
    @classmethod
    def at_least_one_value(cls, data: Any):
        if isinstance(data, dict) and all(v is None for v in data.values()):
            raise ValueError("At least one field must be provided for update")
        return data

class User(UserBase):
    """Main user schema for reading user data."""
    id: int
    role: RoleEnum
    is_active: bool
    is_blocked: bool
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

class UserContext(BaseModel):
    """Authenticated caller: the user row and the role carried by the token."""
    user: Any
    role: RoleEnum

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def actor_id(self) -> str:
        return str(self.user.id)
