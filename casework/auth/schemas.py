from typing import Optional
from pydantic import BaseModel, EmailStr, ConfigDict
from uuid import UUID

from casework.auth.models import UserRole

class UserCreate(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None
    role: UserRole = UserRole.VIEWER
    is_verifier: bool = False
    verifier_max_concurrent: Optional[int] = None

class UserResponse(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    role: UserRole
    is_active: bool
    is_verifier: bool
    verifier_max_concurrent: int
    capabilities: list[str] = []

    model_config = ConfigDict(from_attributes=True)
