# npwt/schemas/auth.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from uuid import UUID


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class UserInDB(BaseModel):
    id: UUID
    email: str
    name: str
    role: str
    is_active: bool
    department: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInDB
