from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .profiles import Role


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: Optional[str] = Field(None, max_length=200)
    role: Role = Role.BUYER
    store_name: Optional[str] = Field(None, max_length=200)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    token: str
    expires_at: str
    user_id: str
