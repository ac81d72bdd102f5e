from typing import Literal, Optional

from pydantic import BaseModel, EmailStr

Role = Literal["admin", "teacher", "student", "parent"]


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    username: Optional[str] = None
    role: Optional[str] = None


class UserBase(BaseModel):
    username: str
    full_name: Optional[str] = None
    email: EmailStr


class UserCreate(UserBase):
    password: str
    role: Role


class UserOut(UserBase):
    id: int
    role: Role
    is_active: bool
