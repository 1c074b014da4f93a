from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional
from datetime import datetime
from enum import Enum


class UserRoleEnum(str, Enum):
    ADMIN = "admin"
    LOAN_OFFICER = "loan_officer"
    EMPLOYEE = "employee"


class UserCreateRequest(BaseModel):
    """Staff account creation request (admin only)"""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    role: UserRoleEnum = UserRoleEnum.EMPLOYEE

    @validator('username')
    def validate_username(cls, v):
        """Usernames are case-insensitive"""
        if not v.replace("_", "").replace(".", "").isalnum():
            raise ValueError('Username may only contain letters, digits, "_" and "."')
        return v.lower()


class UserUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRoleEnum] = None
    is_active: Optional[bool] = None


class UserLoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserSummary(BaseModel):
    """Minimal user reference embedded in loan responses"""
    id: int
    username: str
    first_name: str
    last_name: str

    class Config:
        from_attributes = True


class UserResponse(UserSummary):
    email: str
    phone_number: Optional[str] = None
    role: UserRoleEnum
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
