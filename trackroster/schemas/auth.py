"""Verification request/response bodies. Field names follow the web client (camelCase)."""
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class IssueVerificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    full_name: str | None = Field(default=None, alias="fullName", max_length=255)
    password: str = Field(min_length=1)


class IssueVerificationResponse(BaseModel):
    success: bool = True


class RedeemVerificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    code: str = Field(min_length=1, max_length=32)
    password: str | None = None


class SessionUser(BaseModel):
    id: int
    email: str
    full_name: str | None = None


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionUser


class RedeemVerificationResponse(BaseModel):
    verified: bool
    session: SessionResponse | None = None
    message: str | None = None


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    email_verified: bool
