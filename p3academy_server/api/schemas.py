# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

import re
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator

from p3academy_server.roles import Role

PASSWORD_RULES: list[tuple[str, str]] = [
    (r"[A-Z]", "Password must contain at least one uppercase letter"),
    (r"[a-z]", "Password must contain at least one lowercase letter"),
    (r"\d", "Password must contain at least one number"),
]


def check_password_strength(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise ValueError(message)
    return password


StrongPassword = Annotated[str, AfterValidator(check_password_strength)]


# Auth
class RegisterRequest(BaseModel):
    email: EmailStr
    password: StrongPassword
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = Role.STUDENT
    institution: str | None = None

    @field_validator("role")
    @classmethod
    def _no_self_service_admin(cls, v: Role) -> Role:
        if v == Role.ADMIN:
            raise ValueError("Admin accounts cannot be self-registered")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=256)
    password: StrongPassword


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: StrongPassword


class ProfileUpdate(BaseModel):
    """Editable profile fields. Email, role and password are changed elsewhere."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    institution: str | None = Field(default=None, max_length=255)


class RoleUpdate(BaseModel):
    role: Role


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    institution: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    success: bool = True
    user: UserResponse
    redirect: str
    access_token: str
    token_type: str = "bearer"


class CurrentUserResponse(UserResponse):
    redirect: str


class ProfileResponse(BaseModel):
    success: bool = True
    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ResetFailureResponse(BaseModel):
    error: str
    message: str
