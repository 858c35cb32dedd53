from pydantic import BaseModel
from uuid import UUID
from datetime import date
from typing import Optional

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    confirm_password: str
    first_name: str
    last_name: str
    birth_date: Optional[date] = None
    gender: str
    sexual_preference: str = "both"

class RegisterResponse(BaseModel):
    user_id: UUID
    message: str = "Registration successful. Please check your email to verify your account."

class VerifyEmailRequest(BaseModel):
    token: str

class LoginRequest(BaseModel):
    identifier: str
    password: str

class LoginResponse(BaseModel):
    user_id: UUID
    username: str

class PasswordResetRequest(BaseModel):
    email: str

class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str

class PasswordChange(BaseModel):
    current_password: str
    new_password: str
