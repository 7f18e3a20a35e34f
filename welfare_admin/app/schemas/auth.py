"""
Authentication Pydantic schemas.

Defines request and response schemas for the OTP authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, Dict, Any
from welfare_admin.app.models.enums import UserRole, OtpPurpose

PHONE_PATTERN = r"^[6-9]\d{9}$"


class SendOTPRequest(BaseModel):
    """Used by POST /auth/send-otp."""
    phone: str = Field(..., pattern=PHONE_PATTERN, description="10-digit mobile number")
    purpose: OtpPurpose = Field(default=OtpPurpose.LOGIN, description="login, registration or phone_verification")


class VerifyOTPRequest(BaseModel):
    phone: str = Field(..., pattern=PHONE_PATTERN)
    otp: str = Field(..., pattern=r"^\d{6}$")
    purpose: OtpPurpose = OtpPurpose.LOGIN


class CompleteRegistrationRequest(BaseModel):
    """Used after a registration OTP has been verified."""
    phone: str = Field(..., pattern=PHONE_PATTERN)
    name: str = Field(..., min_length=2, max_length=150)
    email: Optional[EmailStr] = None
    district: Optional[str] = Field(None, max_length=100)
    area: Optional[str] = Field(None, max_length=100)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    device_id: Optional[str] = None
    refresh_token: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    """
    Profile changes a user may make to their own record.

    Role, phone, scope and status are not accepted here.
    """
    name: Optional[str] = Field(None, min_length=2, max_length=150)
    email: Optional[EmailStr] = None
    profile: Optional[Dict[str, Any]] = None


class ChangePhoneRequest(BaseModel):
    new_phone: str = Field(..., pattern=PHONE_PATTERN)
    otp: str = Field(..., pattern=r"^\d{6}$")


class RegisterDeviceRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    platform: str = Field(..., pattern=r"^(android|ios|web)$")
    fcm_token: Optional[str] = Field(None, max_length=512)


class UserResponse(BaseModel):
    """Authenticated user's own record."""
    id: int
    phone: str
    name: Optional[str]
    email: Optional[str]
    role: UserRole
    district: Optional[str]
    area: Optional[str]
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime]
    profile: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True
