"""
Authentication API endpoints.

Phone + OTP login and registration, token refresh, logout, profile and device
registration for the admin and mobile clients.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from welfare_admin.app.core.dependencies import get_current_user, get_current_user_model
from welfare_admin.app.core.exceptions import (
    AuthenticationError, ConflictError, NotFoundError, ValidationError, AppException
)
from welfare_admin.app.core.jwt import create_token_pair, decode_access_token
from welfare_admin.app.core.redis_client import get_redis
from welfare_admin.app.core.response import success_response
from welfare_admin.app.core.token_revocation import (
    revoke_token, revoke_user_sessions, is_token_revoked, claim_token,
)
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.enums import OtpPurpose, UserRole
from welfare_admin.app.models.user import User, UserDevice
from welfare_admin.app.schemas.auth import (
    SendOTPRequest, VerifyOTPRequest, CompleteRegistrationRequest, RefreshTokenRequest,
    LogoutRequest, UpdateProfileRequest, ChangePhoneRequest, RegisterDeviceRequest, UserResponse
)
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.otp import OTPService
from welfare_admin.app.services.sms import SMSClient, get_sms_client

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _user_by_phone(db: AsyncSession, phone: str):
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def _email_taken(db: AsyncSession, email: str, exclude_user_id: int = None) -> bool:
    query = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    return (await db.execute(query)).scalar_one_or_none() is not None


@router.post("/send-otp")
async def send_otp(
    payload: SendOTPRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    sms_client: SMSClient = Depends(get_sms_client),
):
    """
    Send an OTP.

    - login: the number must belong to an active user
    - registration: the number must not belong to an active user; an inactive
      placeholder user is created until registration completes
    - phone_verification: the number must not be in use
    """
    user = await _user_by_phone(db, payload.phone)

    if payload.purpose == OtpPurpose.LOGIN:
        if not user or not user.is_active:
            raise NotFoundError("User")
    elif payload.purpose == OtpPurpose.REGISTRATION:
        if user and user.is_active:
            raise ConflictError("Phone number already registered")
    elif user:
        raise ConflictError("Phone number already in use")

    expires_at = await OTPService.issue(redis, sms_client, payload.phone, payload.purpose.value)

    if payload.purpose == OtpPurpose.REGISTRATION and user is None:
        user = User(phone=payload.phone, role=UserRole.BENEFICIARY, is_active=False)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # concurrent send-otp for the same number created it first
            await db.rollback()
            user = await _user_by_phone(db, payload.phone)

    await log_activity(
        db, ActivityAction.OTP_SENT, "auth", f"OTP sent for {payload.purpose.value}",
        user_id=user.id if user else None, details={"purpose": payload.purpose.value}, request=request,
    )
    return success_response(
        {"phone": payload.phone, "purpose": payload.purpose.value, "expires_at": expires_at},
        "OTP sent successfully",
    )


@router.post("/verify-otp")
async def verify_otp(
    payload: VerifyOTPRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Verify an OTP.

    Registration OTPs return `requires_registration`; login OTPs return tokens.
    """
    user = await _user_by_phone(db, payload.phone)
    if not user:
        raise NotFoundError("User")
    if payload.purpose == OtpPurpose.PHONE_VERIFICATION:
        raise ValidationError("Use /auth/change-phone to verify a new phone number")

    try:
        await OTPService.verify(redis, payload.phone, payload.otp, payload.purpose.value, user)
    except AppException as exc:
        # persist any lockout before reporting the failure
        await db.commit()
        await log_activity(
            db, ActivityAction.LOGIN_FAILED, "auth", f"OTP verification failed: {exc.message}",
            user_id=user.id, details={"purpose": payload.purpose.value},
            status="failed", severity="medium", request=request,
        )
        raise

    if payload.purpose == OtpPurpose.REGISTRATION:
        await db.commit()
        await OTPService.mark_registration_verified(redis, payload.phone)
        return success_response(
            {"requires_registration": True, "temp_user_id": user.id},
            "OTP verified. Please complete registration",
        )

    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    user.last_login = datetime.utcnow()
    user.is_verified = True
    await db.commit()
    await log_activity(
        db, ActivityAction.LOGIN, "auth", "User logged in", user_id=user.id, request=request,
    )
    return success_response(
        {**create_token_pair(user), "user": UserResponse.model_validate(user)},
        "Login successful",
    )


@router.post("/complete-registration", status_code=status.HTTP_201_CREATED)
async def complete_registration(
    payload: CompleteRegistrationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    user = await _user_by_phone(db, payload.phone)
    if not user:
        raise NotFoundError("User")
    if user.is_active:
        raise ConflictError("Phone number already registered")
    if payload.email and await _email_taken(db, payload.email, user.id):
        raise ConflictError("Email already registered")

    await OTPService.consume_registration_verified(redis, payload.phone)

    user.name = payload.name
    user.email = payload.email
    user.district = payload.district
    user.area = payload.area
    user.is_active = True
    user.is_verified = True
    user.last_login = datetime.utcnow()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email already registered")

    await log_activity(
        db, ActivityAction.REGISTRATION, "auth", "User completed registration",
        user_id=user.id, request=request,
    )
    return success_response(
        {**create_token_pair(user), "user": UserResponse.model_validate(user)},
        "Registration completed successfully",
    )


@router.post("/refresh-token")
async def refresh_token(
    payload: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
):
    """Exchange a refresh token for a new token pair; the old refresh token is revoked."""
    claims = decode_access_token(payload.refresh_token)
    if claims is None or claims.get("type") != "refresh":
        raise AuthenticationError("Invalid refresh token")
    # claim_token is the single-use gate; a concurrent replay loses the SET NX
    if await is_token_revoked(claims) or not await claim_token(claims):
        raise AuthenticationError("Refresh token has been revoked")

    result = await db.execute(select(User).where(User.id == claims.get("user_id")))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return success_response(create_token_pair(user), "Token refreshed successfully")


@router.post("/logout")
async def logout(
    request: Request,
    payload: Optional[LogoutRequest] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Revoke the access token (and refresh token if given) and drop the device."""
    user_id = current_user["user_id"]
    await revoke_token(current_user)
    if payload and payload.refresh_token:
        refresh_claims = decode_access_token(payload.refresh_token)
        if refresh_claims and refresh_claims.get("user_id") == user_id:
            await revoke_token(refresh_claims)

    if payload and payload.device_id:
        result = await db.execute(
            select(UserDevice).where(UserDevice.user_id == user_id, UserDevice.device_id == payload.device_id)
        )
        device = result.scalar_one_or_none()
        if device:
            await db.delete(device)
            await db.commit()

    await log_activity(db, ActivityAction.LOGOUT, "auth", "User logged out", user_id=user_id, request=request)
    return success_response(None, "Logged out successfully")


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user_model)):
    return success_response(UserResponse.model_validate(user), "Profile retrieved successfully")


@router.put("/profile")
async def update_profile(
    payload: UpdateProfileRequest,
    request: Request,
    user: User = Depends(get_current_user_model),
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("email") and await _email_taken(db, changes["email"], user.id):
        raise ConflictError("Email already registered")
    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()

    await log_activity(
        db, ActivityAction.PROFILE_UPDATED, "user", "Profile updated",
        user_id=user.id, resource_id=user.id, details={"fields": sorted(changes)}, request=request,
    )
    return success_response(UserResponse.model_validate(user), "Profile updated successfully")


@router.post("/change-phone")
async def change_phone(
    payload: ChangePhoneRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    user: User = Depends(get_current_user_model),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Move the account to a new number verified with a phone_verification OTP.

    Tokens carry the phone as `sub`, so every existing session is ended and
    a fresh pair is returned.
    """
    if payload.new_phone == user.phone:
        raise ValidationError("New phone number is the same as the current one")
    if await _user_by_phone(db, payload.new_phone):
        raise ConflictError("Phone number already in use")

    await OTPService.verify(redis, payload.new_phone, payload.otp, OtpPurpose.PHONE_VERIFICATION.value)

    old_phone = user.phone
    user.phone = payload.new_phone
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Phone number already in use")

    await revoke_user_sessions(user.id)
    await revoke_token(current_user)
    await log_activity(
        db, ActivityAction.PHONE_CHANGED, "user", "Phone number changed",
        user_id=user.id, resource_id=user.id,
        details={"old_phone_suffix": old_phone[-4:], "new_phone_suffix": payload.new_phone[-4:]},
        severity="medium", request=request,
    )
    return success_response(
        {**create_token_pair(user), "user": UserResponse.model_validate(user)},
        "Phone number changed successfully",
    )


@router.post("/register-device")
async def register_device(
    payload: RegisterDeviceRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = current_user["user_id"]
    result = await db.execute(
        select(UserDevice).where(UserDevice.user_id == user_id, UserDevice.device_id == payload.device_id)
    )
    device = result.scalar_one_or_none()
    if device is None:
        device = UserDevice(user_id=user_id, device_id=payload.device_id, platform=payload.platform)
        db.add(device)
    device.platform = payload.platform
    device.fcm_token = payload.fcm_token
    device.last_used_at = datetime.utcnow()
    await db.commit()

    await log_activity(
        db, ActivityAction.DEVICE_REGISTERED, "device", f"Device registered ({payload.platform})",
        user_id=user_id, resource_id=payload.device_id, request=request,
    )
    return success_response(
        {"device_id": device.device_id, "platform": device.platform}, "Device registered successfully"
    )
