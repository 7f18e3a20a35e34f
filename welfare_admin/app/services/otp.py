"""
OTP issuance and verification.

OTP state lives in Redis:
    otp:code:{phone}        hashed code + purpose, expires with the OTP
    otp:attempts:{phone}    failed verification attempts for the current code
    otp:cooldown:{phone}    present while a resend is not yet allowed
    otp:daily:{phone}:{d}   sends on day d
    otp:verified:{phone}    registration OTP verified, awaiting completion
"""

import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from welfare_admin.app.core.config import settings
from welfare_admin.app.core.exceptions import ValidationError, RateLimitError, AuthorizationError
from welfare_admin.app.models.user import User

logger = logging.getLogger(__name__)

CODE_PREFIX = "otp:code:"
ATTEMPTS_PREFIX = "otp:attempts:"
COOLDOWN_PREFIX = "otp:cooldown:"
DAILY_PREFIX = "otp:daily:"
VERIFIED_PREFIX = "otp:verified:"

REGISTRATION_WINDOW_SECONDS = 30 * 60


def hash_otp(phone: str, code: str) -> str:
    return hmac.new(settings.secret_key.encode(), f"{phone}:{code}".encode(), hashlib.sha256).hexdigest()


def generate_otp() -> str:
    if settings.otp_delivery_mode == "static":
        return settings.static_otp
    return f"{secrets.randbelow(1_000_000):06d}"


class OTPService:

    @staticmethod
    async def check_send_limits(redis, phone: str) -> None:
        """Raise RateLimitError inside the resend cooldown or past the daily cap."""
        if await redis.exists(f"{COOLDOWN_PREFIX}{phone}"):
            retry_after = await redis.ttl(f"{COOLDOWN_PREFIX}{phone}")
            raise RateLimitError(
                "Please wait before requesting another OTP", retry_after=max(int(retry_after or 0), 1)
            )
        sent_today = await redis.get(f"{DAILY_PREFIX}{phone}:{datetime.utcnow():%Y%m%d}")
        if sent_today is not None and int(sent_today) >= settings.otp_daily_limit:
            raise RateLimitError("Daily OTP limit reached. Try again tomorrow")

    @staticmethod
    async def issue(redis, sms_client, phone: str, purpose: str) -> datetime:
        """
        Generate, deliver and store an OTP for `phone`.

        Delivery happens before the code is stored, so a gateway failure
        leaves no usable code behind. Returns the expiry time.
        """
        await OTPService.check_send_limits(redis, phone)

        code = generate_otp()
        await sms_client.send_otp(phone, code, purpose)

        ttl = settings.otp_expire_minutes * 60
        await redis.set(
            f"{CODE_PREFIX}{phone}",
            json.dumps({"hash": hash_otp(phone, code), "purpose": purpose}),
            ex=ttl,
        )
        await redis.delete(f"{ATTEMPTS_PREFIX}{phone}")
        await redis.set(f"{COOLDOWN_PREFIX}{phone}", "1", ex=settings.otp_resend_seconds)

        daily_key = f"{DAILY_PREFIX}{phone}:{datetime.utcnow():%Y%m%d}"
        if await redis.incr(daily_key) == 1:
            await redis.expire(daily_key, 86400)

        return datetime.utcnow() + timedelta(seconds=ttl)

    @staticmethod
    async def verify(redis, phone: str, code: str, purpose: str, user: Optional[User] = None) -> None:
        """
        Check `code` for `phone` and consume it on success.

        Wrong codes count towards `otp_max_attempts`; reaching it discards the
        code and, when a user is given, locks the account for `otp_lock_minutes`.
        """
        if user is not None and user.is_locked:
            raise AuthorizationError(
                "Account is temporarily locked due to too many failed attempts",
                details={"lock_until": user.lock_until.isoformat()},
            )

        stored = await redis.get(f"{CODE_PREFIX}{phone}")
        if stored is None:
            raise ValidationError("OTP expired or not requested")
        record = json.loads(stored)
        if record.get("purpose") != purpose:
            raise ValidationError("OTP was issued for a different purpose")

        if not hmac.compare_digest(record["hash"], hash_otp(phone, code)):
            attempts = await redis.incr(f"{ATTEMPTS_PREFIX}{phone}")
            await redis.expire(f"{ATTEMPTS_PREFIX}{phone}", settings.otp_expire_minutes * 60)
            remaining = settings.otp_max_attempts - int(attempts)
            if remaining <= 0:
                await redis.delete(f"{CODE_PREFIX}{phone}", f"{ATTEMPTS_PREFIX}{phone}")
                if user is not None:
                    user.lock_until = datetime.utcnow() + timedelta(minutes=settings.otp_lock_minutes)
                logger.warning("OTP attempts exhausted for %s", phone[-4:].rjust(10, "*"))
                raise ValidationError("Too many invalid attempts. Please request a new OTP")
            raise ValidationError("Invalid OTP", details={"attempts_remaining": remaining})

        await redis.delete(f"{CODE_PREFIX}{phone}", f"{ATTEMPTS_PREFIX}{phone}")
        if user is not None:
            user.lock_until = None

    @staticmethod
    async def mark_registration_verified(redis, phone: str) -> None:
        await redis.set(f"{VERIFIED_PREFIX}{phone}", "registration", ex=REGISTRATION_WINDOW_SECONDS)

    @staticmethod
    async def consume_registration_verified(redis, phone: str) -> None:
        if await redis.get(f"{VERIFIED_PREFIX}{phone}") != "registration":
            raise ValidationError("Phone number not verified for registration")
        await redis.delete(f"{VERIFIED_PREFIX}{phone}")
