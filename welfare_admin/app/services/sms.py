"""
SMS gateway client for OTP delivery.

`static` mode sends nothing (the configured static OTP is used); `sms` mode
posts to the gateway through a circuit breaker. Failures surface immediately
as UpstreamServiceError; there are no retries.
"""

import logging
import httpx

from welfare_admin.app.core.config import settings
from welfare_admin.app.core.exceptions import UpstreamServiceError
from welfare_admin.app.core.reliability import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

sms_circuit_breaker = CircuitBreaker("sms", failure_threshold=3, reset_timeout=60, trip_on=(httpx.HTTPError,))


def masked(phone: str) -> str:
    return phone[-4:].rjust(len(phone), "*")


class SMSClient:
    def __init__(self, transport: httpx.AsyncBaseTransport = None):
        self._transport = transport

    async def _post(self, phone: str, message: str) -> None:
        async with httpx.AsyncClient(timeout=settings.sms_timeout_seconds, transport=self._transport) as client:
            response = await client.post(
                settings.sms_api_url,
                json={"to": f"91{phone}", "sender": settings.sms_sender_id, "message": message},
                headers={"Authorization": f"Bearer {settings.sms_api_key or ''}"},
            )
            response.raise_for_status()

    async def send_otp(self, phone: str, code: str, purpose: str) -> None:
        if settings.otp_delivery_mode == "static":
            logger.info("Static OTP mode: skipping SMS delivery to %s (%s)", masked(phone), purpose)
            return

        message = f"{code} is your OTP for {purpose.replace('_', ' ')}. Valid for {settings.otp_expire_minutes} minutes."
        try:
            await sms_circuit_breaker.call(self._post, phone, message)
        except CircuitOpenError as exc:
            logger.warning("SMS circuit open; OTP to %s not sent, retry in %ss", masked(phone), exc.retry_after)
            raise UpstreamServiceError("SMS", "SMS service temporarily unavailable")
        except httpx.HTTPError as exc:
            logger.error("SMS gateway error for %s: %s", masked(phone), exc)
            raise UpstreamServiceError("SMS", "Failed to send OTP")


def get_sms_client() -> SMSClient:
    """FastAPI dependency."""
    return SMSClient()
