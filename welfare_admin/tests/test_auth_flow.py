"""
Integration tests for the OTP Authentication Flow.

Verifies send -> verify -> tokens for login and registration, attempt
lockout, send throttling, token rotation, logout and profile rules.
"""

import asyncio
import time
import pytest
from sqlalchemy import select

from welfare_admin.app.core.exceptions import UpstreamServiceError
from welfare_admin.app.core.jwt import decode_access_token
from welfare_admin.app.core.token_revocation import claim_token
from welfare_admin.app.models.activity_log import ActivityLog
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.models.user import User, UserDevice

OTP = "123456"


async def login(client, phone):
    response = await client.post("/v1/auth/send-otp", json={"phone": phone, "purpose": "login"})
    assert response.status_code == 200
    response = await client.post("/v1/auth/verify-otp", json={"phone": phone, "otp": OTP, "purpose": "login"})
    assert response.status_code == 200
    return response.json()["data"]


# TEST 1: Login issues a token pair and records the event
@pytest.mark.asyncio
async def test_login_with_otp(client, make_user, sms_client, db_session):
    user = await make_user(UserRole.DISTRICT_ADMIN, phone="9876543210", district="Kozhikode")

    data = await login(client, "9876543210")

    assert data["token_type"] == "bearer"
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["role"] == "district_admin"
    assert sms_client.sent[-1] == {"phone": "9876543210", "code": OTP, "purpose": "login"}

    actions = (await db_session.execute(
        select(ActivityLog.action).where(ActivityLog.user_id == user.id)
    )).scalars().all()
    assert "otp_sent" in actions
    assert "login" in actions


# TEST 2: Login OTP for unknown number
@pytest.mark.asyncio
async def test_login_unknown_phone_returns_404(client):
    response = await client.post("/v1/auth/send-otp", json={"phone": "9123456789", "purpose": "login"})
    assert response.status_code == 404
    assert response.json()["success"] is False


# TEST 3: Registration creates an inactive placeholder, completion activates it
@pytest.mark.asyncio
async def test_registration_flow(client, db_session):
    phone = "8123456789"
    response = await client.post("/v1/auth/send-otp", json={"phone": phone, "purpose": "registration"})
    assert response.status_code == 200

    placeholder = (await db_session.execute(select(User).where(User.phone == phone))).scalar_one()
    assert placeholder.is_active is False

    response = await client.post("/v1/auth/verify-otp", json={"phone": phone, "otp": OTP, "purpose": "registration"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data == {"requires_registration": True, "temp_user_id": placeholder.id}

    response = await client.post("/v1/auth/complete-registration", json={
        "phone": phone, "name": "Asha Menon", "email": "asha@welfare.org", "district": "Thrissur"
    })
    assert response.status_code == 201
    body = response.json()["data"]
    assert body["user"]["is_active"] is True
    assert body["user"]["email"] == "asha@welfare.org"
    assert body["access_token"]


# TEST 4: Registration cannot be completed without a verified OTP
@pytest.mark.asyncio
async def test_complete_registration_requires_verified_otp(client):
    phone = "8123456780"
    await client.post("/v1/auth/send-otp", json={"phone": phone, "purpose": "registration"})

    response = await client.post("/v1/auth/complete-registration", json={"phone": phone, "name": "No Verify"})
    assert response.status_code == 400


# TEST 5: Registration rejects an already active number
@pytest.mark.asyncio
async def test_registration_rejects_existing_user(client, make_user):
    await make_user(phone="9876500000")
    response = await client.post("/v1/auth/send-otp", json={"phone": "9876500000", "purpose": "registration"})
    assert response.status_code == 400
    assert response.json()["error"] == "ERR_CONFLICT"


# TEST 6: Wrong codes count down, then lock the account
@pytest.mark.asyncio
async def test_failed_attempts_lock_account(client, make_user, db_session):
    user = await make_user(phone="9876543211")
    await client.post("/v1/auth/send-otp", json={"phone": "9876543211", "purpose": "login"})

    for remaining in (4, 3, 2, 1):
        response = await client.post("/v1/auth/verify-otp", json={"phone": "9876543211", "otp": "000000"})
        assert response.status_code == 400
        assert response.json()["details"]["attempts_remaining"] == remaining

    response = await client.post("/v1/auth/verify-otp", json={"phone": "9876543211", "otp": "000000"})
    assert response.status_code == 400
    assert "Too many" in response.json()["message"]

    await db_session.refresh(user)
    assert user.lock_until is not None

    # Even the right code is refused while locked
    response = await client.post("/v1/auth/verify-otp", json={"phone": "9876543211", "otp": OTP})
    assert response.status_code == 403

    failures = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "login_failed", ActivityLog.user_id == user.id)
    )).scalars().all()
    # five wrong codes plus the locked attempt
    assert len(failures) == 6
    assert all(f.status == "failed" for f in failures)


# TEST 7: Resend cooldown
@pytest.mark.asyncio
async def test_resend_cooldown_returns_429(client, make_user):
    await make_user(phone="9876543212")
    first = await client.post("/v1/auth/send-otp", json={"phone": "9876543212"})
    assert first.status_code == 200

    second = await client.post("/v1/auth/send-otp", json={"phone": "9876543212"})
    assert second.status_code == 429
    assert second.json()["error"] == "ERR_RATE_LIMIT"
    assert second.json()["details"]["retry_after"] >= 1


# TEST 8: Daily send cap
@pytest.mark.asyncio
async def test_daily_limit_returns_429(client, make_user, mock_redis):
    await make_user(phone="9876543213")
    for _ in range(5):
        response = await client.post("/v1/auth/send-otp", json={"phone": "9876543213"})
        assert response.status_code == 200
        await mock_redis.delete("otp:cooldown:9876543213")

    response = await client.post("/v1/auth/send-otp", json={"phone": "9876543213"})
    assert response.status_code == 429
    assert "Daily" in response.json()["message"]


# TEST 9: Gateway failure surfaces as 502 and leaves no usable code
@pytest.mark.asyncio
async def test_sms_failure_returns_502(client, make_user, sms_client):
    await make_user(phone="9876543214")
    sms_client.fail_with = UpstreamServiceError("SMS", "Failed to send OTP")

    response = await client.post("/v1/auth/send-otp", json={"phone": "9876543214"})
    assert response.status_code == 502
    assert response.json()["error"] == "ERR_UPSTREAM"

    response = await client.post("/v1/auth/verify-otp", json={"phone": "9876543214", "otp": OTP})
    assert response.status_code == 400


# TEST 10: Refresh rotates the pair and revokes the old refresh token
@pytest.mark.asyncio
async def test_refresh_token_rotation(client, make_user):
    await make_user(phone="9876543215")
    tokens = await login(client, "9876543215")

    response = await client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    rotated = response.json()["data"]
    assert rotated["refresh_token"] != tokens["refresh_token"]

    replay = await client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401

    # Access tokens are not accepted as refresh tokens
    wrong_type = await client.post("/v1/auth/refresh-token", json={"refresh_token": rotated["access_token"]})
    assert wrong_type.status_code == 401


# TEST 11: Logout revokes the bearer token and drops the device
@pytest.mark.asyncio
async def test_logout_revokes_token(client, make_user, db_session):
    user = await make_user(phone="9876543216")
    tokens = await login(client, "9876543216")
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.post("/v1/auth/register-device", headers=headers, json={
        "device_id": "pixel-7", "platform": "android", "fcm_token": "fcm-abc"
    })
    assert response.status_code == 200

    response = await client.post("/v1/auth/logout", headers=headers, json={"device_id": "pixel-7"})
    assert response.status_code == 200

    response = await client.get("/v1/auth/profile", headers=headers)
    assert response.status_code == 401

    devices = (await db_session.execute(select(UserDevice).where(UserDevice.user_id == user.id))).scalars().all()
    assert devices == []


# TEST 12: Profile update ignores sensitive fields
@pytest.mark.asyncio
async def test_profile_update_ignores_role(client, make_user):
    await make_user(phone="9876543217")
    tokens = await login(client, "9876543217")
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.put("/v1/auth/profile", headers=headers, json={
        "name": "Renamed", "role": "super_admin", "is_active": False, "phone": "9000000000"
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Renamed"
    assert data["role"] == "beneficiary"
    assert data["phone"] == "9876543217"
    assert data["is_active"] is True


# TEST 13: Change phone with a phone_verification OTP
@pytest.mark.asyncio
async def test_change_phone(client, make_user):
    await make_user(phone="9876543218")
    tokens = await login(client, "9876543218")
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.post("/v1/auth/send-otp", json={"phone": "7000000001", "purpose": "phone_verification"})
    assert response.status_code == 200

    response = await client.post("/v1/auth/change-phone", headers=headers, json={"new_phone": "7000000001", "otp": OTP})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["phone"] == "7000000001"

    # The old session is over; the returned pair works
    assert (await client.get("/v1/auth/profile", headers=headers)).status_code == 401
    fresh = {"Authorization": f"Bearer {data['access_token']}"}
    response = await client.get("/v1/auth/profile", headers=fresh)
    assert response.status_code == 200
    assert response.json()["data"]["phone"] == "7000000001"


# TEST 14: Change phone refuses a number already in use
@pytest.mark.asyncio
async def test_change_phone_to_taken_number(client, make_user):
    await make_user(phone="9876543219")
    await make_user(phone="7000000002")
    tokens = await login(client, "9876543219")
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.post("/v1/auth/change-phone", headers=headers, json={"new_phone": "7000000002", "otp": OTP})
    assert response.status_code == 400
    assert response.json()["error"] == "ERR_CONFLICT"


# TEST 15: Missing bearer token
@pytest.mark.asyncio
async def test_profile_requires_auth(client):
    response = await client.get("/v1/auth/profile")
    assert response.status_code == 401
    assert response.json()["success"] is False


# TEST 16: A session cutoff ends tokens issued before it
@pytest.mark.asyncio
async def test_session_cutoff_rejects_older_tokens(client, make_user, headers_for, mock_redis):
    user = await make_user()
    headers = headers_for(user)
    assert (await client.get("/v1/auth/profile", headers=headers)).status_code == 200

    await mock_redis.set(f"auth:revoked-before:{user.id}", str(int(time.time()) + 5))
    response = await client.get("/v1/auth/profile", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"] == "ERR_AUTH_002"


# TEST 17: One refresh token, two simultaneous claims, one winner
@pytest.mark.asyncio
async def test_refresh_token_claimed_once(client, make_user):
    await make_user(phone="9876543219")
    tokens = await login(client, "9876543219")
    claims = decode_access_token(tokens["refresh_token"])

    results = await asyncio.gather(claim_token(claims), claim_token(claims))
    assert sorted(results) == [False, True]

    # Already claimed, so the endpoint refuses it as well
    response = await client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401
    assert response.json()["message"] == "Refresh token has been revoked"
