"""
Tests for in-app notifications: ownership rules, unread counts and broadcast.
"""

import pytest
from sqlalchemy import select, func

from welfare_admin.app.models.activity_log import ActivityLog
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.models.notification import Notification
from welfare_admin.app.services.notification_service import NotificationService


async def notify(db_session, user, *titles):
    created = []
    for title in titles:
        created.append(await NotificationService.create_notification(db_session, user.id, title, f"{title} body"))
    await db_session.commit()
    return created


# TEST 1: Listing shows only the caller's rows, newest first, with unread count
@pytest.mark.asyncio
async def test_list_own_notifications(client, make_user, headers_for, db_session):
    alice = await make_user()
    bob = await make_user()
    await notify(db_session, alice, "first", "second", "third")
    await notify(db_session, bob, "other")

    response = await client.get("/v1/notifications", headers=headers_for(alice))
    assert response.status_code == 200
    data = response.json()["data"]
    assert [n["title"] for n in data["items"]] == ["third", "second", "first"]
    assert data["unread_count"] == 3
    assert data["pagination"]["total"] == 3


# TEST 2: Marking read is idempotent and keeps the first read time
@pytest.mark.asyncio
async def test_mark_read(client, make_user, headers_for, db_session):
    user = await make_user()
    first, second = await notify(db_session, user, "a", "b")
    headers = headers_for(user)

    response = await client.patch(f"/v1/notifications/{first.id}/read", headers=headers)
    assert response.status_code == 200
    await db_session.refresh(first)
    read_at = first.read_at
    assert first.is_read is True and read_at is not None

    response = await client.patch(f"/v1/notifications/{first.id}/read", headers=headers)
    assert response.status_code == 200
    await db_session.refresh(first)
    assert first.read_at == read_at

    response = await client.get("/v1/notifications?unread_only=true", headers=headers)
    data = response.json()["data"]
    assert [n["id"] for n in data["items"]] == [second.id]
    assert data["unread_count"] == 1


# TEST 3: Another user's notification looks like it does not exist
@pytest.mark.asyncio
async def test_cannot_touch_others_notifications(client, make_user, headers_for, db_session):
    owner = await make_user()
    intruder = await make_user()
    (notification,) = await notify(db_session, owner, "private")
    headers = headers_for(intruder)

    response = await client.patch(f"/v1/notifications/{notification.id}/read", headers=headers)
    assert response.status_code == 404

    response = await client.delete(f"/v1/notifications/{notification.id}", headers=headers)
    assert response.status_code == 404

    await db_session.refresh(notification)
    assert notification.is_read is False


# TEST 4: Read-all only touches the caller's unread rows
@pytest.mark.asyncio
async def test_mark_all_read(client, make_user, headers_for, db_session):
    user = await make_user()
    other = await make_user()
    await notify(db_session, user, "a", "b", "c")
    await notify(db_session, other, "x")

    response = await client.patch("/v1/notifications/read-all", headers=headers_for(user))
    assert response.json()["data"]["count"] == 3

    response = await client.patch("/v1/notifications/read-all", headers=headers_for(user))
    assert response.json()["data"]["count"] == 0

    unread_other = (await db_session.execute(
        select(func.count(Notification.id)).where(Notification.user_id == other.id, Notification.is_read == False)  # noqa: E712
    )).scalar()
    assert unread_other == 1


# TEST 5: Delete removes the row
@pytest.mark.asyncio
async def test_delete_notification(client, make_user, headers_for, db_session):
    user = await make_user()
    (notification,) = await notify(db_session, user, "bye")

    response = await client.delete(f"/v1/notifications/{notification.id}", headers=headers_for(user))
    assert response.status_code == 200

    remaining = (await db_session.execute(
        select(Notification.id).where(Notification.user_id == user.id)
    )).scalars().all()
    assert remaining == []


# TEST 6: Broadcast by role reaches active holders only and is logged
@pytest.mark.asyncio
async def test_broadcast_by_role(client, admin_headers, make_user, db_session):
    await make_user(UserRole.DISTRICT_ADMIN)
    await make_user(UserRole.DISTRICT_ADMIN)
    await make_user(UserRole.DISTRICT_ADMIN, is_active=False)
    await make_user(UserRole.BENEFICIARY)

    response = await client.post("/v1/admin/notifications/broadcast", headers=admin_headers, json={
        "role": "district_admin", "title": "Review due", "message": "Quarterly review closes Friday",
    })
    assert response.status_code == 200
    assert response.json()["data"]["recipients"] == 2

    log = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "notification_broadcast")
    )).scalar_one()
    assert log.details == {"role": "district_admin", "recipients": 2}


# TEST 7: Broadcast needs the permission
@pytest.mark.asyncio
async def test_broadcast_requires_permission(client, make_user, grant, headers_for):
    coordinator = await make_user(UserRole.SCHEME_COORDINATOR)
    headers = headers_for(coordinator)
    body = {"title": "Hello", "message": "Everyone"}

    response = await client.post("/v1/admin/notifications/broadcast", headers=headers, json=body)
    assert response.status_code == 403

    await grant(coordinator, "notifications.broadcast")
    response = await client.post("/v1/admin/notifications/broadcast", headers=headers, json=body)
    assert response.status_code == 200
    # everyone active, including the sender
    assert response.json()["data"]["recipients"] == 1


# TEST 8: Unauthenticated access
@pytest.mark.asyncio
async def test_notifications_require_auth(client):
    response = await client.get("/v1/notifications")
    assert response.status_code == 401


# TEST 9: Districts and several roles narrow the audience together
@pytest.mark.asyncio
async def test_broadcast_targets_districts(client, admin_headers, make_user, db_session):
    kozhikode = await make_user(UserRole.DISTRICT_ADMIN, district="Kozhikode")
    await make_user(UserRole.DISTRICT_ADMIN, district="Thrissur")
    coordinator = await make_user(UserRole.SCHEME_COORDINATOR, district="Kozhikode")
    await make_user(UserRole.BENEFICIARY, district="Kozhikode")

    response = await client.post("/v1/admin/notifications/broadcast", headers=admin_headers, json={
        "roles": ["district_admin", "scheme_coordinator"], "districts": ["Kozhikode"],
        "title": "Flood relief", "message": "Camps open", "payload": {"scheme": "relief"},
    })
    assert response.json()["data"]["recipients"] == 2

    rows = (await db_session.execute(select(Notification).order_by(Notification.user_id))).scalars().all()
    assert [n.user_id for n in rows] == [kozhikode.id, coordinator.id]
    assert all(n.payload == {"scheme": "relief"} and not n.is_read for n in rows)

    log = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "notification_broadcast")
    )).scalar_one()
    assert log.details == {
        "roles": ["district_admin", "scheme_coordinator"], "districts": ["Kozhikode"], "recipients": 2,
    }


# TEST 10: No matching users is not an error
@pytest.mark.asyncio
async def test_broadcast_without_recipients(db_session):
    count = await NotificationService.broadcast(db_session, "Hello", "Nobody", districts=["Nowhere"])
    assert count == 0


# TEST 11: Per-type statistics
@pytest.mark.asyncio
async def test_notification_stats(client, admin_headers, make_user, db_session):
    user = await make_user()
    first, _ = await notify(db_session, user, "one", "two")
    await NotificationService.mark_read(db_session, first.id, user.id)
    await NotificationService.notify_role_assigned(db_session, user.id, "district_admin", 7, pending=False)
    await db_session.commit()

    response = await client.get("/v1/admin/notifications/stats", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"] == [
        {"type": "info", "total": 2, "read": 1, "unread": 1},
        {"type": "role_update", "total": 1, "read": 0, "unread": 1},
    ]


# TEST 12: Role assignment notifies the assignee
@pytest.mark.asyncio
async def test_role_assignment_notifies_user(client, admin_headers, make_user, headers_for, db_session):
    await client.post("/v1/rbac/initialize", headers=admin_headers)
    user = await make_user(UserRole.SCHEME_COORDINATOR)
    roles = (await client.get("/v1/rbac/roles", headers=admin_headers)).json()["data"]
    role_id = next(r["id"] for r in roles if r["name"] == "area_admin")

    response = await client.post(f"/v1/rbac/users/{user.id}/roles", headers=admin_headers, json={"role_id": role_id})
    assert response.status_code == 201

    data = (await client.get("/v1/notifications", headers=headers_for(user))).json()["data"]
    assert data["unread_count"] == 1
    assert data["items"][0]["type"] == "role_update"
    assert "area_admin" in data["items"][0]["message"]
