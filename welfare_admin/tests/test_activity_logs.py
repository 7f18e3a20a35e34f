"""
Tests for the Activity Log Store.

Covers listing/pagination, filters, trends bucketing, export, the retention
sweep and permission checks on the endpoints.
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import select

from welfare_admin.app.models.activity_log import ActivityLog
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.schemas.activity_log import ActivityLogFilters
from welfare_admin.app.services import activity_log as activity_service


async def add_logs(db_session, entries):
    for entry in entries:
        db_session.add(ActivityLog(**entry))
    await db_session.commit()


def entry(action="login", resource="auth", status="success", severity="low", when=None, **extra):
    return {
        "action": action,
        "resource": resource,
        "description": extra.pop("description", f"{action} on {resource}"),
        "status": status,
        "severity": severity,
        "timestamp": when or datetime.utcnow(),
        **extra,
    }


# TEST 1: Pagination math
@pytest.mark.asyncio
async def test_list_pagination(client, admin_headers, db_session):
    await add_logs(db_session, [entry(description=f"event {i}") for i in range(25)])

    response = await client.get("/v1/activity-logs?page=3&limit=10", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["items"]) == 5
    assert data["pagination"] == {
        "page": 3, "limit": 10, "total": 25, "pages": 3, "has_next": False, "has_prev": True
    }

    past_end = await client.get("/v1/activity-logs?page=9&limit=10", headers=admin_headers)
    assert past_end.json()["data"]["items"] == []


# TEST 2: Newest first with user details joined
@pytest.mark.asyncio
async def test_list_newest_first_with_user(client, super_admin, admin_headers, db_session):
    now = datetime.utcnow()
    await add_logs(db_session, [
        entry(action="old", when=now - timedelta(hours=2)),
        entry(action="new", when=now - timedelta(minutes=1), user_id=super_admin.id),
    ])

    response = await client.get("/v1/activity-logs", headers=admin_headers)
    items = response.json()["data"]["items"]
    assert [i["action"] for i in items] == ["new", "old"]
    assert items[0]["user_name"] == "Root"
    assert items[0]["user_phone"] == "9999999999"
    assert items[1]["user_name"] is None


# TEST 3: Multi-value and search filters
@pytest.mark.asyncio
async def test_filters(client, admin_headers, db_session):
    await add_logs(db_session, [
        entry(action="login"),
        entry(action="logout"),
        entry(action="role_created", resource="role", severity="medium", description="Created custom role 'auditor'"),
        entry(action="login_failed", status="failed", severity="medium"),
    ])

    response = await client.get("/v1/activity-logs?action=login,logout", headers=admin_headers)
    assert response.json()["data"]["pagination"]["total"] == 2

    response = await client.get("/v1/activity-logs?severity=medium&status=failed", headers=admin_headers)
    items = response.json()["data"]["items"]
    assert [i["action"] for i in items] == ["login_failed"]

    response = await client.get("/v1/activity-logs?search=AUDITOR", headers=admin_headers)
    assert [i["action"] for i in response.json()["data"]["items"]] == ["role_created"]


# TEST 4: Invalid sort field
@pytest.mark.asyncio
async def test_invalid_sort_field(client, admin_headers):
    response = await client.get("/v1/activity-logs?sort_by=description", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "ERR_VALIDATION"


# TEST 5: Day buckets carry totals, outcome counts and distinct actions
@pytest.mark.asyncio
async def test_trends_by_day(db_session):
    now = datetime(2024, 3, 10, 12, 0, 0)
    await add_logs(db_session, [
        entry(action="login", when=datetime(2024, 3, 9, 8, 0)),
        entry(action="login", when=datetime(2024, 3, 9, 9, 30)),
        entry(action="login_failed", status="failed", when=datetime(2024, 3, 9, 10, 0)),
        entry(action="logout", when=datetime(2024, 3, 10, 11, 0)),
        entry(action="login", when=datetime(2024, 2, 1, 10, 0)),  # outside the window
    ])

    result = await activity_service.get_activity_trends(db_session, "7d", "day", now=now)

    assert result["start_date"] == now - timedelta(days=7)
    assert result["trends"] == [
        {"period": "2024-03-09", "total": 3, "success": 2, "failed": 1, "actions": ["login", "login_failed"]},
        {"period": "2024-03-10", "total": 1, "success": 1, "failed": 0, "actions": ["logout"]},
    ]


# TEST 6: Unknown trend period
@pytest.mark.asyncio
async def test_trends_invalid_period(client, admin_headers):
    response = await client.get("/v1/activity-logs/trends?period=2w", headers=admin_headers)
    assert response.status_code == 400


# TEST 7: Stats and filter options
@pytest.mark.asyncio
async def test_stats_and_filter_options(client, admin_headers, db_session):
    await add_logs(db_session, [
        entry(action="login"), entry(action="login"), entry(action="logout", severity="medium"),
    ])

    stats = (await client.get("/v1/activity-logs/stats", headers=admin_headers)).json()["data"]
    assert stats["total_logs"] == 3
    assert stats["by_action"][0]["action"] == "login"
    assert stats["by_action"][0]["count"] == 2
    assert {"value": "medium", "count": 1} in stats["by_severity"]

    options = (await client.get("/v1/activity-logs/filters", headers=admin_headers)).json()["data"]
    assert options["actions"] == ["login", "logout"]
    assert options["severities"] == ["low", "medium"]


# TEST 8: CSV export is an attachment and is itself logged
@pytest.mark.asyncio
async def test_export_csv(client, admin_headers, db_session):
    await add_logs(db_session, [entry(action="login"), entry(action="logout")])

    response = await client.get("/v1/activity-logs/export?format=csv", headers=admin_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Timestamp,User,Action")
    assert len(lines) == 3

    exported = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "activity_logs_exported")
    )).scalars().all()
    assert len(exported) == 1
    assert exported[0].details["count"] == 2


# TEST 9: Retention sweep hard-deletes old rows and logs itself
@pytest.mark.asyncio
async def test_clean_old_logs(client, admin_headers, db_session):
    now = datetime.utcnow()
    await add_logs(db_session, [
        entry(action="ancient", when=now - timedelta(days=400)),
        entry(action="old", when=now - timedelta(days=40)),
        entry(action="fresh", when=now - timedelta(days=1)),
    ])

    response = await client.post("/v1/activity-logs/clean", headers=admin_headers, json={"days_to_keep": 30})
    assert response.status_code == 200
    assert response.json()["data"]["deleted_count"] == 2
    assert response.json()["data"]["mode"] == "hard"

    remaining = (await db_session.execute(select(ActivityLog.action))).scalars().all()
    assert sorted(remaining) == ["fresh", "system_maintenance"]

    maintenance = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "system_maintenance")
    )).scalar_one()
    assert maintenance.severity == "high"


# TEST 10: days_to_keep must be positive
@pytest.mark.asyncio
async def test_clean_rejects_zero_days(client, admin_headers):
    response = await client.post("/v1/activity-logs/clean", headers=admin_headers, json={"days_to_keep": 0})
    assert response.status_code == 400


# TEST 11: log_activity records request context
@pytest.mark.asyncio
async def test_log_activity_records_ip(client, admin_headers, db_session):
    response = await client.post(
        "/v1/activity-logs/clean",
        headers={**admin_headers, "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest",
                 "X-Request-ID": "req-42"},
    )
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-42"
    log = (await db_session.execute(select(ActivityLog))).scalar_one()
    assert log.ip_address == "203.0.113.7"
    assert log.user_agent == "pytest"
    assert log.request_id == "req-42"


# TEST 12: Permission checks
@pytest.mark.asyncio
async def test_permission_required(client, make_user, grant, headers_for):
    staff = await make_user(UserRole.PROJECT_COORDINATOR)
    headers = headers_for(staff)

    response = await client.get("/v1/activity-logs", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "ERR_PERM_001"

    await grant(staff, "activity_logs.read")
    response = await client.get("/v1/activity-logs", headers=headers)
    assert response.status_code == 200

    # Reading does not imply deleting
    response = await client.post("/v1/activity-logs/clean", headers=headers)
    assert response.status_code == 403


# TEST 13: Service-level listing excludes soft-deleted rows
@pytest.mark.asyncio
async def test_soft_deleted_rows_hidden(db_session):
    await add_logs(db_session, [entry(action="visible"), entry(action="hidden", is_deleted=True)])
    items, total = await activity_service.get_activity_logs(db_session, ActivityLogFilters())
    assert total == 1
    assert items[0].action == "visible"


# TEST 14: Search treats % and _ as plain characters
@pytest.mark.asyncio
async def test_search_wildcards_are_literal(client, admin_headers, db_session):
    await add_logs(db_session, [
        entry(action="quota", description="Storage at 100% of quota"),
        entry(action="blocks", description="Storage at 1000 blocks"),
        entry(action="role_created", resource="role"),
        entry(action="rolexcreated", resource="role"),
    ])

    response = await client.get("/v1/activity-logs", params={"search": "100%"}, headers=admin_headers)
    assert [i["action"] for i in response.json()["data"]["items"]] == ["quota"]

    response = await client.get("/v1/activity-logs", params={"search": "role_c"}, headers=admin_headers)
    assert [i["action"] for i in response.json()["data"]["items"]] == ["role_created"]
