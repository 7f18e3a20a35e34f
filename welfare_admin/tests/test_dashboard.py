"""
Tests for dashboard aggregates and regional scoping.
"""

import pytest
from datetime import datetime, timedelta

from welfare_admin.app.models.enums import ApplicationStatus, PaymentStatus, UserRole
from welfare_admin.app.models.program import Application, Beneficiary, Payment, Project, Scheme
from welfare_admin.app.services.dashboard import DashboardService, Scope, month_keys, utilization


@pytest.fixture
async def program_data(db_session):
    """Two districts; Kozhikode has areas North and South."""
    now = datetime.utcnow()
    db_session.add_all([
        Beneficiary(name="A", district="Kozhikode", area="North"),
        Beneficiary(name="B", district="Kozhikode", area="South"),
        Beneficiary(name="C", district="Thrissur", area="East"),
        Project(name="Housing", district="Kozhikode", budget_total=1000, budget_spent=250),
        Project(name="Water", district="Thrissur", budget_total=4000, budget_spent=1000),
        Project(name="Closed", status="completed", budget_total=9000, budget_spent=9000),
        Scheme(name="Scholarship", is_active=True),
        Scheme(name="Legacy", is_active=False),
        Application(application_number="APP-1", beneficiary_name="A", status=ApplicationStatus.PENDING,
                    district="Kozhikode", area="North", requested_amount=500),
        Application(application_number="APP-2", beneficiary_name="B", status=ApplicationStatus.UNDER_REVIEW,
                    district="Kozhikode", area="South", requested_amount=700),
        Application(application_number="APP-3", beneficiary_name="C", status=ApplicationStatus.APPROVED,
                    district="Thrissur", area="East", requested_amount=900),
        Application(application_number="APP-4", beneficiary_name="A", status=ApplicationStatus.REJECTED,
                    district="Kozhikode", area="North", requested_amount=100,
                    created_at=now - timedelta(days=60)),
        Payment(beneficiary_name="A", amount=300, status=PaymentStatus.COMPLETED,
                district="Kozhikode", area="North", paid_at=now),
        Payment(beneficiary_name="C", amount=800, status=PaymentStatus.COMPLETED,
                district="Thrissur", area="East", paid_at=now),
        Payment(beneficiary_name="B", amount=50, status=PaymentStatus.FAILED,
                district="Kozhikode", area="South"),
    ])
    await db_session.commit()
    return now


# TEST 1: Helpers
@pytest.mark.asyncio
async def test_utilization_and_month_keys():
    assert utilization(0, 0) == 0.0
    assert utilization(50, None) == 0.0
    assert utilization(1, 3) == 33.33
    assert month_keys(3, datetime(2024, 2, 15)) == ["2023-12", "2024-01", "2024-02"]


# TEST 2: Unrestricted overview
@pytest.mark.asyncio
async def test_overview_unscoped(db_session, program_data):
    overview = await DashboardService.get_overview(db_session, Scope(UserRole.STATE_ADMIN.value))

    assert overview.total_beneficiaries == 3
    assert overview.total_applications == 4
    assert overview.total_projects == 3
    assert overview.active_schemes == 1
    assert overview.application_stats.model_dump() == {"pending": 1, "approved": 1, "rejected": 1, "review": 1}
    assert overview.budget.total == 14000.0
    assert overview.budget.available == 3750.0
    assert overview.recent_activity.applications == 3


# TEST 3: District and area scopes narrow regional data only
@pytest.mark.asyncio
async def test_overview_scoped(db_session, program_data):
    district = await DashboardService.get_overview(
        db_session, Scope(UserRole.DISTRICT_ADMIN.value, district="Kozhikode")
    )
    assert district.total_beneficiaries == 2
    assert district.total_applications == 3
    assert district.application_stats.approved == 0
    # projects and schemes stay program-wide
    assert district.total_projects == 3

    area = await DashboardService.get_overview(
        db_session, Scope(UserRole.AREA_ADMIN.value, district="Kozhikode", area="North")
    )
    assert area.total_beneficiaries == 1
    assert area.total_applications == 2
    assert area.recent_activity.payments == 1


# TEST 4: A scoped role without its region, or an unscoped role, sees nothing
@pytest.mark.asyncio
async def test_scope_without_region_sees_nothing(db_session, program_data):
    for scope in (Scope(UserRole.DISTRICT_ADMIN.value), Scope(UserRole.PROJECT_COORDINATOR.value, "Kozhikode", "North")):
        items = await DashboardService.get_recent_applications(db_session, scope)
        assert items == []


# TEST 5: Zero budget means zero utilization rather than an error
@pytest.mark.asyncio
async def test_overview_with_no_projects(db_session):
    overview = await DashboardService.get_overview(db_session, Scope(UserRole.SUPER_ADMIN.value))
    assert overview.budget.model_dump() == {"total": 0.0, "spent": 0.0, "available": 0.0, "utilization": 0.0}
    assert overview.application_stats.pending == 0


# TEST 6: Monthly trends are zero-filled and count completed payments only
@pytest.mark.asyncio
async def test_monthly_trends(db_session):
    now = datetime(2024, 3, 20, 10, 0)
    db_session.add_all([
        Application(application_number="T-1", status=ApplicationStatus.APPROVED, created_at=datetime(2024, 1, 5)),
        Application(application_number="T-2", status=ApplicationStatus.PENDING, created_at=datetime(2024, 3, 1)),
        Application(application_number="T-3", status=ApplicationStatus.APPROVED, created_at=datetime(2024, 3, 2)),
        Application(application_number="T-OLD", created_at=datetime(2023, 6, 1)),
        Payment(amount=100, status=PaymentStatus.COMPLETED, created_at=datetime(2024, 3, 3)),
        Payment(amount=40, status=PaymentStatus.COMPLETED, created_at=datetime(2024, 3, 4)),
        Payment(amount=999, status=PaymentStatus.PENDING, created_at=datetime(2024, 3, 5)),
    ])
    await db_session.commit()

    trends = await DashboardService.get_monthly_trends(db_session, Scope(UserRole.SUPER_ADMIN.value), 3, now=now)

    assert [p.model_dump() for p in trends.applications] == [
        {"month": "2024-01", "applications": 1, "approved": 1},
        {"month": "2024-02", "applications": 0, "approved": 0},
        {"month": "2024-03", "applications": 2, "approved": 1},
    ]
    assert [p.model_dump() for p in trends.payments] == [
        {"month": "2024-01", "amount": 0.0, "count": 0},
        {"month": "2024-02", "amount": 0.0, "count": 0},
        {"month": "2024-03", "amount": 140.0, "count": 2},
    ]


# TEST 7: Project performance lists active projects by budget
@pytest.mark.asyncio
async def test_project_performance(db_session, program_data):
    rows = await DashboardService.get_project_performance(db_session)
    assert [(r.name, r.utilization) for r in rows] == [("Water", 25.0), ("Housing", 25.0)]


# TEST 8: Endpoint scope comes from the caller's profile
@pytest.mark.asyncio
async def test_dashboard_endpoints(client, make_user, grant, headers_for, program_data):
    admin = await make_user(UserRole.DISTRICT_ADMIN, district="Thrissur")
    headers = headers_for(admin)

    response = await client.get("/v1/dashboard/overview", headers=headers)
    assert response.status_code == 403

    await grant(admin, "dashboard.read")
    response = await client.get("/v1/dashboard/overview", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["total_applications"] == 1

    response = await client.get("/v1/dashboard/recent-payments", headers=headers)
    assert [p["beneficiary"] for p in response.json()["data"]] == ["C"]

    response = await client.get("/v1/dashboard/monthly-trends?months=25", headers=headers)
    assert response.status_code == 400
