"""
Dashboard API Endpoints.

Read-only aggregates, narrowed to the caller's district or area.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.exceptions import AuthenticationError
from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.user import User
from welfare_admin.app.services.dashboard import DashboardService, Scope

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


async def get_scope(
    current_user: dict = Depends(require_permission("dashboard.read")),
    db: AsyncSession = Depends(get_db)
) -> Scope:
    user = await db.get(User, current_user["user_id"])
    if user is None:
        raise AuthenticationError("User not found")
    return Scope(current_user["role"], user.district, user.area)


@router.get("/overview")
async def get_overview(scope: Scope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    """Entity totals, application status breakdown, budget and last-30-day counts."""
    overview = await DashboardService.get_overview(db, scope)
    return success_response(overview, "Dashboard overview retrieved successfully")


@router.get("/recent-applications")
async def get_recent_applications(
    limit: int = Query(10, ge=1, le=100),
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db)
):
    items = await DashboardService.get_recent_applications(db, scope, limit)
    return success_response(items, "Recent applications retrieved successfully")


@router.get("/recent-payments")
async def get_recent_payments(
    limit: int = Query(10, ge=1, le=100),
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db)
):
    items = await DashboardService.get_recent_payments(db, scope, limit)
    return success_response(items, "Recent payments retrieved successfully")


@router.get("/monthly-trends")
async def get_monthly_trends(
    months: int = Query(6, ge=1, le=24),
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db)
):
    trends = await DashboardService.get_monthly_trends(db, scope, months)
    return success_response(trends, "Monthly trends retrieved successfully")


@router.get("/project-performance")
async def get_project_performance(
    limit: int = Query(10, ge=1, le=50),
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db)
):
    items = await DashboardService.get_project_performance(db, limit)
    return success_response(items, "Project performance retrieved successfully")
