"""
Activity Log API Endpoints.

Read access needs `activity_logs.read`; export and the retention sweep need
their own permissions.
"""

from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.config import settings
from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response, paginated
from welfare_admin.app.db.session import get_db
from welfare_admin.app.schemas.activity_log import ActivityLogFilters, CleanLogsRequest
from welfare_admin.app.services import activity_log as activity_service
from welfare_admin.app.services.activity_log import log_activity, ActivityAction

router = APIRouter(prefix="/activity-logs", tags=["Activity Logs"])


def log_filters(
    user_id: Optional[List[int]] = Query(None),
    action: Optional[List[str]] = Query(None),
    resource: Optional[List[str]] = Query(None),
    status: Optional[List[str]] = Query(None),
    severity: Optional[List[str]] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    ip_address: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
) -> ActivityLogFilters:
    return ActivityLogFilters(
        user_id=user_id, action=action, resource=resource, status=status, severity=severity,
        start_date=start_date, end_date=end_date, ip_address=ip_address, search=search,
    )


@router.get("")
async def list_activity_logs(
    filters: ActivityLogFilters = Depends(log_filters),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, description="Items per page"),
    sort_by: str = Query("timestamp"),
    sort_order: str = Query("desc"),
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    """Filtered, paginated activity log listing (newest first by default)."""
    items, total = await activity_service.get_activity_logs(db, filters, page, limit, sort_by, sort_order)
    effective_limit = min(limit, settings.activity_log_max_page_size)
    return success_response(
        paginated(items, page, effective_limit, total), "Activity logs retrieved successfully"
    )


@router.get("/stats")
async def activity_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    stats = await activity_service.get_activity_stats(db, start_date, end_date, user_id)
    return success_response(stats, "Activity statistics retrieved successfully")


@router.get("/trends")
async def activity_trends(
    period: str = Query("7d", description="7d, 30d, 90d or 1y"),
    group_by: str = Query("day", description="hour, day, week or month"),
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    trends = await activity_service.get_activity_trends(db, period, group_by)
    return success_response(trends, "Activity trends retrieved successfully")


@router.get("/filters")
async def activity_filter_options(
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    options = await activity_service.get_filter_options(db)
    return success_response(options, "Filter options retrieved successfully")


@router.get("/recent")
async def recent_activity(
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    items = await activity_service.get_recent_activity(db, limit)
    return success_response(items, "Recent activity retrieved successfully")


@router.get("/export")
async def export_activity_logs(
    request: Request,
    filters: ActivityLogFilters = Depends(log_filters),
    format: str = Query("json", description="json or csv"),
    current_user: dict = Depends(require_permission("activity_logs.export")),
    db: AsyncSession = Depends(get_db)
):
    """Export matching logs as JSON or a CSV attachment."""
    payload, count = await activity_service.export_logs(db, filters, format)
    await log_activity(
        db, ActivityAction.LOGS_EXPORTED, "activity_logs",
        f"Exported {count} activity log entries as {format}",
        user_id=current_user["user_id"],
        details={"format": format, "count": count, "filters": filters.model_dump(exclude_none=True, mode="json")},
        severity="medium", request=request,
    )
    if format == "csv":
        filename = f"activity-logs-{datetime.utcnow():%Y%m%d-%H%M%S}.csv"
        return Response(
            content=payload,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return success_response({"items": payload, "count": count}, "Activity logs exported successfully")


@router.get("/users/{user_id}/summary")
async def user_activity_summary(
    user_id: int,
    days: int = Query(30, ge=1, le=365),
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    summary = await activity_service.get_user_activity_summary(db, user_id, days)
    return success_response(summary, "User activity summary retrieved successfully")


@router.post("/clean")
async def clean_activity_logs(
    request: Request,
    payload: Optional[CleanLogsRequest] = None,
    current_user: dict = Depends(require_permission("activity_logs.delete")),
    db: AsyncSession = Depends(get_db)
):
    """Retention sweep. The sweep itself is recorded as a high-severity entry."""
    payload = payload or CleanLogsRequest()
    result = await activity_service.clean_old_logs(db, payload.days_to_keep)
    await log_activity(
        db, ActivityAction.SYSTEM_MAINTENANCE, "activity_logs",
        f"Cleaned {result['deleted_count']} activity log entries older than {payload.days_to_keep} days",
        user_id=current_user["user_id"],
        details={"days_to_keep": payload.days_to_keep, "deleted_count": result["deleted_count"],
                 "cutoff_date": result["cutoff_date"].isoformat(), "mode": result["mode"]},
        severity="high", request=request,
    )
    return success_response(result, "Old activity logs cleaned successfully")


@router.get("/{log_id}")
async def get_activity_log(
    log_id: int,
    current_user: dict = Depends(require_permission("activity_logs.read")),
    db: AsyncSession = Depends(get_db)
):
    item = await activity_service.get_activity_log(db, log_id)
    return success_response(item, "Activity log retrieved successfully")
