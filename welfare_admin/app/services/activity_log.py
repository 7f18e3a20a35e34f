"""
Activity logging service.

Writes the append-only activity trail and answers the admin queries over it:
filtered/paginated listing, stats, time-bucketed trends, export and the
retention sweep. Trends are folded over the rows on every call.
"""

import csv
import io
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Tuple

from fastapi import Request
from sqlalchemy import select, func, desc, asc, delete, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.config import settings
from welfare_admin.app.core.exceptions import ValidationError, NotFoundError
from welfare_admin.app.core.observability import client_ip, request_id_of
from welfare_admin.app.models.activity_log import ActivityLog
from welfare_admin.app.models.user import User
from welfare_admin.app.schemas.activity_log import ActivityLogFilters, ActivityLogResponse

logger = logging.getLogger(__name__)


class ActivityAction:
    """Standardized activity action names."""
    # Auth
    OTP_SENT = "otp_sent"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    REGISTRATION = "registration"
    TOKEN_REFRESHED = "token_refreshed"
    PROFILE_UPDATED = "profile_updated"
    PHONE_CHANGED = "phone_changed"
    DEVICE_REGISTERED = "device_registered"

    # RBAC
    ROLE_CREATED = "role_created"
    ROLE_UPDATED = "role_updated"
    ROLE_DELETED = "role_deleted"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REMOVED = "role_removed"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_RESTRICTED = "permission_restricted"
    RBAC_INITIALIZED = "rbac_initialized"
    ASSIGNMENTS_CLEANED = "assignments_cleaned"

    # Content
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Activity logs
    LOGS_VIEWED = "activity_logs_viewed"
    LOGS_EXPORTED = "activity_logs_exported"
    SYSTEM_MAINTENANCE = "system_maintenance"

    NOTIFICATION_BROADCAST = "notification_broadcast"


SORTABLE_FIELDS = {
    "timestamp": ActivityLog.timestamp,
    "action": ActivityLog.action,
    "resource": ActivityLog.resource,
    "status": ActivityLog.status,
    "severity": ActivityLog.severity,
}

TREND_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

TREND_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
    "week": "%Y-W%U",
    "month": "%Y-%m",
}

EXPORT_HEADERS = [
    "Timestamp", "User", "Action", "Resource", "Description", "Status", "Severity", "IP Address",
]


async def log_activity(
    db: AsyncSession,
    action: str,
    resource: str,
    description: str,
    user_id: Optional[int] = None,
    resource_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
    status: str = "success",
    severity: str = "low",
    request: Optional[Request] = None,
) -> Optional[ActivityLog]:
    """
    Append an entry to the activity log and commit it.

    Call after the business change has been committed. A failed write is
    logged and rolled back; it never fails the caller's operation.

    Returns:
        Created ActivityLog instance, or None if the write failed
    """
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        description=description,
        details=details,
        status=status,
        severity=severity,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent") if request is not None else None,
        request_id=request_id_of(request),
    )
    try:
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
    except SQLAlchemyError:
        logger.exception("Failed to write activity log: action=%s resource=%s user=%s", action, resource, user_id)
        await db.rollback()
        return None
    return entry


def _split(values: Optional[List[str]]) -> Optional[List[str]]:
    # ?action=a&action=b and ?action=a,b are equivalent
    if not values:
        return None
    out = []
    for value in values:
        out.extend(part.strip() for part in str(value).split(",") if part.strip())
    return out or None


def escape_like(text: str) -> str:
    """Make `%` and `_` literal inside a LIKE pattern (escape character `\\`)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_conditions(filters: ActivityLogFilters) -> list:
    conditions = [ActivityLog.is_deleted == False]  # noqa: E712

    if filters.user_id:
        conditions.append(ActivityLog.user_id.in_(filters.user_id))
    for field, column in (
        ("action", ActivityLog.action),
        ("resource", ActivityLog.resource),
        ("status", ActivityLog.status),
        ("severity", ActivityLog.severity),
    ):
        values = _split(getattr(filters, field))
        if values:
            conditions.append(column.in_(values))
    if filters.start_date:
        conditions.append(ActivityLog.timestamp >= filters.start_date)
    if filters.end_date:
        conditions.append(ActivityLog.timestamp <= filters.end_date)
    if filters.ip_address:
        conditions.append(ActivityLog.ip_address == filters.ip_address)
    if filters.search:
        pattern = f"%{escape_like(filters.search.strip())}%"
        conditions.append(or_(
            ActivityLog.description.ilike(pattern, escape="\\"),
            ActivityLog.action.ilike(pattern, escape="\\"),
            ActivityLog.resource.ilike(pattern, escape="\\"),
        ))
    return conditions


def _serialize(row: Tuple[ActivityLog, Optional[str], Optional[str]]) -> ActivityLogResponse:
    log, user_name, user_phone = row
    item = ActivityLogResponse.model_validate(log)
    item.user_name = user_name
    item.user_phone = user_phone
    return item


def _with_user(query):
    return query.add_columns(User.name, User.phone).outerjoin(User, User.id == ActivityLog.user_id)


async def get_activity_logs(
    db: AsyncSession,
    filters: ActivityLogFilters,
    page: int = 1,
    limit: int = 50,
    sort_by: str = "timestamp",
    sort_order: str = "desc",
) -> Tuple[List[ActivityLogResponse], int]:
    """
    Paginated, filtered log listing.

    Pagination is 1-indexed. A page past the end yields no items.

    Returns:
        (items, total) where total counts every row matching the filters
    """
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    limit = min(limit, settings.activity_log_max_page_size)

    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")
    direction = asc if sort_order == "asc" else desc

    conditions = build_conditions(filters)

    total = (await db.execute(select(func.count(ActivityLog.id)).where(*conditions))).scalar() or 0

    query = (
        _with_user(select(ActivityLog))
        .where(*conditions)
        .order_by(direction(column), direction(ActivityLog.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(query)).all()
    return [_serialize(row) for row in rows], total


async def get_activity_log(db: AsyncSession, log_id: int) -> ActivityLogResponse:
    query = _with_user(select(ActivityLog)).where(
        ActivityLog.id == log_id, ActivityLog.is_deleted == False  # noqa: E712
    )
    row = (await db.execute(query)).first()
    if row is None:
        raise NotFoundError("Activity log", log_id)
    return _serialize(row)


async def get_activity_stats(
    db: AsyncSession,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Totals plus breakdowns by action, resource, status and severity."""
    conditions = build_conditions(ActivityLogFilters(
        start_date=start_date, end_date=end_date, user_id=[user_id] if user_id else None
    ))

    total = (await db.execute(select(func.count(ActivityLog.id)).where(*conditions))).scalar() or 0

    count = func.count(ActivityLog.id).label("count")
    action_rows = (await db.execute(
        select(ActivityLog.action, count, func.max(ActivityLog.timestamp).label("last_activity"))
        .where(*conditions)
        .group_by(ActivityLog.action)
        .order_by(desc("count"), ActivityLog.action)
        .limit(20)
    )).all()

    async def breakdown(column):
        rows = (await db.execute(
            select(column, func.count(ActivityLog.id).label("count"))
            .where(*conditions)
            .group_by(column)
            .order_by(desc("count"), column)
        )).all()
        return [{"value": value, "count": n} for value, n in rows]

    recent, _ = await get_activity_logs(
        db, ActivityLogFilters(start_date=start_date, end_date=end_date, user_id=[user_id] if user_id else None),
        page=1, limit=10,
    )

    return {
        "total_logs": total,
        "by_action": [
            {"action": action, "count": n, "last_activity": last} for action, n, last in action_rows
        ],
        "by_resource": await breakdown(ActivityLog.resource),
        "by_status": await breakdown(ActivityLog.status),
        "by_severity": await breakdown(ActivityLog.severity),
        "recent": recent,
    }


async def get_activity_trends(
    db: AsyncSession,
    period: str = "7d",
    group_by: str = "day",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Bucket the log stream over a window derived from `period`.

    Each bucket: {period, total, success, failed, actions}; `actions` is the
    sorted distinct set of action names seen in the bucket.
    """
    if period not in TREND_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(TREND_PERIODS)}")
    if group_by not in TREND_FORMATS:
        raise ValidationError(f"group_by must be one of: {', '.join(TREND_FORMATS)}")

    now = now or datetime.utcnow()
    start = now - timedelta(days=TREND_PERIODS[period])
    fmt = TREND_FORMATS[group_by]

    rows = (await db.execute(
        select(ActivityLog.timestamp, ActivityLog.status, ActivityLog.action)
        .where(
            ActivityLog.is_deleted == False,  # noqa: E712
            ActivityLog.timestamp >= start,
            ActivityLog.timestamp <= now,
        )
    )).all()

    buckets: Dict[str, Dict[str, Any]] = {}
    for timestamp, status, action in rows:
        key = timestamp.strftime(fmt)
        bucket = buckets.setdefault(key, {"period": key, "total": 0, "success": 0, "failed": 0, "actions": set()})
        bucket["total"] += 1
        if status == "success":
            bucket["success"] += 1
        elif status == "failed":
            bucket["failed"] += 1
        bucket["actions"].add(action)

    trends = []
    for key in sorted(buckets):
        bucket = buckets[key]
        bucket["actions"] = sorted(bucket["actions"])
        trends.append(bucket)

    return {
        "period": period,
        "group_by": group_by,
        "start_date": start,
        "end_date": now,
        "trends": trends,
    }


async def get_user_activity_summary(db: AsyncSession, user_id: int, days: int = 30) -> Dict[str, Any]:
    """Per-day activity for one user over the last `days` days."""
    if days < 1:
        raise ValidationError("days must be >= 1")
    start = datetime.utcnow() - timedelta(days=days)
    rows = (await db.execute(
        select(ActivityLog.timestamp, ActivityLog.action, ActivityLog.resource)
        .where(
            ActivityLog.user_id == user_id,
            ActivityLog.is_deleted == False,  # noqa: E712
            ActivityLog.timestamp >= start,
        )
        .order_by(ActivityLog.timestamp)
    )).all()

    daily: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for timestamp, action, resource in rows:
        day = timestamp.strftime("%Y-%m-%d")
        entry = daily.setdefault(day, {"date": day, "count": 0, "actions": set(), "resources": set()})
        entry["count"] += 1
        entry["actions"].add(action)
        entry["resources"].add(resource)

    summary = [
        {**entry, "actions": sorted(entry["actions"]), "resources": sorted(entry["resources"])}
        for entry in daily.values()
    ]
    return {"user_id": user_id, "days": days, "total": len(rows), "daily": summary}


async def get_filter_options(db: AsyncSession) -> Dict[str, List[str]]:
    """Distinct values for the filter dropdowns."""
    options = {}
    for key, column in (
        ("actions", ActivityLog.action),
        ("resources", ActivityLog.resource),
        ("statuses", ActivityLog.status),
        ("severities", ActivityLog.severity),
    ):
        result = await db.execute(
            select(column).where(ActivityLog.is_deleted == False).distinct().order_by(column)  # noqa: E712
        )
        options[key] = [value for value in result.scalars().all() if value is not None]
    return options


async def get_recent_activity(db: AsyncSession, limit: int = 10) -> List[ActivityLogResponse]:
    items, _ = await get_activity_logs(db, ActivityLogFilters(), page=1, limit=limit)
    return items


async def export_logs(db: AsyncSession, filters: ActivityLogFilters, fmt: str = "json") -> Tuple[Any, int]:
    """
    Export matching logs, newest first, capped at the configured export limit.

    Returns:
        (payload, count); payload is a CSV string for fmt="csv", else a list of items
    """
    if fmt not in ("json", "csv"):
        raise ValidationError("format must be 'json' or 'csv'")
    conditions = build_conditions(filters)
    rows = (await db.execute(
        _with_user(select(ActivityLog))
        .where(*conditions)
        .order_by(desc(ActivityLog.timestamp), desc(ActivityLog.id))
        .limit(settings.activity_log_export_limit)
    )).all()
    items = [_serialize(row) for row in rows]

    if fmt == "json":
        return items, len(items)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for item in items:
        writer.writerow([
            item.timestamp.isoformat(),
            item.user_name or item.user_phone or "System",
            item.action,
            item.resource,
            item.description,
            item.status,
            item.severity,
            item.ip_address or "",
        ])
    return buffer.getvalue(), len(items)


async def clean_old_logs(db: AsyncSession, days_to_keep: int = 365) -> Dict[str, Any]:
    """
    Retention sweep: remove entries older than `now - days_to_keep`.

    Hard-deletes unless `activity_log_soft_delete` is enabled, in which case
    rows are flagged `is_deleted`.
    """
    if days_to_keep < 1:
        raise ValidationError("days_to_keep must be >= 1")
    cutoff = datetime.utcnow() - timedelta(days=days_to_keep)

    if settings.activity_log_soft_delete:
        stmt = (
            update(ActivityLog)
            .where(ActivityLog.timestamp < cutoff, ActivityLog.is_deleted == False)  # noqa: E712
            .values(is_deleted=True)
        )
        mode = "soft"
    else:
        stmt = delete(ActivityLog).where(ActivityLog.timestamp < cutoff)
        mode = "hard"

    result = await db.execute(stmt)
    await db.commit()
    logger.info("Activity log retention sweep removed %s entries older than %s (%s)", result.rowcount, cutoff, mode)
    return {"deleted_count": result.rowcount, "cutoff_date": cutoff, "mode": mode}
