"""
Notification API Endpoints.

Users only ever see and change their own notifications.
"""

from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.db.session import get_db
from welfare_admin.app.core.dependencies import get_current_user
from welfare_admin.app.core.exceptions import NotFoundError
from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response, paginated
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.notification_service import NotificationService
from welfare_admin.app.schemas.notification import NotificationResponse, BroadcastRequest

router = APIRouter(prefix="/notifications", tags=["Notifications"])
admin_router = APIRouter(prefix="/admin/notifications", tags=["Admin - Notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List current user's notifications, newest first."""
    items, total, unread = await NotificationService.list_for_user(
        db, current_user["user_id"], unread_only, page, limit
    )
    data = paginated([NotificationResponse.model_validate(n) for n in items], page, limit, total)
    data["unread_count"] = unread
    return success_response(data, "Notifications retrieved successfully")


@router.patch("/read-all")
async def mark_all_notifications_read(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(db, current_user["user_id"])
    await db.commit()
    return success_response({"count": count}, "All notifications marked as read")


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    success = await NotificationService.mark_read(db, notification_id, current_user["user_id"])
    if not success:
        raise NotFoundError("Notification", notification_id)

    await db.commit()
    return success_response({"id": notification_id}, "Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    success = await NotificationService.delete(db, notification_id, current_user["user_id"])
    if not success:
        raise NotFoundError("Notification", notification_id)
    await db.commit()
    return success_response({"id": notification_id}, "Notification deleted")


# --- Admin Broadcast ---

def _broadcast_details(roles, districts, count):
    details = {"recipients": count}
    if len(roles) == 1:
        details["role"] = roles[0].value
    elif roles:
        details["roles"] = [r.value for r in roles]
    if districts:
        details["districts"] = districts
    return details


@admin_router.post("/broadcast")
async def broadcast_notification(
    req: BroadcastRequest,
    request: Request,
    current_user: dict = Depends(require_permission("notifications.broadcast")),
    db: AsyncSession = Depends(get_db)
):
    """Send a notification to many users."""
    roles = req.target_roles()
    count = await NotificationService.broadcast(
        db, req.title, req.message, roles=roles, districts=req.districts, type=req.type, payload=req.payload
    )
    await db.commit()
    await log_activity(
        db, ActivityAction.NOTIFICATION_BROADCAST, "notification",
        f"Broadcast '{req.title}' to {count} users",
        user_id=current_user["user_id"],
        details=_broadcast_details(roles, req.districts, count),
        request=request,
    )
    return success_response({"recipients": count}, "Notification broadcast successfully")


@admin_router.get("/stats")
async def notification_stats(
    current_user: dict = Depends(require_permission("notifications.broadcast")),
    db: AsyncSession = Depends(get_db)
):
    """Delivered and read counts per notification type."""
    return success_response(await NotificationService.stats_by_type(db), "Notification statistics retrieved")
