"""
Notification Service.

In-app notifications: producers create them (single, targeted broadcast,
role assignment notices) and only the recipient may read, mark or delete.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, insert, func, desc, case
from datetime import datetime
from typing import Optional, Dict, Any, List, Sequence, Tuple

from welfare_admin.app.models.notification import Notification, NotificationType
from welfare_admin.app.models.user import User
from welfare_admin.app.models.enums import UserRole


def recipients_query(roles: Sequence[UserRole] = (), districts: Sequence[str] = ()):
    """Active users, optionally narrowed to any of `roles` and any of `districts`."""
    query = select(User.id).where(User.is_active == True)  # noqa: E712
    if roles:
        query = query.where(User.role.in_(list(roles)))
    if districts:
        query = query.where(User.district.in_(list(districts)))
    return query


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        payload: Optional[Dict[str, Any]] = None
    ) -> Notification:
        notif = Notification(user_id=user_id, type=type, title=title, message=message, payload=payload)
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def broadcast(
        db: AsyncSession,
        title: str,
        message: str,
        roles: Sequence[UserRole] = (),
        districts: Sequence[str] = (),
        type: NotificationType = NotificationType.INFO,
        payload: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Fan a notification out to every matching active user.

        One bulk INSERT for all recipients. Returns the recipient count.
        """
        user_ids = (await db.execute(recipients_query(roles, districts))).scalars().all()
        if not user_ids:
            return 0
        now = datetime.utcnow()
        await db.execute(insert(Notification), [
            {"user_id": uid, "type": type, "title": title, "message": message,
             "payload": payload, "is_read": False, "created_at": now}
            for uid in user_ids
        ])
        return len(user_ids)

    @staticmethod
    async def notify_role_assigned(db: AsyncSession, user_id: int, role_name: str, assignment_id: int, pending: bool):
        if pending:
            message = f"Role '{role_name}' was requested for you and is awaiting approval."
        else:
            message = f"You have been given the role '{role_name}'."
        return await NotificationService.create_notification(
            db, user_id, "Role assigned", message, NotificationType.ROLE_UPDATE,
            {"assignment_id": assignment_id, "role": role_name},
        )

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[Notification], int, int]:
        """Returns (page of notifications, total, unread_count)."""
        own = Notification.user_id == user_id
        unread = Notification.is_read == False  # noqa: E712
        counts = (await db.execute(
            select(func.count(Notification.id), func.count(case((unread, Notification.id)))).where(own)
        )).one()
        total = counts[1] if unread_only else counts[0]

        query = select(Notification).where(own)
        if unread_only:
            query = query.where(unread)
        result = await db.execute(
            query.order_by(desc(Notification.created_at), desc(Notification.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0, counts[1] or 0

    @staticmethod
    async def stats_by_type(db: AsyncSession) -> List[Dict[str, Any]]:
        """Sent and read totals per notification type."""
        read = func.count(case((Notification.is_read == True, Notification.id)))  # noqa: E712
        rows = await db.execute(
            select(Notification.type, func.count(Notification.id), read)
            .group_by(Notification.type)
            .order_by(Notification.type)
        )
        return [
            {"type": kind.value, "total": total, "read": read_count, "unread": total - read_count}
            for kind, total, read_count in rows.all()
        ]

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Recipient only. A second call leaves the first read_at in place."""
        result = await db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True, read_at=func.coalesce(Notification.read_at, datetime.utcnow()))
        )
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.utcnow())
        )
        return result.rowcount

    @staticmethod
    async def delete(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        result = await db.execute(
            delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        )
        return result.rowcount > 0
