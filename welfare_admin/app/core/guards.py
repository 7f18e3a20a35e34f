"""
Security guards for permission-based access control.

Provides dependency factories for protecting endpoints.
"""

import logging
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from welfare_admin.app.core.config import settings
from welfare_admin.app.core.dependencies import get_current_user
from welfare_admin.app.core.exceptions import AuthorizationError
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.enums import UNRESTRICTED_ROLES
from welfare_admin.app.services.rbac import has_permission

logger = logging.getLogger(__name__)


def require_permission(permission: str):
    """
    Dependency factory for permission-based access control.

    The caller's effective permission set is resolved on every request.
    super_admin and state_admin pass unconditionally while
    `rbac_admin_bypass` is enabled.

    Usage:
        @router.get("/activity-logs")
        async def list_logs(current_user: dict = Depends(require_permission("activity_logs.read"))):
            ...
    """
    async def permission_checker(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ) -> dict:
        if settings.rbac_admin_bypass and current_user.get("role") in {r.value for r in UNRESTRICTED_ROLES}:
            return current_user

        if not await has_permission(db, current_user["user_id"], permission):
            logger.info("Permission denied: user=%s permission=%s", current_user["user_id"], permission)
            raise AuthorizationError(
                f"Missing permission: {permission}", details={"required": permission}
            )
        return current_user

    return permission_checker
