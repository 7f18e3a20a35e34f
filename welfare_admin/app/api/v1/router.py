"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from welfare_admin.app.api.v1.endpoints import (
    auth, activity_logs, rbac, notifications,
    banners, brochures, news_events, website,
    dashboard
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Audit trail
router.include_router(activity_logs.router)

# Roles and permissions
router.include_router(rbac.router)

# Notifications
router.include_router(notifications.router)
router.include_router(notifications.admin_router)

# Public-site content
router.include_router(banners.router)
router.include_router(brochures.router)
router.include_router(news_events.router)
router.include_router(website.router)

# Dashboard
router.include_router(dashboard.router)
