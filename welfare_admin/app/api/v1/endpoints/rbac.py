"""
RBAC API Endpoints.

Role catalogue, user role assignments, per-assignment permission overrides
and permission checks. Every mutation is written to the activity log.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.enums import ApprovalStatus, RoleType, RoleCategory
from welfare_admin.app.models.rbac import UserRoleAssignment
from welfare_admin.app.schemas.rbac import (
    RoleCreate, RoleUpdate, RoleResponse, PermissionResponse, PermissionDetailResponse,
    AssignRoleRequest, AssignmentResponse, PermissionOverrideRequest, PermissionOverrideResponse,
    CheckPermissionRequest
)
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.notification_service import NotificationService
from welfare_admin.app.services.rbac import (
    RBACService, get_effective_permission_names, has_permission
)

router = APIRouter(prefix="/rbac", tags=["RBAC"])


def _assignment(assignment: UserRoleAssignment) -> AssignmentResponse:
    item = AssignmentResponse.model_validate(assignment)
    item.role_name = assignment.role.name if assignment.role else None
    return item


# --- Roles ---

@router.get("/roles")
async def list_roles(
    include_inactive: bool = Query(False),
    type: Optional[RoleType] = Query(None),
    category: Optional[RoleCategory] = Query(None),
    current_user: dict = Depends(require_permission("roles.read")),
    db: AsyncSession = Depends(get_db)
):
    """List roles with live assignment counts."""
    rows = await RBACService.list_roles(db, include_inactive, type, category)
    roles = [
        {**RoleResponse.model_validate(row["role"]).model_dump(), "live_users": row["live_users"]}
        for row in rows
    ]
    return success_response(roles, "Roles retrieved successfully")


@router.get("/roles/hierarchy")
async def role_hierarchy(
    current_user: dict = Depends(require_permission("roles.read")),
    db: AsyncSession = Depends(get_db)
):
    levels = await RBACService.get_role_hierarchy(db)
    data = [
        {"level": level["level"], "roles": [RoleResponse.model_validate(r) for r in level["roles"]]}
        for level in levels
    ]
    return success_response(data, "Role hierarchy retrieved successfully")


@router.get("/roles/{role_id}")
async def get_role(
    role_id: int,
    current_user: dict = Depends(require_permission("roles.read")),
    db: AsyncSession = Depends(get_db)
):
    role = await RBACService.get_role(db, role_id)
    return success_response(RoleResponse.model_validate(role), "Role retrieved successfully")


@router.post("/roles", status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    request: Request,
    current_user: dict = Depends(require_permission("roles.create")),
    db: AsyncSession = Depends(get_db)
):
    """Create a custom role."""
    role = await RBACService.create_custom_role(db, payload, current_user["user_id"])
    data = RoleResponse.model_validate(role)
    await log_activity(
        db, ActivityAction.ROLE_CREATED, "role",
        f"Created custom role '{role.name}'",
        user_id=current_user["user_id"], resource_id=role.id,
        details={"permission_ids": payload.permission_ids, "inherits_from_id": payload.inherits_from_id},
        severity="medium", request=request,
    )
    return success_response(data, "Role created successfully")


@router.put("/roles/{role_id}")
async def update_role(
    role_id: int,
    payload: RoleUpdate,
    request: Request,
    current_user: dict = Depends(require_permission("roles.update")),
    db: AsyncSession = Depends(get_db)
):
    role = await RBACService.update_custom_role(db, role_id, payload, current_user["user_id"])
    data = RoleResponse.model_validate(role)
    await log_activity(
        db, ActivityAction.ROLE_UPDATED, "role",
        f"Updated role '{role.name}'",
        user_id=current_user["user_id"], resource_id=role.id,
        details={"changes": payload.model_dump(exclude_unset=True, mode="json")},
        severity="medium", request=request,
    )
    return success_response(data, "Role updated successfully")


@router.delete("/roles/{role_id}")
async def delete_role(
    role_id: int,
    request: Request,
    current_user: dict = Depends(require_permission("roles.delete")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a custom role. Refused while active assignments or child roles exist."""
    role = await RBACService.delete_custom_role(db, role_id)
    await log_activity(
        db, ActivityAction.ROLE_DELETED, "role",
        f"Deleted custom role '{role.name}'",
        user_id=current_user["user_id"], resource_id=role_id,
        severity="high", request=request,
    )
    return success_response({"id": role_id}, "Role deleted successfully")


@router.get("/roles/{role_id}/users")
async def role_users(
    role_id: int,
    current_user: dict = Depends(require_permission("users.read")),
    db: AsyncSession = Depends(get_db)
):
    users = await RBACService.get_role_users(db, role_id)
    return success_response(users, "Role users retrieved successfully")


# --- Permissions ---

@router.get("/permissions")
async def list_permissions(
    module: Optional[str] = Query(None),
    current_user: dict = Depends(require_permission("permissions.read")),
    db: AsyncSession = Depends(get_db)
):
    """Active permissions grouped by module."""
    grouped = await RBACService.get_permissions_grouped(db, module)
    data = {name: [PermissionResponse.model_validate(p) for p in perms] for name, perms in grouped.items()}
    return success_response(data, "Permissions retrieved successfully")


@router.get("/permissions/{permission_id}")
async def get_permission(
    permission_id: int,
    current_user: dict = Depends(require_permission("permissions.read")),
    db: AsyncSession = Depends(get_db)
):
    found = await RBACService.get_permission(db, permission_id)
    data = PermissionDetailResponse(
        **PermissionResponse.model_validate(found["permission"]).model_dump(),
        requires=found["requires"], conflicts=found["conflicts"], implies=found["implies"],
    )
    return success_response(data, "Permission retrieved successfully")


# --- User role assignments ---

@router.post("/users/{user_id}/roles", status_code=status.HTTP_201_CREATED)
async def assign_role(
    user_id: int,
    payload: AssignRoleRequest,
    request: Request,
    current_user: dict = Depends(require_permission("roles.assign")),
    db: AsyncSession = Depends(get_db)
):
    assignment = await RBACService.assign_role(
        db, user_id, payload.role_id, current_user["user_id"],
        reason=payload.reason, scope=payload.scope,
        valid_from=payload.valid_from, valid_until=payload.valid_until,
        is_primary=payload.is_primary, is_temporary=payload.is_temporary,
        allow_stack=payload.allow_stack,
    )
    data = _assignment(assignment)
    await NotificationService.notify_role_assigned(
        db, user_id, data.role_name, assignment.id, data.approval_status == ApprovalStatus.PENDING
    )
    await db.commit()
    await log_activity(
        db, ActivityAction.ROLE_ASSIGNED, "user_role",
        f"Assigned role '{data.role_name}' to user {user_id}",
        user_id=current_user["user_id"], resource_id=assignment.id,
        details={"target_user_id": user_id, "role_id": payload.role_id,
                 "approval_status": data.approval_status.value},
        severity="medium", request=request,
    )
    return success_response(data, "Role assigned successfully")


@router.get("/users/{user_id}/roles")
async def user_roles(
    user_id: int,
    include_inactive: bool = Query(False),
    current_user: dict = Depends(require_permission("users.read")),
    db: AsyncSession = Depends(get_db)
):
    assignments = await RBACService.get_user_assignments(db, user_id, include_inactive)
    return success_response([_assignment(a) for a in assignments], "User roles retrieved successfully")


@router.delete("/users/{user_id}/roles/{role_id}")
async def remove_role(
    user_id: int,
    role_id: int,
    request: Request,
    reason: Optional[str] = Query(None, max_length=500),
    current_user: dict = Depends(require_permission("roles.assign")),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate the assignment; the row is kept with removal details."""
    removed = await RBACService.remove_role(db, user_id, role_id, current_user["user_id"], reason)
    await log_activity(
        db, ActivityAction.ROLE_REMOVED, "user_role",
        f"Removed role {role_id} from user {user_id}",
        user_id=current_user["user_id"], resource_id=removed[0].id,
        details={"target_user_id": user_id, "role_id": role_id, "reason": reason},
        severity="medium", request=request,
    )
    return success_response([_assignment(a) for a in removed], "Role removed successfully")


@router.get("/users/{user_id}/permissions")
async def user_permissions(
    user_id: int,
    current_user: dict = Depends(require_permission("users.read")),
    db: AsyncSession = Depends(get_db)
):
    """The user's effective permission names."""
    names = await get_effective_permission_names(db, user_id)
    return success_response({"user_id": user_id, "permissions": names}, "User permissions retrieved successfully")


@router.post("/users/{user_id}/check-permission")
async def check_permission(
    user_id: int,
    payload: CheckPermissionRequest,
    current_user: dict = Depends(require_permission("users.read")),
    db: AsyncSession = Depends(get_db)
):
    allowed = await has_permission(db, user_id, payload.permission, payload.context)
    return success_response(
        {"user_id": user_id, "permission": payload.permission, "has_permission": allowed},
        "Permission check completed",
    )


# --- Per-assignment overrides ---

@router.post("/user-roles/{assignment_id}/permissions", status_code=status.HTTP_201_CREATED)
async def grant_assignment_permission(
    assignment_id: int,
    payload: PermissionOverrideRequest,
    request: Request,
    current_user: dict = Depends(require_permission("roles.assign")),
    db: AsyncSession = Depends(get_db)
):
    override = await RBACService.add_assignment_permission(
        db, assignment_id, payload.permission_id, current_user["user_id"], payload.reason, payload.expires_at
    )
    data = PermissionOverrideResponse.model_validate(override)
    await log_activity(
        db, ActivityAction.PERMISSION_GRANTED, "user_role",
        f"Granted permission {payload.permission_id} on assignment {assignment_id}",
        user_id=current_user["user_id"], resource_id=assignment_id,
        details={"permission_id": payload.permission_id, "reason": payload.reason},
        severity="medium", request=request,
    )
    return success_response(data, "Permission granted successfully")


@router.post("/user-roles/{assignment_id}/restrictions", status_code=status.HTTP_201_CREATED)
async def restrict_assignment_permission(
    assignment_id: int,
    payload: PermissionOverrideRequest,
    request: Request,
    current_user: dict = Depends(require_permission("roles.assign")),
    db: AsyncSession = Depends(get_db)
):
    override = await RBACService.restrict_assignment_permission(
        db, assignment_id, payload.permission_id, current_user["user_id"], payload.reason, payload.expires_at
    )
    data = PermissionOverrideResponse.model_validate(override)
    await log_activity(
        db, ActivityAction.PERMISSION_RESTRICTED, "user_role",
        f"Restricted permission {payload.permission_id} on assignment {assignment_id}",
        user_id=current_user["user_id"], resource_id=assignment_id,
        details={"permission_id": payload.permission_id, "reason": payload.reason},
        severity="medium", request=request,
    )
    return success_response(data, "Permission restricted successfully")


# --- System administration ---

@router.post("/initialize")
async def initialize_rbac(
    request: Request,
    current_user: dict = Depends(require_permission("rbac.manage")),
    db: AsyncSession = Depends(get_db)
):
    """Seed system permissions and roles (idempotent)."""
    result = await RBACService.initialize_system(db)
    await log_activity(
        db, ActivityAction.RBAC_INITIALIZED, "rbac", "Initialised RBAC system catalog",
        user_id=current_user["user_id"], details=result, severity="high", request=request,
    )
    return success_response(result, "RBAC system initialized successfully")


@router.get("/stats")
async def rbac_stats(
    current_user: dict = Depends(require_permission("roles.read")),
    db: AsyncSession = Depends(get_db)
):
    return success_response(await RBACService.get_rbac_stats(db), "RBAC statistics retrieved successfully")


@router.post("/cleanup")
async def cleanup_assignments(
    request: Request,
    current_user: dict = Depends(require_permission("rbac.manage")),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate expired role assignments."""
    count = await RBACService.cleanup_expired_assignments(db)
    await log_activity(
        db, ActivityAction.ASSIGNMENTS_CLEANED, "user_role",
        f"Deactivated {count} expired role assignments",
        user_id=current_user["user_id"], details={"deactivated": count}, severity="medium", request=request,
    )
    return success_response({"deactivated": count}, "Expired assignments cleaned up")
