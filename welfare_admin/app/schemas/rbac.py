"""
RBAC Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from welfare_admin.app.models.enums import (
    RoleType, RoleCategory, PermissionScope, SecurityLevel, ApprovalStatus, OverrideKind
)


class PermissionResponse(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str]
    module: str
    category: str
    scope: PermissionScope
    resource: Optional[str]
    action: Optional[str]
    security_level: SecurityLevel
    is_active: bool

    class Config:
        from_attributes = True


class PermissionDetailResponse(PermissionResponse):
    requires: List[str] = []
    conflicts: List[str] = []
    implies: List[str] = []


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    level: int = Field(1, ge=0, le=10)
    category: RoleCategory = RoleCategory.STAFF
    permission_ids: List[int] = Field(default_factory=list)
    inherits_from_id: Optional[int] = None
    max_users: Optional[int] = Field(None, ge=1)
    requires_approval: bool = False


class RoleUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    level: Optional[int] = Field(None, ge=0, le=10)
    category: Optional[RoleCategory] = None
    permission_ids: Optional[List[int]] = None
    inherits_from_id: Optional[int] = None
    max_users: Optional[int] = Field(None, ge=1)
    requires_approval: Optional[bool] = None
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str]
    type: RoleType
    level: int
    category: RoleCategory
    inherits_from_id: Optional[int]
    max_users: Optional[int]
    requires_approval: bool
    is_deletable: bool
    is_modifiable: bool
    is_active: bool
    total_users: int
    active_users: int
    last_assigned: Optional[datetime]
    permissions: List[PermissionResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class AssignRoleRequest(BaseModel):
    role_id: int
    reason: Optional[str] = Field(None, max_length=500)
    scope: Optional[Dict[str, Any]] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_primary: bool = False
    is_temporary: bool = False
    allow_stack: bool = False


class PermissionOverrideRequest(BaseModel):
    permission_id: int
    reason: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None


class PermissionOverrideResponse(BaseModel):
    id: int
    permission_id: int
    kind: OverrideKind
    actor_id: Optional[int]
    reason: Optional[str]
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class AssignmentResponse(BaseModel):
    id: int
    user_id: int
    role_id: int
    role_name: Optional[str] = None
    assigned_by: Optional[int]
    reason: Optional[str]
    scope: Optional[Dict[str, Any]]
    valid_from: datetime
    valid_until: Optional[datetime]
    is_primary: bool
    is_temporary: bool
    is_stacked: bool
    is_active: bool
    approval_status: ApprovalStatus
    removed_by: Optional[int]
    removal_reason: Optional[str]
    removed_at: Optional[datetime]
    overrides: List[PermissionOverrideResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class CheckPermissionRequest(BaseModel):
    permission: str = Field(..., min_length=1)
    context: Optional[Dict[str, Any]] = None
