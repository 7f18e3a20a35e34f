"""
RBAC Database Models.

Permissions with a dependency graph (requires / conflicts / implies), roles with
single-parent inheritance, and user role assignments with per-assignment
permission overrides.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Enum, JSON, ForeignKey,
    Table, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from welfare_admin.app.db.session import Base
from welfare_admin.app.models.enums import (
    RoleType, RoleCategory, PermissionScope, SecurityLevel, DependencyKind,
    ApprovalStatus, OverrideKind, enum_values
)


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    """A named capability, e.g. `activity_logs.read` or `applications.read.regional`."""
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), unique=True, index=True, nullable=False)
    display_name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    module = Column(String(50), index=True, nullable=False)
    category = Column(String(50), default="read", nullable=False)
    scope = Column(Enum(PermissionScope, values_callable=enum_values), default=PermissionScope.GLOBAL, nullable=False)
    resource = Column(String(50), nullable=True)
    action = Column(String(50), nullable=True)
    type = Column(String(20), default="system", nullable=False)
    security_level = Column(Enum(SecurityLevel, values_callable=enum_values), default=SecurityLevel.INTERNAL, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Permission(id={self.id}, name='{self.name}')>"


class PermissionDependency(Base):
    """Directed edge `permission_id --kind--> related_id`."""
    __tablename__ = "permission_dependencies"
    __table_args__ = (UniqueConstraint("permission_id", "related_id", "kind", name="uq_permission_dependency"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    permission_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    related_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Enum(DependencyKind, values_callable=enum_values), nullable=False)


class Role(Base):
    """
    Role with optional single parent (`inherits_from_id`).

    The inheritance graph is kept acyclic by the mutators in services.rbac.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), unique=True, index=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(RoleType, values_callable=enum_values), default=RoleType.CUSTOM, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    category = Column(Enum(RoleCategory, values_callable=enum_values), default=RoleCategory.STAFF, nullable=False)

    inherits_from_id = Column(Integer, ForeignKey("roles.id", ondelete="RESTRICT"), nullable=True, index=True)

    # Constraints
    max_users = Column(Integer, nullable=True)
    requires_approval = Column(Boolean, default=False, nullable=False)
    is_deletable = Column(Boolean, default=True, nullable=False)
    is_modifiable = Column(Boolean, default=True, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Stats
    total_users = Column(Integer, default=0, nullable=False)
    active_users = Column(Integer, default=0, nullable=False)
    last_assigned = Column(DateTime, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin")

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}', level={self.level})>"


class UserRoleAssignment(Base):
    """
    A role held by a user.

    Active means: is_active, approved, valid_from <= now and
    (valid_until is NULL or valid_until >= now).
    """
    __tablename__ = "user_role_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = Column(Text, nullable=True)
    scope = Column(JSON, nullable=True)

    valid_from = Column(DateTime, default=datetime.utcnow, nullable=False)
    valid_until = Column(DateTime, nullable=True, index=True)

    is_primary = Column(Boolean, default=False, nullable=False)
    is_temporary = Column(Boolean, default=False, nullable=False)
    is_stacked = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    approval_status = Column(
        Enum(ApprovalStatus, values_callable=enum_values), default=ApprovalStatus.APPROVED, nullable=False
    )

    removed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    removal_reason = Column(Text, nullable=True)
    removed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    role = relationship("Role", lazy="selectin")
    overrides = relationship(
        "AssignmentPermissionOverride", lazy="selectin", cascade="all, delete-orphan",
        back_populates="assignment"
    )

    def __repr__(self):
        return f"<UserRoleAssignment(id={self.id}, user={self.user_id}, role={self.role_id}, active={self.is_active})>"


# One active, non-stacked assignment per (user, role); enforced by the store.
Index(
    "uq_active_user_role",
    UserRoleAssignment.user_id,
    UserRoleAssignment.role_id,
    unique=True,
    postgresql_where=text("is_active AND NOT is_stacked"),
    sqlite_where=text("is_active = 1 AND is_stacked = 0"),
)


class AssignmentPermissionOverride(Base):
    """Per-assignment grant or restriction with optional expiry."""
    __tablename__ = "assignment_permission_overrides"
    __table_args__ = (
        UniqueConstraint("assignment_id", "permission_id", "kind", name="uq_assignment_override"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    assignment_id = Column(
        Integer, ForeignKey("user_role_assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permission_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    kind = Column(Enum(OverrideKind, values_callable=enum_values), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    assignment = relationship("UserRoleAssignment", back_populates="overrides")

    def is_live(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now
