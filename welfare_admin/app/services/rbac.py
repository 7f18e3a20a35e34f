"""
RBAC service.

Permission resolution: a user's effective permission set is computed from
their active role assignments, each role's inheritance chain, per-assignment
grants and restrictions, and the permission dependency graph
(requires / conflicts / implies). Nothing is cached; every check recomputes.

Role and assignment mutators keep the graph consistent at write time:
inheritance stays acyclic, permission sets satisfy requires/conflicts, and a
role with live assignments or child roles cannot be deleted.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, Dict, Any, List, Set, Iterable, Tuple

from sqlalchemy import select, func, update, or_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.exceptions import ValidationError, NotFoundError, ConflictError
from welfare_admin.app.models.enums import (
    ApprovalStatus, OverrideKind, DependencyKind, RoleType, RoleCategory, PermissionScope, SecurityLevel
)
from welfare_admin.app.models.rbac import (
    Permission, PermissionDependency, Role, UserRoleAssignment, AssignmentPermissionOverride
)
from welfare_admin.app.models.user import User
from welfare_admin.app.schemas.rbac import RoleCreate, RoleUpdate
from welfare_admin.app.services.rbac_catalog import SYSTEM_PERMISSIONS, SYSTEM_DEPENDENCIES, SYSTEM_ROLES

logger = logging.getLogger(__name__)


class DependencyGraph:
    """The three permission relations as adjacency sets over permission ids."""

    def __init__(self, edges: Iterable[PermissionDependency]):
        self.requires: Dict[int, Set[int]] = defaultdict(set)
        self.implies: Dict[int, Set[int]] = defaultdict(set)
        self.conflicts: Dict[int, Set[int]] = defaultdict(set)
        for edge in edges:
            if edge.kind == DependencyKind.REQUIRES:
                self.requires[edge.permission_id].add(edge.related_id)
            elif edge.kind == DependencyKind.IMPLIES:
                self.implies[edge.permission_id].add(edge.related_id)
            else:
                # conflicts is symmetric
                self.conflicts[edge.permission_id].add(edge.related_id)
                self.conflicts[edge.related_id].add(edge.permission_id)

    def expand_implies(self, permission_ids: Set[int], allowed: Set[int]) -> Set[int]:
        """Transitive closure over `implies`, limited to ids in `allowed`."""
        result = set(permission_ids)
        for _ in range(len(allowed) + 1):
            added = {
                implied
                for pid in result
                for implied in self.implies.get(pid, ())
                if implied in allowed and implied not in result
            }
            if not added:
                break
            result |= added
        return result

    def conflicting_pairs(self, permission_ids: Set[int]) -> Set[frozenset]:
        return {
            frozenset((pid, other))
            for pid in permission_ids
            for other in self.conflicts.get(pid, ())
            if other in permission_ids
        }

    def missing_requirements(self, permission_ids: Set[int]) -> Dict[int, Set[int]]:
        missing = {}
        for pid in permission_ids:
            absent = self.requires.get(pid, set()) - permission_ids
            if absent:
                missing[pid] = absent
        return missing


async def load_dependency_graph(db: AsyncSession) -> DependencyGraph:
    result = await db.execute(select(PermissionDependency))
    return DependencyGraph(result.scalars().all())


async def _active_permission_ids(db: AsyncSession) -> Set[int]:
    result = await db.execute(select(Permission.id).where(Permission.is_active == True))  # noqa: E712
    return set(result.scalars().all())


async def _roles_by_id(db: AsyncSession) -> Dict[int, Role]:
    result = await db.execute(select(Role))
    return {role.id: role for role in result.scalars().all()}


def active_assignment_conditions(now: datetime) -> list:
    return [
        UserRoleAssignment.is_active == True,  # noqa: E712
        UserRoleAssignment.approval_status == ApprovalStatus.APPROVED,
        UserRoleAssignment.valid_from <= now,
        or_(UserRoleAssignment.valid_until.is_(None), UserRoleAssignment.valid_until >= now),
    ]


def role_chain_permissions(role: Role, roles_by_id: Dict[int, Role]) -> Set[int]:
    """
    Union of permission ids along the `inherits_from` chain starting at `role`.

    The walk stops at the root, at an inactive or missing ancestor, or (with an
    error logged) on a cycle, which write-time checks should have prevented.
    """
    permission_ids: Set[int] = set()
    visited: Set[int] = set()
    current: Optional[Role] = role
    while current is not None:
        if current.id in visited:
            logger.error("Role inheritance cycle detected at role %s (%s)", current.id, current.name)
            break
        visited.add(current.id)
        if not current.is_active:
            logger.warning("Inactive role %s (%s) in inheritance chain of %s", current.id, current.name, role.name)
            break
        permission_ids.update(p.id for p in current.permissions)
        if current.inherits_from_id is None:
            break
        parent = roles_by_id.get(current.inherits_from_id)
        if parent is None:
            logger.warning("Role %s references missing parent %s", current.id, current.inherits_from_id)
        current = parent
    return permission_ids


async def resolve_effective_permissions(
    db: AsyncSession,
    user_id: int,
    now: Optional[datetime] = None,
) -> Set[int]:
    """
    Compute the user's effective permission ids.

    1. Active assignments only (active, approved, inside validity window).
    2. Role permissions via the inheritance chain.
    3. Unexpired per-assignment grants are added.
    4. Unexpired restrictions are removed. A restriction on any assignment
       removes the permission whatever its source.
    5. `implies` expanded to a fixed point; restrictions removed again.
    6. Any remaining conflicting pair is dropped entirely.

    Returns an empty set for users without assignments. Malformed rows are
    logged and skipped.
    """
    now = now or datetime.utcnow()
    result = await db.execute(
        select(UserRoleAssignment).where(
            UserRoleAssignment.user_id == user_id, *active_assignment_conditions(now)
        )
    )
    assignments = result.scalars().all()
    if not assignments:
        return set()

    roles_by_id = await _roles_by_id(db)
    active_ids = await _active_permission_ids(db)

    granted: Set[int] = set()
    restricted: Set[int] = set()
    for assignment in assignments:
        role = roles_by_id.get(assignment.role_id)
        if role is None:
            logger.warning("Assignment %s references missing role %s; skipped", assignment.id, assignment.role_id)
            continue
        if not role.is_active:
            logger.warning("Assignment %s references inactive role %s; skipped", assignment.id, role.name)
            continue
        granted |= role_chain_permissions(role, roles_by_id)
        for override in assignment.overrides:
            if not override.is_live(now):
                continue
            if override.kind == OverrideKind.GRANT:
                granted.add(override.permission_id)
            else:
                restricted.add(override.permission_id)

    effective = (granted & active_ids) - restricted

    graph = await load_dependency_graph(db)
    effective = graph.expand_implies(effective, active_ids) - restricted

    pairs = graph.conflicting_pairs(effective)
    if pairs:
        dropped = set().union(*pairs)
        logger.warning("User %s holds conflicting permissions %s; dropping both sides", user_id, sorted(dropped))
        effective -= dropped

    return effective


async def get_effective_permission_names(db: AsyncSession, user_id: int) -> List[str]:
    ids = await resolve_effective_permissions(db, user_id)
    if not ids:
        return []
    result = await db.execute(select(Permission.name).where(Permission.id.in_(ids)).order_by(Permission.name))
    return list(result.scalars().all())


async def has_permission(
    db: AsyncSession,
    user_id: int,
    permission_name: str,
    context: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Membership test against the effective set.

    `context` is accepted for scope-based refinement but not consulted yet.
    """
    result = await db.execute(select(Permission).where(Permission.name == permission_name))
    permission = result.scalar_one_or_none()
    if permission is None or not permission.is_active:
        return False
    return permission.id in await resolve_effective_permissions(db, user_id)


class RBACService:
    """Role and assignment mutators plus the admin read models."""

    # --- Validation helpers ---

    @staticmethod
    async def _load_permissions(db: AsyncSession, permission_ids: List[int]) -> List[Permission]:
        ids = set(permission_ids)
        if not ids:
            return []
        result = await db.execute(select(Permission).where(Permission.id.in_(ids)))
        permissions = result.scalars().all()
        found = {p.id for p in permissions}
        if found != ids:
            raise ValidationError("Unknown permission ids", details={"missing": sorted(ids - found)})
        inactive = [p.name for p in permissions if not p.is_active]
        if inactive:
            raise ValidationError("Inactive permissions cannot be granted", details={"inactive": inactive})
        return list(permissions)

    @staticmethod
    async def _assert_acyclic(db: AsyncSession, role_id: Optional[int], parent_id: int) -> Role:
        """
        Reachability check: walking up from `parent_id` must never reach `role_id`.
        """
        if role_id is not None and parent_id == role_id:
            raise ValidationError("A role cannot inherit from itself")
        roles_by_id = await _roles_by_id(db)
        parent = roles_by_id.get(parent_id)
        if parent is None:
            raise NotFoundError("Parent role", parent_id)
        visited: Set[int] = set()
        current: Optional[Role] = parent
        while current is not None:
            if role_id is not None and current.id == role_id:
                raise ValidationError(
                    "Circular role inheritance", details={"role_id": role_id, "parent_id": parent_id}
                )
            if current.id in visited:
                raise ValidationError("Existing role inheritance chain is cyclic", details={"at": current.id})
            visited.add(current.id)
            current = roles_by_id.get(current.inherits_from_id) if current.inherits_from_id else None
        return parent

    @staticmethod
    async def _validate_permission_set(
        db: AsyncSession, permissions: List[Permission], parent: Optional[Role]
    ) -> None:
        """Requires must be satisfied and no conflicting pair may be present."""
        own = {p.id for p in permissions}
        inherited = role_chain_permissions(parent, await _roles_by_id(db)) if parent is not None else set()
        graph = await load_dependency_graph(db)
        combined = graph.expand_implies(own | inherited, await _active_permission_ids(db))

        missing = graph.missing_requirements(combined)
        pairs = graph.conflicting_pairs(combined)
        if not missing and not pairs:
            return

        names = await RBACService._permission_names(db, set(missing) | set().union(*missing.values(), *pairs))
        if missing:
            raise ValidationError(
                "Permission requirements not satisfied",
                details={"missing": {names[pid]: sorted(names[r] for r in req) for pid, req in missing.items()}},
            )
        raise ValidationError(
            "Conflicting permissions", details={"conflicts": [sorted(names[p] for p in pair) for pair in pairs]}
        )

    @staticmethod
    async def _permission_names(db: AsyncSession, ids: Set[int]) -> Dict[int, str]:
        if not ids:
            return {}
        result = await db.execute(select(Permission.id, Permission.name).where(Permission.id.in_(ids)))
        return dict(result.all())

    @staticmethod
    async def get_role(db: AsyncSession, role_id: int) -> Role:
        role = (await db.execute(select(Role).where(Role.id == role_id))).scalar_one_or_none()
        if not role:
            raise NotFoundError("Role", role_id)
        return role

    # --- Role mutators ---

    @staticmethod
    async def create_custom_role(db: AsyncSession, data: RoleCreate, created_by: Optional[int]) -> Role:
        existing = await db.execute(select(Role.id).where(Role.name == data.name))
        if existing.scalar_one_or_none():
            raise ConflictError(f"Role '{data.name}' already exists")

        parent = None
        if data.inherits_from_id is not None:
            parent = await RBACService._assert_acyclic(db, None, data.inherits_from_id)

        permissions = await RBACService._load_permissions(db, data.permission_ids)
        await RBACService._validate_permission_set(db, permissions, parent)

        role = Role(
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            type=RoleType.CUSTOM,
            level=data.level,
            category=data.category,
            inherits_from_id=data.inherits_from_id,
            max_users=data.max_users,
            requires_approval=data.requires_approval,
            created_by=created_by,
            updated_by=created_by,
        )
        role.permissions = permissions
        db.add(role)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Role '{data.name}' already exists")
        await db.refresh(role)
        return role

    @staticmethod
    async def update_custom_role(
        db: AsyncSession, role_id: int, data: RoleUpdate, updated_by: Optional[int]
    ) -> Role:
        role = await RBACService.get_role(db, role_id)
        if role.type == RoleType.SYSTEM and not role.is_modifiable:
            raise ValidationError(f"System role '{role.name}' cannot be modified")

        changes = data.model_dump(exclude_unset=True)

        parent_id = changes.get("inherits_from_id", role.inherits_from_id)
        parent = None
        if parent_id is not None:
            parent = await RBACService._assert_acyclic(db, role.id, parent_id)

        if "permission_ids" in changes:
            permissions = await RBACService._load_permissions(db, changes.pop("permission_ids") or [])
        else:
            permissions = list(role.permissions)
        await RBACService._validate_permission_set(db, permissions, parent)

        for field, value in changes.items():
            setattr(role, field, value)
        role.permissions = permissions
        role.updated_by = updated_by
        await db.commit()
        await db.refresh(role)
        return role

    @staticmethod
    async def delete_custom_role(db: AsyncSession, role_id: int) -> Role:
        role = await RBACService.get_role(db, role_id)
        if role.type == RoleType.SYSTEM or not role.is_deletable:
            raise ValidationError(f"Role '{role.name}' cannot be deleted")

        active = (await db.execute(
            select(func.count(UserRoleAssignment.id)).where(
                UserRoleAssignment.role_id == role.id, UserRoleAssignment.is_active == True  # noqa: E712
            )
        )).scalar() or 0
        if active:
            raise ValidationError(
                f"Role '{role.name}' has {active} active assignment(s)", details={"active_assignments": active}
            )

        children = (await db.execute(
            select(func.count(Role.id)).where(Role.inherits_from_id == role.id)
        )).scalar() or 0
        if children:
            raise ValidationError(
                f"Role '{role.name}' is inherited by {children} role(s)", details={"child_roles": children}
            )

        await db.delete(role)
        await db.commit()
        return role

    @staticmethod
    async def _assert_keeps_current(
        db: AsyncSession, user_id: int, added: Set[int]
    ) -> Tuple[DependencyGraph, Set[int]]:
        """
        Adding `added` to the user's permissions must not create a conflicting
        pair, including pairs reached through `implies`. The resolver drops
        both sides of a pair, which would take away a permission already held.

        Returns the dependency graph and the expanded candidate set.
        """
        current = await resolve_effective_permissions(db, user_id)
        graph = await load_dependency_graph(db)
        active_ids = await _active_permission_ids(db)
        candidate = graph.expand_implies(current | (added & active_ids), active_ids)
        pairs = graph.conflicting_pairs(candidate)
        if not pairs:
            return graph, candidate
        names = await RBACService._permission_names(db, set().union(*pairs))
        raise ValidationError(
            "Permission conflicts with the user's effective permissions",
            details={"conflicts": sorted(sorted(names[p] for p in pair) for pair in pairs)},
        )

    # --- Assignment mutators ---

    @staticmethod
    async def assign_role(
        db: AsyncSession,
        user_id: int,
        role_id: int,
        assigned_by: Optional[int],
        reason: Optional[str] = None,
        scope: Optional[Dict[str, Any]] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        is_primary: bool = False,
        is_temporary: bool = False,
        allow_stack: bool = False,
    ) -> UserRoleAssignment:
        """
        Assign a role to a user.

        A second active assignment of the same role is rejected unless
        `allow_stack` is set. The partial unique index on
        (user_id, role_id) backs the check against concurrent requests.
        """
        now = datetime.utcnow()
        user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        role = await RBACService.get_role(db, role_id)
        if not role.is_active:
            raise ValidationError(f"Role '{role.name}' is inactive")
        valid_from = valid_from or now
        if valid_until is not None and valid_until <= valid_from:
            raise ValidationError("valid_until must be after valid_from")

        await RBACService._assert_keeps_current(db, user_id, role_chain_permissions(role, await _roles_by_id(db)))

        if role.max_users is not None:
            holders = (await db.execute(
                select(func.count(UserRoleAssignment.id)).where(
                    UserRoleAssignment.role_id == role.id, UserRoleAssignment.is_active == True  # noqa: E712
                )
            )).scalar() or 0
            if holders >= role.max_users:
                raise ValidationError(f"Role '{role.name}' has reached its maximum of {role.max_users} users")

        duplicate = (await db.execute(
            select(UserRoleAssignment.id).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.role_id == role_id,
                UserRoleAssignment.is_active == True,  # noqa: E712
                UserRoleAssignment.is_stacked == False,  # noqa: E712
            )
        )).scalar_one_or_none()
        if duplicate and not allow_stack:
            raise ConflictError(f"User already holds role '{role.name}'")

        if is_primary:
            await db.execute(
                update(UserRoleAssignment)
                .where(UserRoleAssignment.user_id == user_id, UserRoleAssignment.is_primary == True)  # noqa: E712
                .values(is_primary=False)
            )

        assignment = UserRoleAssignment(
            user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
            reason=reason,
            scope=scope,
            valid_from=valid_from,
            valid_until=valid_until,
            is_primary=is_primary,
            is_temporary=is_temporary or valid_until is not None,
            is_stacked=bool(duplicate),
            approval_status=ApprovalStatus.PENDING if role.requires_approval else ApprovalStatus.APPROVED,
        )
        db.add(assignment)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"User already holds role '{role.name}'")

        await db.execute(
            update(Role)
            .where(Role.id == role_id)
            .values(total_users=Role.total_users + 1, active_users=Role.active_users + 1, last_assigned=now)
        )
        await db.commit()
        await db.refresh(assignment)
        return assignment

    @staticmethod
    async def _decrement_active_users(db: AsyncSession, role_id: int, count: int) -> None:
        await db.execute(
            update(Role)
            .where(Role.id == role_id)
            .values(active_users=case((Role.active_users > count, Role.active_users - count), else_=0))
        )

    @staticmethod
    async def remove_role(
        db: AsyncSession, user_id: int, role_id: int, removed_by: Optional[int], reason: Optional[str] = None
    ) -> List[UserRoleAssignment]:
        """Deactivate (never delete) the user's active assignments of the role."""
        result = await db.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.role_id == role_id,
                UserRoleAssignment.is_active == True,  # noqa: E712
            )
        )
        assignments = result.scalars().all()
        if not assignments:
            raise NotFoundError("Role assignment")

        now = datetime.utcnow()
        for assignment in assignments:
            assignment.is_active = False
            assignment.is_primary = False
            assignment.approval_status = ApprovalStatus.REVOKED
            assignment.removed_by = removed_by
            assignment.removal_reason = reason
            assignment.removed_at = now
        await db.flush()
        await RBACService._decrement_active_users(db, role_id, len(assignments))
        await db.commit()
        return list(assignments)

    @staticmethod
    async def _get_live_assignment(db: AsyncSession, assignment_id: int) -> UserRoleAssignment:
        assignment = (await db.execute(
            select(UserRoleAssignment).where(UserRoleAssignment.id == assignment_id)
        )).scalar_one_or_none()
        if not assignment:
            raise NotFoundError("Role assignment", assignment_id)
        if not assignment.is_active:
            raise ValidationError("Role assignment is not active")
        return assignment

    @staticmethod
    async def _upsert_override(
        db: AsyncSession,
        assignment: UserRoleAssignment,
        permission_id: int,
        kind: OverrideKind,
        actor_id: Optional[int],
        reason: Optional[str],
        expires_at: Optional[datetime],
    ) -> AssignmentPermissionOverride:
        # Same (assignment, permission, kind) replaces the previous entry
        override = next(
            (o for o in assignment.overrides if o.permission_id == permission_id and o.kind == kind), None
        )
        if override is None:
            override = AssignmentPermissionOverride(permission_id=permission_id, kind=kind)
            assignment.overrides.append(override)
        override.actor_id = actor_id
        override.reason = reason
        override.expires_at = expires_at
        await db.commit()
        await db.refresh(override)
        return override

    @staticmethod
    async def add_assignment_permission(
        db: AsyncSession,
        assignment_id: int,
        permission_id: int,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> AssignmentPermissionOverride:
        """Grant an extra permission on one assignment."""
        assignment = await RBACService._get_live_assignment(db, assignment_id)
        await RBACService._load_permissions(db, [permission_id])
        if expires_at is not None and expires_at <= datetime.utcnow():
            raise ValidationError("expires_at must be in the future")

        graph, candidate = await RBACService._assert_keeps_current(db, assignment.user_id, {permission_id})
        missing = graph.requires.get(permission_id, set()) - candidate
        if missing:
            names = await RBACService._permission_names(db, missing)
            raise ValidationError("Permission requirements not satisfied",
                                  details={"missing": sorted(names.values())})

        return await RBACService._upsert_override(
            db, assignment, permission_id, OverrideKind.GRANT, actor_id, reason, expires_at
        )

    @staticmethod
    async def restrict_assignment_permission(
        db: AsyncSession,
        assignment_id: int,
        permission_id: int,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> AssignmentPermissionOverride:
        """Withhold a permission from the user while the restriction is live."""
        assignment = await RBACService._get_live_assignment(db, assignment_id)
        exists = (await db.execute(select(Permission.id).where(Permission.id == permission_id))).scalar_one_or_none()
        if not exists:
            raise NotFoundError("Permission", permission_id)
        return await RBACService._upsert_override(
            db, assignment, permission_id, OverrideKind.RESTRICT, actor_id, reason, expires_at
        )

    @staticmethod
    async def cleanup_expired_assignments(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Deactivate every active assignment whose valid_until has passed.

        Returns the number deactivated; a second run returns 0.
        """
        now = now or datetime.utcnow()
        result = await db.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.is_active == True,  # noqa: E712
                UserRoleAssignment.valid_until.is_not(None),
                UserRoleAssignment.valid_until < now,
            )
        )
        expired = result.scalars().all()
        if not expired:
            return 0

        per_role: Dict[int, int] = defaultdict(int)
        for assignment in expired:
            assignment.is_active = False
            assignment.is_primary = False
            assignment.removed_at = now
            assignment.removal_reason = "expired"
            per_role[assignment.role_id] += 1
        await db.flush()
        for role_id, count in per_role.items():
            await RBACService._decrement_active_users(db, role_id, count)
        await db.commit()
        logger.info("Deactivated %d expired role assignments", len(expired))
        return len(expired)

    # --- Read models ---

    @staticmethod
    async def _live_counts(db: AsyncSession) -> Dict[int, int]:
        result = await db.execute(
            select(UserRoleAssignment.role_id, func.count(UserRoleAssignment.id))
            .where(*active_assignment_conditions(datetime.utcnow()))
            .group_by(UserRoleAssignment.role_id)
        )
        return dict(result.all())

    @staticmethod
    async def list_roles(
        db: AsyncSession,
        include_inactive: bool = False,
        role_type: Optional[RoleType] = None,
        category: Optional[RoleCategory] = None,
    ) -> List[Dict[str, Any]]:
        query = select(Role).order_by(Role.level.desc(), Role.name)
        if not include_inactive:
            query = query.where(Role.is_active == True)  # noqa: E712
        if role_type:
            query = query.where(Role.type == role_type)
        if category:
            query = query.where(Role.category == category)
        roles = (await db.execute(query)).scalars().all()
        counts = await RBACService._live_counts(db)
        return [{"role": role, "live_users": counts.get(role.id, 0)} for role in roles]

    @staticmethod
    async def get_role_hierarchy(db: AsyncSession) -> List[Dict[str, Any]]:
        """Active roles grouped by level, highest level first."""
        roles = (await db.execute(
            select(Role).where(Role.is_active == True).order_by(Role.level.desc(), Role.name)  # noqa: E712
        )).scalars().all()
        levels: Dict[int, List[Role]] = {}
        for role in roles:
            levels.setdefault(role.level, []).append(role)
        return [{"level": level, "roles": members} for level, members in levels.items()]

    @staticmethod
    async def get_role_users(db: AsyncSession, role_id: int) -> List[Dict[str, Any]]:
        await RBACService.get_role(db, role_id)
        result = await db.execute(
            select(UserRoleAssignment, User.name, User.phone)
            .join(User, User.id == UserRoleAssignment.user_id)
            .where(UserRoleAssignment.role_id == role_id, UserRoleAssignment.is_active == True)  # noqa: E712
            .order_by(UserRoleAssignment.created_at.desc())
        )
        return [
            {"user_id": a.user_id, "name": name, "phone": phone, "assignment_id": a.id,
             "approval_status": a.approval_status, "valid_until": a.valid_until, "is_primary": a.is_primary}
            for a, name, phone in result.all()
        ]

    @staticmethod
    async def get_user_assignments(
        db: AsyncSession, user_id: int, include_inactive: bool = False
    ) -> List[UserRoleAssignment]:
        user = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        query = select(UserRoleAssignment).where(UserRoleAssignment.user_id == user_id)
        if not include_inactive:
            query = query.where(UserRoleAssignment.is_active == True)  # noqa: E712
        result = await db.execute(query.order_by(UserRoleAssignment.is_primary.desc(), UserRoleAssignment.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def get_permission(db: AsyncSession, permission_id: int) -> Dict[str, Any]:
        permission = (await db.execute(
            select(Permission).where(Permission.id == permission_id)
        )).scalar_one_or_none()
        if not permission:
            raise NotFoundError("Permission", permission_id)
        edges = (await db.execute(
            select(PermissionDependency.kind, Permission.name)
            .join(Permission, Permission.id == PermissionDependency.related_id)
            .where(PermissionDependency.permission_id == permission_id)
        )).all()
        related = {kind.value: [] for kind in DependencyKind}
        for kind, name in edges:
            related[kind.value].append(name)
        return {"permission": permission, **{k: sorted(v) for k, v in related.items()}}

    @staticmethod
    async def get_permissions_grouped(db: AsyncSession, module: Optional[str] = None) -> Dict[str, List[Permission]]:
        query = select(Permission).where(Permission.is_active == True)  # noqa: E712
        if module:
            query = query.where(Permission.module == module)
        permissions = (await db.execute(query.order_by(Permission.module, Permission.name))).scalars().all()
        grouped: Dict[str, List[Permission]] = {}
        for permission in permissions:
            grouped.setdefault(permission.module, []).append(permission)
        return grouped

    @staticmethod
    async def get_rbac_stats(db: AsyncSession) -> Dict[str, Any]:
        now = datetime.utcnow()

        async def count(model, *conditions):
            return (await db.execute(select(func.count(model.id)).where(*conditions))).scalar() or 0

        return {
            "roles": {
                "total": await count(Role),
                "system": await count(Role, Role.type == RoleType.SYSTEM),
                "custom": await count(Role, Role.type == RoleType.CUSTOM),
                "active": await count(Role, Role.is_active == True),  # noqa: E712
            },
            "permissions": {
                "total": await count(Permission),
                "active": await count(Permission, Permission.is_active == True),  # noqa: E712
            },
            "assignments": {
                "active": await count(UserRoleAssignment, *active_assignment_conditions(now)),
                "pending": await count(
                    UserRoleAssignment,
                    UserRoleAssignment.is_active == True,  # noqa: E712
                    UserRoleAssignment.approval_status == ApprovalStatus.PENDING,
                ),
                "expired_awaiting_cleanup": await count(
                    UserRoleAssignment,
                    UserRoleAssignment.is_active == True,  # noqa: E712
                    UserRoleAssignment.valid_until.is_not(None),
                    UserRoleAssignment.valid_until < now,
                ),
            },
        }

    @staticmethod
    async def initialize_system(db: AsyncSession) -> Dict[str, int]:
        """Seed the system permission/role catalog. Existing rows are left untouched."""
        existing = {p.name: p for p in (await db.execute(select(Permission))).scalars().all()}
        created_permissions = 0
        for name, display_name, module, category, scope, level in SYSTEM_PERMISSIONS:
            if name in existing:
                continue
            permission = Permission(
                name=name,
                display_name=display_name,
                module=module,
                category=category,
                scope=PermissionScope(scope),
                resource=module,
                action=category,
                type="system",
                security_level=SecurityLevel(level),
            )
            db.add(permission)
            existing[name] = permission
            created_permissions += 1
        await db.flush()

        edges = {
            (e.permission_id, e.related_id, e.kind)
            for e in (await db.execute(select(PermissionDependency))).scalars().all()
        }
        for source, kind, target in SYSTEM_DEPENDENCIES:
            key = (existing[source].id, existing[target].id, DependencyKind(kind))
            if key not in edges:
                db.add(PermissionDependency(permission_id=key[0], related_id=key[1], kind=key[2]))
                edges.add(key)

        roles = {r.name: r for r in (await db.execute(select(Role))).scalars().all()}
        created_roles = 0
        for name, display_name, level, category, parent, permission_names, modifiable in SYSTEM_ROLES:
            if name in roles:
                continue
            role = Role(
                name=name,
                display_name=display_name,
                type=RoleType.SYSTEM,
                level=level,
                category=RoleCategory(category),
                inherits_from_id=roles[parent].id if parent else None,
                is_deletable=False,
                is_modifiable=modifiable,
            )
            role.permissions = [existing[p] for p in permission_names]
            db.add(role)
            await db.flush()
            roles[name] = role
            created_roles += 1

        await db.commit()
        logger.info("RBAC initialised: %d permissions, %d roles created", created_permissions, created_roles)
        return {"permissions_created": created_permissions, "roles_created": created_roles}
