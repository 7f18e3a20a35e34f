"""
Tests for roles, assignments and the effective-permission resolver.

Service-level tests run against the seeded system catalog; the endpoint
tests at the bottom check wiring, logging and the admin bypass.
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import inspect, select

from welfare_admin.app.core.exceptions import ConflictError, ValidationError
from welfare_admin.app.models.activity_log import ActivityLog
from welfare_admin.app.models.enums import ApprovalStatus, DependencyKind, OverrideKind, UserRole
from welfare_admin.app.models.rbac import AssignmentPermissionOverride, Permission, PermissionDependency, Role
from welfare_admin.app.schemas.rbac import RoleCreate, RoleUpdate
from welfare_admin.app.services.rbac import (
    RBACService, get_effective_permission_names, has_permission, resolve_effective_permissions
)


@pytest.fixture
async def catalog(db_session):
    await RBACService.initialize_system(db_session)
    return db_session


async def perm_ids(db, *names):
    result = await db.execute(select(Permission.name, Permission.id).where(Permission.name.in_(names)))
    by_name = dict(result.all())
    return [by_name[name] for name in names]


async def role_named(db, name):
    return (await db.execute(select(Role).where(Role.name == name))).scalar_one()


async def custom_role(db, name, *permission_names, **fields):
    ids = await perm_ids(db, *permission_names)
    data = RoleCreate(name=name, display_name=name.title(), permission_ids=ids, **fields)
    return await RBACService.create_custom_role(db, data, None)


# TEST 1: Seeding twice creates nothing the second time
@pytest.mark.asyncio
async def test_initialize_is_idempotent(db_session):
    first = await RBACService.initialize_system(db_session)
    assert first == {"permissions_created": 18, "roles_created": 8}

    second = await RBACService.initialize_system(db_session)
    assert second == {"permissions_created": 0, "roles_created": 0}


# TEST 2: Inherited permissions follow the parent chain
@pytest.mark.asyncio
async def test_inheritance_chain(catalog, make_user):
    user = await make_user(UserRole.DISTRICT_ADMIN)
    district = await role_named(catalog, "district_admin")
    await RBACService.assign_role(catalog, user.id, district.id, None)

    names = await get_effective_permission_names(catalog, user.id)
    assert names == [
        "activity_logs.export",
        "activity_logs.read",
        "applications.read.regional",
        "dashboard.read",
        "roles.read",
        "users.read",
        "website.read",
        "website.write",
    ]
    assert await has_permission(catalog, user.id, "dashboard.read")
    assert not await has_permission(catalog, user.id, "rbac.manage")
    assert not await has_permission(catalog, user.id, "no.such.permission")


# TEST 3: No assignments means no permissions
@pytest.mark.asyncio
async def test_user_without_assignments(catalog, make_user):
    user = await make_user(UserRole.PROJECT_COORDINATOR)
    assert await resolve_effective_permissions(catalog, user.id) == set()


# TEST 4: implies is expanded transitively
@pytest.mark.asyncio
async def test_implies_expansion(catalog, make_user):
    role = await custom_role(catalog, "assigner", "roles.assign")
    user = await make_user()
    await RBACService.assign_role(catalog, user.id, role.id, None)

    names = await get_effective_permission_names(catalog, user.id)
    assert names == ["roles.assign", "roles.read", "users.read"]


# TEST 5: requires must be satisfied when a role is created
@pytest.mark.asyncio
async def test_create_role_missing_requirement(catalog):
    with pytest.raises(ValidationError) as exc:
        await custom_role(catalog, "creator", "roles.create")
    assert "requirements" in exc.value.message
    assert exc.value.details["missing"] == {"roles.create": ["roles.read"]}

    role = await custom_role(catalog, "creator", "roles.create", "roles.read")
    assert {p.name for p in role.permissions} == {"roles.create", "roles.read"}


# TEST 6: Conflicting permissions cannot share a role
@pytest.mark.asyncio
async def test_create_role_with_conflict(catalog):
    dashboard, users = await perm_ids(catalog, "dashboard.read", "users.read")
    catalog.add(PermissionDependency(permission_id=dashboard, related_id=users, kind=DependencyKind.CONFLICTS))
    await catalog.commit()

    with pytest.raises(ValidationError) as exc:
        await custom_role(catalog, "clash", "dashboard.read", "users.read")
    assert exc.value.message == "Conflicting permissions"


# TEST 7: Conflicts that appear later are dropped on both sides
@pytest.mark.asyncio
async def test_conflict_at_resolve_time_fails_closed(catalog, make_user):
    viewer = await custom_role(catalog, "viewer", "dashboard.read", "website.read")
    auditor = await custom_role(catalog, "auditor", "users.read")
    user = await make_user()
    await RBACService.assign_role(catalog, user.id, viewer.id, None)
    await RBACService.assign_role(catalog, user.id, auditor.id, None)

    dashboard, users = await perm_ids(catalog, "dashboard.read", "users.read")
    catalog.add(PermissionDependency(permission_id=users, related_id=dashboard, kind=DependencyKind.CONFLICTS))
    await catalog.commit()

    assert await get_effective_permission_names(catalog, user.id) == ["website.read"]


# TEST 8: Inheritance cycles are rejected
@pytest.mark.asyncio
async def test_inheritance_cycle_rejected(catalog):
    base = await custom_role(catalog, "base_role", "website.read")
    child = await custom_role(catalog, "child_role", "dashboard.read", inherits_from_id=base.id)

    with pytest.raises(ValidationError) as exc:
        await RBACService.update_custom_role(catalog, base.id, RoleUpdate(inherits_from_id=child.id), None)
    assert exc.value.message == "Circular role inheritance"

    with pytest.raises(ValidationError):
        await RBACService.update_custom_role(catalog, base.id, RoleUpdate(inherits_from_id=base.id), None)


# TEST 9: System roles cannot be deleted; custom roles only when unused
@pytest.mark.asyncio
async def test_role_deletion_rules(catalog, make_user):
    with pytest.raises(ValidationError):
        await RBACService.delete_custom_role(catalog, (await role_named(catalog, "unit_admin")).id)

    parent = await custom_role(catalog, "parent_role", "website.read")
    child = await custom_role(catalog, "leaf_role", "dashboard.read", inherits_from_id=parent.id)
    with pytest.raises(ValidationError) as exc:
        await RBACService.delete_custom_role(catalog, parent.id)
    assert exc.value.details == {"child_roles": 1}

    user = await make_user()
    await RBACService.assign_role(catalog, user.id, child.id, None)
    with pytest.raises(ValidationError) as exc:
        await RBACService.delete_custom_role(catalog, child.id)
    assert exc.value.details == {"active_assignments": 1}

    await RBACService.remove_role(catalog, user.id, child.id, None, "rotation")
    await RBACService.delete_custom_role(catalog, child.id)
    assert (await catalog.execute(select(Role).where(Role.name == "leaf_role"))).scalar_one_or_none() is None


# TEST 10: Duplicate assignment is a conflict unless stacking is requested
@pytest.mark.asyncio
async def test_duplicate_and_stacked_assignment(catalog, make_user):
    role = await role_named(catalog, "unit_admin")
    user = await make_user()
    await RBACService.assign_role(catalog, user.id, role.id, None)

    with pytest.raises(ConflictError):
        await RBACService.assign_role(catalog, user.id, role.id, None)

    stacked = await RBACService.assign_role(catalog, user.id, role.id, None, allow_stack=True)
    assert stacked.is_stacked is True
    assert len(await RBACService.get_user_assignments(catalog, user.id)) == 2


# TEST 11: Approval-gated roles grant nothing until approved
@pytest.mark.asyncio
async def test_pending_assignment_grants_nothing(catalog, make_user):
    role = await custom_role(catalog, "gated", "dashboard.read", requires_approval=True)
    user = await make_user()
    assignment = await RBACService.assign_role(catalog, user.id, role.id, None)

    assert assignment.approval_status == ApprovalStatus.PENDING
    assert await resolve_effective_permissions(catalog, user.id) == set()


# TEST 12: Restrictions beat implied permissions, grants add extras
@pytest.mark.asyncio
async def test_assignment_overrides(catalog, make_user):
    user = await make_user(UserRole.DISTRICT_ADMIN)
    district = await role_named(catalog, "district_admin")
    assignment = await RBACService.assign_role(catalog, user.id, district.id, None)
    website_read, broadcast, export = await perm_ids(
        catalog, "website.read", "notifications.broadcast", "activity_logs.export"
    )

    await RBACService.restrict_assignment_permission(catalog, assignment.id, website_read, None, "audit")
    await RBACService.add_assignment_permission(catalog, assignment.id, broadcast, None, "campaign")

    names = await get_effective_permission_names(catalog, user.id)
    assert "website.read" not in names
    assert "website.write" in names
    assert "notifications.broadcast" in names

    # Expired restrictions are ignored
    catalog.add(AssignmentPermissionOverride(
        assignment_id=assignment.id, permission_id=export, kind=OverrideKind.RESTRICT,
        expires_at=datetime.utcnow() - timedelta(hours=1),
    ))
    await catalog.commit()
    await catalog.refresh(assignment)
    assert "activity_logs.export" in await get_effective_permission_names(catalog, user.id)


# TEST 13: A grant must have its requirements met
@pytest.mark.asyncio
async def test_grant_requires_dependencies(catalog, make_user):
    role = await custom_role(catalog, "plain", "dashboard.read")
    user = await make_user()
    assignment = await RBACService.assign_role(catalog, user.id, role.id, None)
    (roles_delete,) = await perm_ids(catalog, "roles.delete")

    with pytest.raises(ValidationError) as exc:
        await RBACService.add_assignment_permission(catalog, assignment.id, roles_delete, None)
    assert exc.value.details == {"missing": ["roles.read"]}


# TEST 14: Expired assignments stop counting and cleanup is idempotent
@pytest.mark.asyncio
async def test_cleanup_expired_assignments(catalog, make_user):
    role = await role_named(catalog, "unit_admin")
    user = await make_user()
    now = datetime.utcnow()
    await RBACService.assign_role(
        catalog, user.id, role.id, None, valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1)
    )

    assert await resolve_effective_permissions(catalog, user.id) == set()
    assert await RBACService.cleanup_expired_assignments(catalog) == 1
    assert await RBACService.cleanup_expired_assignments(catalog) == 0

    assignments = await RBACService.get_user_assignments(catalog, user.id, include_inactive=True)
    assert assignments[0].is_active is False
    assert assignments[0].removal_reason == "expired"


# TEST 15: Initialise, assign and check over HTTP
@pytest.mark.asyncio
async def test_assignment_endpoints(client, admin_headers, make_user, db_session):
    response = await client.post("/v1/rbac/initialize", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["permissions_created"] == 18

    user = await make_user(UserRole.AREA_ADMIN)
    area = await role_named(db_session, "area_admin")

    response = await client.post(f"/v1/rbac/users/{user.id}/roles", headers=admin_headers,
                                 json={"role_id": area.id, "reason": "new area lead"})
    assert response.status_code == 201
    assert response.json()["data"]["role_name"] == "area_admin"

    response = await client.post(f"/v1/rbac/users/{user.id}/roles", headers=admin_headers,
                                 json={"role_id": area.id})
    assert response.status_code == 400
    assert response.json()["error"] == "ERR_CONFLICT"

    response = await client.get(f"/v1/rbac/users/{user.id}/permissions", headers=admin_headers)
    assert "activity_logs.read" in response.json()["data"]["permissions"]

    response = await client.post(f"/v1/rbac/users/{user.id}/check-permission", headers=admin_headers,
                                 json={"permission": "roles.delete"})
    assert response.json()["data"]["has_permission"] is False

    actions = (await db_session.execute(select(ActivityLog.action))).scalars().all()
    assert "rbac_initialized" in actions
    assert "role_assigned" in actions


# TEST 16: Privileged roles bypass checks, others need the permission
@pytest.mark.asyncio
async def test_admin_bypass(client, make_user, headers_for):
    state = await make_user(UserRole.STATE_ADMIN)
    response = await client.get("/v1/rbac/roles", headers=headers_for(state))
    assert response.status_code == 200

    coordinator = await make_user(UserRole.PROJECT_COORDINATOR)
    response = await client.get("/v1/rbac/roles", headers=headers_for(coordinator))
    assert response.status_code == 403
    assert response.json()["details"] == {"required": "roles.read"}


async def conflict(db, first, second):
    a, b = await perm_ids(db, first, second)
    db.add(PermissionDependency(permission_id=a, related_id=b, kind=DependencyKind.CONFLICTS))
    await db.commit()


# TEST 17: A grant whose implied permission clashes is refused, nothing is lost
@pytest.mark.asyncio
async def test_grant_rejected_when_implied_permission_conflicts(catalog, make_user):
    role = await custom_role(catalog, "site_reader", "website.read")
    user = await make_user()
    assignment = await RBACService.assign_role(catalog, user.id, role.id, None)
    await conflict(catalog, "users.read", "website.read")
    (roles_assign,) = await perm_ids(catalog, "roles.assign")

    with pytest.raises(ValidationError) as exc:
        await RBACService.add_assignment_permission(catalog, assignment.id, roles_assign, None)
    assert exc.value.details == {"conflicts": [["users.read", "website.read"]]}

    assert await get_effective_permission_names(catalog, user.id) == ["website.read"]


# TEST 18: A second role cannot knock out permissions of the first
@pytest.mark.asyncio
async def test_assignment_rejected_when_roles_conflict(catalog, make_user):
    reader = await custom_role(catalog, "site_reader", "website.read")
    assigner = await custom_role(catalog, "assigner", "roles.assign")
    user = await make_user()
    await RBACService.assign_role(catalog, user.id, reader.id, None)
    await conflict(catalog, "users.read", "website.read")

    with pytest.raises(ValidationError) as exc:
        await RBACService.assign_role(catalog, user.id, assigner.id, None)
    assert exc.value.message == "Permission conflicts with the user's effective permissions"

    assert await get_effective_permission_names(catalog, user.id) == ["website.read"]
    assignments = await RBACService.get_user_assignments(catalog, user.id)
    assert [a.role_id for a in assignments] == [reader.id]


# TEST 19: The schema drops cleanly with a seeded inheritance chain
@pytest.mark.asyncio
async def test_schema_drops_with_inherited_roles(catalog, schema_teardown):
    parents = (await catalog.execute(select(Role.inherits_from_id).where(Role.inherits_from_id.is_not(None))))
    assert parents.scalars().all()
    await catalog.close()

    await schema_teardown()

    async with catalog.bind.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert tables == []
        await conn.run_sync(Role.metadata.create_all)
        await conn.commit()
