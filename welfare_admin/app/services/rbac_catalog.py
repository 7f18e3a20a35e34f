"""
System permission and role catalog seeded by `initialize_system`.
"""

# (name, display_name, module, category, scope, security_level)
SYSTEM_PERMISSIONS = [
    ("activity_logs.read", "View activity logs", "activity_logs", "read", "global", "confidential"),
    ("activity_logs.export", "Export activity logs", "activity_logs", "export", "global", "confidential"),
    ("activity_logs.delete", "Purge activity logs", "activity_logs", "delete", "global", "restricted"),
    ("roles.read", "View roles", "roles", "read", "global", "internal"),
    ("roles.create", "Create roles", "roles", "create", "global", "restricted"),
    ("roles.update", "Update roles", "roles", "update", "global", "restricted"),
    ("roles.delete", "Delete roles", "roles", "delete", "global", "restricted"),
    ("roles.assign", "Assign roles to users", "roles", "assign", "global", "restricted"),
    ("permissions.read", "View permissions", "permissions", "read", "global", "internal"),
    ("users.read", "View users", "users", "read", "global", "confidential"),
    ("rbac.manage", "Administer the RBAC system", "rbac", "manage", "global", "top_secret"),
    ("dashboard.read", "View dashboard", "dashboard", "read", "regional", "internal"),
    ("applications.read", "View all applications", "applications", "read", "global", "confidential"),
    ("applications.read.regional", "View applications in own region", "applications", "read", "regional", "confidential"),
    ("website.read", "View website content", "website", "read", "global", "public"),
    ("website.write", "Edit website content", "website", "write", "global", "internal"),
    ("website.delete", "Delete website content", "website", "delete", "global", "internal"),
    ("notifications.broadcast", "Broadcast notifications", "notifications", "broadcast", "global", "internal"),
]

# (permission, kind, related)
SYSTEM_DEPENDENCIES = [
    ("activity_logs.export", "requires", "activity_logs.read"),
    ("activity_logs.delete", "requires", "activity_logs.read"),
    ("roles.create", "requires", "roles.read"),
    ("roles.update", "requires", "roles.read"),
    ("roles.delete", "requires", "roles.read"),
    ("roles.assign", "implies", "roles.read"),
    ("roles.assign", "implies", "users.read"),
    ("rbac.manage", "implies", "roles.read"),
    ("rbac.manage", "implies", "permissions.read"),
    ("website.write", "implies", "website.read"),
    ("website.delete", "requires", "website.write"),
    ("applications.read", "implies", "applications.read.regional"),
]

_ALL = [p[0] for p in SYSTEM_PERMISSIONS]

# Listed child-last so parents exist before children reference them.
# (name, display_name, level, category, inherits_from, permissions, is_modifiable)
SYSTEM_ROLES = [
    ("super_admin", "Super Administrator", 10, "admin", None, _ALL, False),
    ("state_admin", "State Administrator", 9, "admin", None, [p for p in _ALL if p != "rbac.manage"], True),
    ("unit_admin", "Unit Administrator", 5, "admin", None,
     ["dashboard.read", "applications.read.regional", "website.read"], True),
    ("area_admin", "Area Administrator", 6, "admin", "unit_admin", ["activity_logs.read"], True),
    ("district_admin", "District Administrator", 7, "admin", "area_admin",
     ["roles.read", "users.read", "website.write", "activity_logs.export"], True),
    ("project_coordinator", "Project Coordinator", 4, "coordinator", None,
     ["dashboard.read", "applications.read"], True),
    ("scheme_coordinator", "Scheme Coordinator", 4, "coordinator", None,
     ["dashboard.read", "applications.read"], True),
    ("beneficiary", "Beneficiary", 1, "beneficiary", None, [], True),
]
