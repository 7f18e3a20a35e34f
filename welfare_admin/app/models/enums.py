"""
Enumerations shared by models, schemas and services.
"""

import enum


class UserRole(str, enum.Enum):
    """
    Administrative role carried on the user record and in the JWT.

    Administrative scope follows the role: district_admin sees its district,
    area_admin and unit_admin see their area, super/state admins see everything.
    """
    SUPER_ADMIN = "super_admin"
    STATE_ADMIN = "state_admin"
    DISTRICT_ADMIN = "district_admin"
    AREA_ADMIN = "area_admin"
    UNIT_ADMIN = "unit_admin"
    PROJECT_COORDINATOR = "project_coordinator"
    SCHEME_COORDINATOR = "scheme_coordinator"
    BENEFICIARY = "beneficiary"


UNRESTRICTED_ROLES = (UserRole.SUPER_ADMIN, UserRole.STATE_ADMIN)


class ActivityStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    WARNING = "warning"
    INFO = "info"


class ActivitySeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RoleType(str, enum.Enum):
    SYSTEM = "system"
    CUSTOM = "custom"


class RoleCategory(str, enum.Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    STAFF = "staff"
    BENEFICIARY = "beneficiary"
    EXTERNAL = "external"


class PermissionScope(str, enum.Enum):
    GLOBAL = "global"
    REGIONAL = "regional"
    PROJECT = "project"
    SCHEME = "scheme"
    OWN = "own"
    SUBORDINATE = "subordinate"


class SecurityLevel(str, enum.Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"
    TOP_SECRET = "top_secret"


class DependencyKind(str, enum.Enum):
    REQUIRES = "requires"
    CONFLICTS = "conflicts"
    IMPLIES = "implies"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVOKED = "revoked"


class OverrideKind(str, enum.Enum):
    GRANT = "grant"
    RESTRICT = "restrict"


class OtpPurpose(str, enum.Enum):
    LOGIN = "login"
    REGISTRATION = "registration"
    PHONE_VERIFICATION = "phone_verification"


class ContentStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BrochureCategory(str, enum.Enum):
    GENERAL = "general"
    SCHEME = "scheme"
    PROJECT = "project"
    REPORT = "report"
    GUIDELINE = "guideline"
    OTHER = "other"


class NewsCategory(str, enum.Enum):
    NEWS = "news"
    EVENT = "event"
    ANNOUNCEMENT = "announcement"
    SUCCESS_STORY = "success_story"


class PublishStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def enum_values(enum_cls):
    """values_callable for SQLAlchemy Enum columns so the DB stores `.value`."""
    return [member.value for member in enum_cls]
