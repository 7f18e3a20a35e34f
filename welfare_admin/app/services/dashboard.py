"""
Dashboard Service.

Aggregate, read-only views for the admin dashboard. Applications,
beneficiaries and payments are narrowed to the caller's administrative
region; projects and schemes are program-wide.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy import select, func, false, desc
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.models.enums import UserRole, UNRESTRICTED_ROLES, ApplicationStatus, PaymentStatus
from welfare_admin.app.models.program import Project, Scheme, Beneficiary, Application, Payment
from welfare_admin.app.schemas.dashboard import (
    DashboardOverview, ApplicationStatusCounts, BudgetSummary, RecentCounts,
    RecentApplication, RecentPayment, MonthlyTrends, ApplicationTrendPoint,
    PaymentTrendPoint, ProjectPerformance
)

RECENT_WINDOW_DAYS = 30


class Scope:
    """The caller's administrative region."""

    def __init__(self, role: str, district: Optional[str] = None, area: Optional[str] = None):
        self.role = role
        self.district = district
        self.area = area

    def condition(self, model):
        """
        Filter for a region-bound model, or None when unrestricted.

        district_admin matches its district, area_admin and unit_admin match
        their area. Any other role, or a scoped role without its region set,
        matches nothing.
        """
        if self.role in {r.value for r in UNRESTRICTED_ROLES}:
            return None
        if self.role == UserRole.DISTRICT_ADMIN.value and self.district:
            return model.district == self.district
        if self.role in (UserRole.AREA_ADMIN.value, UserRole.UNIT_ADMIN.value) and self.area:
            return model.area == self.area
        return false()

    def apply(self, query, model):
        cond = self.condition(model)
        return query if cond is None else query.where(cond)


def utilization(spent, total) -> float:
    total = float(total or 0)
    if total <= 0:
        return 0.0
    return round(float(spent or 0) / total * 100, 2)


def month_keys(months: int, now: datetime) -> List[str]:
    """`months` consecutive YYYY-MM keys ending with the current month."""
    year, month = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


class DashboardService:

    @staticmethod
    async def _count(db: AsyncSession, scope: Optional[Scope], model, *conditions) -> int:
        query = select(func.count(model.id)).where(*conditions)
        if scope is not None:
            query = scope.apply(query, model)
        return (await db.execute(query)).scalar() or 0

    @staticmethod
    async def get_overview(db: AsyncSession, scope: Scope, now: datetime = None) -> DashboardOverview:
        now = now or datetime.utcnow()
        since = now - timedelta(days=RECENT_WINDOW_DAYS)
        count = DashboardService._count

        status_query = scope.apply(
            select(Application.status, func.count(Application.id)).group_by(Application.status),
            Application
        )
        by_status = {
            (s.value if hasattr(s, "value") else s): n
            for s, n in (await db.execute(status_query)).all()
        }

        budget_row = (await db.execute(
            select(
                func.coalesce(func.sum(Project.budget_total), 0),
                func.coalesce(func.sum(Project.budget_spent), 0),
            )
        )).one()
        total, spent = float(budget_row[0]), float(budget_row[1])

        return DashboardOverview(
            total_beneficiaries=await count(db, scope, Beneficiary),
            total_applications=await count(db, scope, Application),
            total_projects=await count(db, None, Project),
            active_schemes=await count(db, None, Scheme, Scheme.is_active == True),  # noqa: E712
            application_stats=ApplicationStatusCounts(
                pending=by_status.get(ApplicationStatus.PENDING.value, 0),
                approved=by_status.get(ApplicationStatus.APPROVED.value, 0),
                rejected=by_status.get(ApplicationStatus.REJECTED.value, 0),
                review=by_status.get(ApplicationStatus.UNDER_REVIEW.value, 0),
            ),
            budget=BudgetSummary(
                total=total,
                spent=spent,
                available=total - spent,
                utilization=utilization(spent, total),
            ),
            recent_activity=RecentCounts(
                applications=await count(db, scope, Application, Application.created_at >= since),
                payments=await count(db, scope, Payment, Payment.created_at >= since),
                beneficiaries=await count(db, scope, Beneficiary, Beneficiary.created_at >= since),
            ),
        )

    @staticmethod
    async def get_recent_applications(db: AsyncSession, scope: Scope, limit: int = 10) -> List[RecentApplication]:
        query = scope.apply(
            select(Application).order_by(desc(Application.created_at), desc(Application.id)).limit(limit),
            Application
        )
        rows = (await db.execute(query)).scalars().all()
        return [
            RecentApplication(
                id=app.id,
                application_number=app.application_number,
                applicant=app.beneficiary_name or "Unknown",
                status=app.status.value,
                district=app.district,
                area=app.area,
                amount=float(app.requested_amount or 0),
                date=app.created_at,
            )
            for app in rows
        ]

    @staticmethod
    async def get_recent_payments(db: AsyncSession, scope: Scope, limit: int = 10) -> List[RecentPayment]:
        query = scope.apply(
            select(Payment).order_by(desc(Payment.created_at), desc(Payment.id)).limit(limit),
            Payment
        )
        rows = (await db.execute(query)).scalars().all()
        return [
            RecentPayment(
                id=p.id,
                beneficiary=p.beneficiary_name or "Unknown",
                amount=float(p.amount or 0),
                status=p.status.value,
                district=p.district,
                area=p.area,
                paid_at=p.paid_at,
                date=p.created_at,
            )
            for p in rows
        ]

    @staticmethod
    async def get_monthly_trends(db: AsyncSession, scope: Scope, months: int = 6, now: datetime = None) -> MonthlyTrends:
        """
        Applications per month (with approvals) and completed payments per month.

        Every month in the window is present, zero-filled. Rows are bucketed
        in Python so the same code runs on PostgreSQL and SQLite.
        """
        now = now or datetime.utcnow()
        keys = month_keys(months, now)
        start = datetime.strptime(keys[0], "%Y-%m")

        apps = OrderedDict((k, {"applications": 0, "approved": 0}) for k in keys)
        app_query = scope.apply(
            select(Application.created_at, Application.status).where(Application.created_at >= start),
            Application
        )
        for created_at, app_status in (await db.execute(app_query)).all():
            bucket = apps.get(created_at.strftime("%Y-%m"))
            if bucket is None:
                continue
            bucket["applications"] += 1
            if app_status == ApplicationStatus.APPROVED:
                bucket["approved"] += 1

        pays = OrderedDict((k, {"amount": 0.0, "count": 0}) for k in keys)
        pay_query = scope.apply(
            select(Payment.created_at, Payment.amount).where(
                Payment.created_at >= start,
                Payment.status == PaymentStatus.COMPLETED
            ),
            Payment
        )
        for created_at, amount in (await db.execute(pay_query)).all():
            bucket = pays.get(created_at.strftime("%Y-%m"))
            if bucket is None:
                continue
            bucket["amount"] += float(amount or 0)
            bucket["count"] += 1

        return MonthlyTrends(
            applications=[ApplicationTrendPoint(month=k, **v) for k, v in apps.items()],
            payments=[PaymentTrendPoint(month=k, **v) for k, v in pays.items()],
        )

    @staticmethod
    async def get_project_performance(db: AsyncSession, limit: int = 10) -> List[ProjectPerformance]:
        """Active projects by budget size, with spend utilization."""
        result = await db.execute(
            select(Project)
            .where(Project.status == "active")
            .order_by(desc(Project.budget_total), Project.id)
            .limit(limit)
        )
        return [
            ProjectPerformance(
                id=p.id,
                name=p.name,
                district=p.district,
                budget=float(p.budget_total or 0),
                spent=float(p.budget_spent or 0),
                utilization=utilization(p.budget_spent, p.budget_total),
            )
            for p in result.scalars().all()
        ]
