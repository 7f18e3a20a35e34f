"""
Dashboard Schemas.

Read-only aggregate views over programs, applications and payments.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class ApplicationStatusCounts(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    review: int = 0


class BudgetSummary(BaseModel):
    total: float = 0.0
    spent: float = 0.0
    available: float = 0.0
    utilization: float = 0.0


class RecentCounts(BaseModel):
    applications: int = 0
    payments: int = 0
    beneficiaries: int = 0


class DashboardOverview(BaseModel):
    total_beneficiaries: int
    total_applications: int
    total_projects: int
    active_schemes: int
    application_stats: ApplicationStatusCounts
    budget: BudgetSummary
    recent_activity: RecentCounts


class RecentApplication(BaseModel):
    id: int
    application_number: str
    applicant: str
    status: str
    district: Optional[str]
    area: Optional[str]
    amount: float
    date: datetime


class RecentPayment(BaseModel):
    id: int
    beneficiary: str
    amount: float
    status: str
    district: Optional[str]
    area: Optional[str]
    paid_at: Optional[datetime]
    date: datetime


class ApplicationTrendPoint(BaseModel):
    month: str  # YYYY-MM
    applications: int
    approved: int


class PaymentTrendPoint(BaseModel):
    month: str
    amount: float
    count: int


class MonthlyTrends(BaseModel):
    applications: List[ApplicationTrendPoint]
    payments: List[PaymentTrendPoint]


class ProjectPerformance(BaseModel):
    id: int
    name: str
    district: Optional[str]
    budget: float
    spent: float
    utilization: float
