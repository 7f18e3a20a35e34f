"""
Program Database Models.

Projects, schemes, beneficiaries, applications and payments. Owned by the
program-management side; this service reads them for the dashboard. Every
region-bound table carries `district` and `area` for scope filtering.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Numeric, ForeignKey
from welfare_admin.app.db.session import Base
from welfare_admin.app.models.enums import ApplicationStatus, PaymentStatus, enum_values


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    district = Column(String(100), index=True, nullable=True)
    area = Column(String(100), index=True, nullable=True)
    status = Column(String(30), default="active", nullable=False)
    budget_total = Column(Numeric(14, 2), default=0, nullable=False)
    budget_spent = Column(Numeric(14, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Scheme(Base):
    __tablename__ = "schemes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    budget_total = Column(Numeric(14, 2), default=0, nullable=False)
    budget_spent = Column(Numeric(14, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Beneficiary(Base):
    __tablename__ = "beneficiaries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(15), nullable=True)
    district = Column(String(100), index=True, nullable=True)
    area = Column(String(100), index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    application_number = Column(String(50), unique=True, nullable=False)
    beneficiary_id = Column(Integer, ForeignKey("beneficiaries.id", ondelete="SET NULL"), nullable=True)
    beneficiary_name = Column(String(200), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    scheme_id = Column(Integer, ForeignKey("schemes.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(ApplicationStatus, values_callable=enum_values), default=ApplicationStatus.PENDING, nullable=False, index=True)
    district = Column(String(100), index=True, nullable=True)
    area = Column(String(100), index=True, nullable=True)
    requested_amount = Column(Numeric(14, 2), default=0, nullable=False)
    approved_amount = Column(Numeric(14, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True)
    beneficiary_name = Column(String(200), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    status = Column(Enum(PaymentStatus, values_callable=enum_values), default=PaymentStatus.PENDING, nullable=False, index=True)
    district = Column(String(100), index=True, nullable=True)
    area = Column(String(100), index=True, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
