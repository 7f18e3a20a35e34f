"""
User and device database models.

Users authenticate by phone + OTP (see services.otp).
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, JSON, ForeignKey, UniqueConstraint
from welfare_admin.app.db.session import Base
from welfare_admin.app.models.enums import UserRole, enum_values


class User(Base):
    """
    User model for authentication and administrative scoping.

    `district` / `area` define what a scoped admin may see on the dashboard.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    phone = Column(String(15), unique=True, index=True, nullable=False)
    name = Column(String(150), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)

    role = Column(Enum(UserRole, values_callable=enum_values), default=UserRole.BENEFICIARY, nullable=False)
    district = Column(String(100), index=True, nullable=True)
    area = Column(String(100), index=True, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime, nullable=True)

    # Set after too many failed OTP attempts; codes themselves live in Redis
    lock_until = Column(DateTime, nullable=True)

    profile = Column(JSON, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_locked(self) -> bool:
        return self.lock_until is not None and self.lock_until > datetime.utcnow()

    def __repr__(self):
        return f"<User(id={self.id}, phone='{self.phone}', role='{self.role.value if self.role else None}')>"


class UserDevice(Base):
    """Registered client device (push token holder)."""
    __tablename__ = "user_devices"
    __table_args__ = (UniqueConstraint("user_id", "device_id", name="uq_user_device"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    platform = Column(String(20), nullable=False)
    fcm_token = Column(String(512), nullable=True)
    last_used_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
