"""
Activity Log Database Model.

Append-only record of user actions. Rows change only through the retention sweep.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, ForeignKey, Index
from welfare_admin.app.db.session import Base


class ActivityLog(Base):
    """
    Activity log entry.

    `status` is one of success/failed/warning/info and `severity` one of
    low/medium/high/critical (see models.enums).
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_user_timestamp", "user_id", "timestamp"),
        Index("ix_activity_logs_resource_action", "resource", "action"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Who (None for system actions)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)

    # What
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(100), nullable=True)
    description = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    # Outcome
    status = Column(String(20), default="success", nullable=False, index=True)
    severity = Column(String(20), default="low", nullable=False, index=True)

    # Request context
    ip_address = Column(String(64), nullable=True, index=True)
    user_agent = Column(String(512), nullable=True)
    request_id = Column(String(64), nullable=True, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    def __repr__(self):
        return f"<ActivityLog(id={self.id}, action='{self.action}', resource='{self.resource}', user={self.user_id})>"
