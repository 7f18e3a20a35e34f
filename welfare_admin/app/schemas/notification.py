"""
Notification Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any, List
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    payload: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True


class BroadcastRequest(BaseModel):
    """No role and no district reaches every active user."""
    role: Optional[UserRole] = None
    roles: List[UserRole] = Field(default_factory=list)
    districts: List[str] = Field(default_factory=list)
    type: NotificationType = NotificationType.INFO
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    payload: Optional[Dict[str, Any]] = None

    def target_roles(self) -> List[UserRole]:
        return list(dict.fromkeys(([self.role] if self.role else []) + self.roles))
