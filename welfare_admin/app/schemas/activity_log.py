"""
Activity Log Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any


class ActivityLogFilters(BaseModel):
    """Filter predicates for log queries. List fields match any of the values."""
    user_id: Optional[List[int]] = None
    action: Optional[List[str]] = None
    resource: Optional[List[str]] = None
    status: Optional[List[str]] = None
    severity: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    ip_address: Optional[str] = None
    search: Optional[str] = None


class ActivityLogResponse(BaseModel):
    id: int
    timestamp: datetime
    user_id: Optional[int]
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    action: str
    resource: str
    resource_id: Optional[str]
    description: str
    details: Optional[Dict[str, Any]]
    status: str
    severity: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    request_id: Optional[str] = None

    class Config:
        from_attributes = True


class CleanLogsRequest(BaseModel):
    days_to_keep: int = Field(365, ge=1, description="Entries older than this many days are removed")
