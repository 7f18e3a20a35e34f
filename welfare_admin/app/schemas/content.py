"""
Content schemas: banners, brochures, news/events and website settings.

Create/update of file-backed content arrives as multipart forms, so only the
responses and the JSON-bodied website settings are modelled here.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any, List
from welfare_admin.app.models.enums import ContentStatus, BrochureCategory, NewsCategory, PublishStatus


class BannerResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    link: Optional[str]
    order: int
    status: ContentStatus
    image_url: str
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BrochureResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: BrochureCategory
    status: ContentStatus
    file_url: str
    file_name: str
    file_size: int
    downloads: int
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NewsEventResponse(BaseModel):
    id: int
    title: str
    content: str
    category: NewsCategory
    status: PublishStatus
    featured: bool
    publish_date: datetime
    event_date: Optional[datetime]
    location: Optional[str]
    image_url: Optional[str]
    views: int
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CounterCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=150)
    count: str = Field(..., min_length=1, max_length=50, description="Display value, e.g. '10,000+'")
    icon: Optional[str] = Field(None, max_length=100)


class CounterUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    count: Optional[str] = Field(None, min_length=1, max_length=50)
    icon: Optional[str] = Field(None, max_length=100)
    order: Optional[int] = Field(None, ge=0)


class CounterResponse(BaseModel):
    id: int
    title: str
    count: str
    icon: Optional[str]
    order: int

    class Config:
        from_attributes = True


class WebsiteSettingsUpdate(BaseModel):
    about_us: Optional[str] = None
    contact_details: Optional[Dict[str, Any]] = None
    social_media: Optional[Dict[str, Any]] = None


class WebsiteSettingsResponse(BaseModel):
    id: int
    about_us: Optional[str]
    contact_details: Optional[Dict[str, Any]]
    social_media: Optional[Dict[str, Any]]
    updated_by: Optional[int]
    updated_at: datetime
    counts: List[CounterResponse] = []

    class Config:
        from_attributes = True
