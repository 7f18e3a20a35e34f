"""
Content Database Models.

Banners, brochures, news/events and the website settings singleton. File-backed
rows keep the object-storage key so the object can be removed with the row.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Enum, JSON, ForeignKey
from welfare_admin.app.db.session import Base
from welfare_admin.app.models.enums import (
    ContentStatus, BrochureCategory, NewsCategory, PublishStatus, enum_values
)

WEBSITE_SETTINGS_ID = 1


class Banner(Base):
    __tablename__ = "banners"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    link = Column(String(500), nullable=True)
    order = Column(Integer, default=0, nullable=False)
    status = Column(Enum(ContentStatus, values_callable=enum_values), default=ContentStatus.ACTIVE, nullable=False, index=True)
    image_url = Column(String(1000), nullable=False)
    image_key = Column(String(500), nullable=False)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Brochure(Base):
    __tablename__ = "brochures"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Enum(BrochureCategory, values_callable=enum_values), default=BrochureCategory.GENERAL, nullable=False, index=True)
    status = Column(Enum(ContentStatus, values_callable=enum_values), default=ContentStatus.ACTIVE, nullable=False, index=True)
    file_url = Column(String(1000), nullable=False)
    file_key = Column(String(500), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, default=0, nullable=False)
    downloads = Column(Integer, default=0, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class NewsEvent(Base):
    __tablename__ = "news_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(300), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(Enum(NewsCategory, values_callable=enum_values), default=NewsCategory.NEWS, nullable=False, index=True)
    status = Column(Enum(PublishStatus, values_callable=enum_values), default=PublishStatus.DRAFT, nullable=False, index=True)
    featured = Column(Boolean, default=False, nullable=False)
    publish_date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    event_date = Column(DateTime, nullable=True)
    location = Column(String(300), nullable=True)
    image_url = Column(String(1000), nullable=True)
    image_key = Column(String(500), nullable=True)
    views = Column(Integer, default=0, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class WebsiteSettings(Base):
    """Singleton row, always id = WEBSITE_SETTINGS_ID."""
    __tablename__ = "website_settings"

    id = Column(Integer, primary_key=True, autoincrement=False)
    about_us = Column(Text, nullable=True)
    contact_details = Column(JSON, nullable=True)
    social_media = Column(JSON, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class WebsiteCounter(Base):
    """Headline counters shown on the public site ("Beneficiaries served", ...)."""
    __tablename__ = "website_counters"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    settings_id = Column(Integer, ForeignKey("website_settings.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(150), nullable=False)
    count = Column(String(50), nullable=False)
    icon = Column(String(100), nullable=True)
    order = Column(Integer, default=0, nullable=False)
