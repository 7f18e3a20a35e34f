"""
News & Events API Endpoints.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.exceptions import NotFoundError
from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response, paginated
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.content import NewsEvent
from welfare_admin.app.models.enums import NewsCategory, PublishStatus
from welfare_admin.app.schemas.content import NewsEventResponse
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.content import ContentService
from welfare_admin.app.services.storage import (
    Storage, get_storage, read_upload, delete_quietly, IMAGE_TYPES
)

router = APIRouter(prefix="/news-events", tags=["News & Events"])

NEWS_FOLDER = "news-events"
ORDERING = [NewsEvent.publish_date.desc(), NewsEvent.id.desc()]


def _filters(category, status_filter, featured):
    conditions = []
    if category:
        conditions.append(NewsEvent.category == category)
    if status_filter:
        conditions.append(NewsEvent.status == status_filter)
    if featured is not None:
        conditions.append(NewsEvent.featured == featured)
    return conditions


@router.get("")
async def list_news_events(
    category: Optional[NewsCategory] = Query(None),
    status_filter: Optional[PublishStatus] = Query(None, alias="status"),
    featured: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    conditions = _filters(category, status_filter, featured)
    items, total = await ContentService.list_page(db, NewsEvent, conditions, ORDERING, page, limit)
    return success_response(
        paginated([NewsEventResponse.model_validate(n) for n in items], page, limit, total),
        "News & events retrieved successfully"
    )


@router.get("/public")
async def public_news_events(
    category: Optional[NewsCategory] = Query(None),
    featured: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    """Published items only. No authentication."""
    conditions = _filters(category, PublishStatus.PUBLISHED, featured)
    items, total = await ContentService.list_page(db, NewsEvent, conditions, ORDERING, page, limit)
    return success_response(
        paginated([NewsEventResponse.model_validate(n) for n in items], page, limit, total),
        "News & events retrieved successfully"
    )


@router.get("/{item_id}")
async def get_news_event(
    item_id: int,
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    """Fetch one item; each read counts as a view."""
    views = await ContentService.increment(db, NewsEvent, item_id, "views")
    if views is None:
        raise NotFoundError("News/event", item_id)
    item = await db.get(NewsEvent, item_id)
    return success_response(NewsEventResponse.model_validate(item), "News/event retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_news_event(
    request: Request,
    title: str = Form(..., min_length=1, max_length=300),
    content: str = Form(..., min_length=1),
    category: NewsCategory = Form(NewsCategory.NEWS),
    status_value: PublishStatus = Form(PublishStatus.DRAFT, alias="status"),
    featured: bool = Form(False),
    publish_date: Optional[datetime] = Form(None),
    event_date: Optional[datetime] = Form(None),
    location: Optional[str] = Form(None, max_length=300),
    image: Optional[UploadFile] = File(None),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    stored = None
    if image is not None and image.filename:
        data = await read_upload(image, IMAGE_TYPES, "News image")
        stored = await storage.upload(NEWS_FOLDER, image.filename, data, image.content_type)

    item = NewsEvent(
        title=title,
        content=content,
        category=category,
        status=status_value,
        featured=featured,
        publish_date=publish_date or datetime.utcnow(),
        event_date=event_date,
        location=location,
        image_url=stored["file_url"] if stored else None,
        image_key=stored["key"] if stored else None,
        created_by=current_user["user_id"],
        updated_by=current_user["user_id"],
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)

    await log_activity(
        db, ActivityAction.CREATE, "news_event", f"Created {category.value} '{title}'",
        user_id=current_user["user_id"], resource_id=item.id,
        details={"status": status_value.value}, request=request,
    )
    return success_response(NewsEventResponse.model_validate(item), "News/event created successfully")


@router.put("/{item_id}")
async def update_news_event(
    item_id: int,
    request: Request,
    title: Optional[str] = Form(None, min_length=1, max_length=300),
    content: Optional[str] = Form(None, min_length=1),
    category: Optional[NewsCategory] = Form(None),
    status_value: Optional[PublishStatus] = Form(None, alias="status"),
    featured: Optional[bool] = Form(None),
    publish_date: Optional[datetime] = Form(None),
    event_date: Optional[datetime] = Form(None),
    location: Optional[str] = Form(None, max_length=300),
    image: Optional[UploadFile] = File(None),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    item = await ContentService.get_or_404(db, NewsEvent, item_id, "News/event")

    changes = {
        "title": title, "content": content, "category": category, "status": status_value,
        "featured": featured, "publish_date": publish_date, "event_date": event_date,
        "location": location,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    old_key = None
    if image is not None and image.filename:
        data = await read_upload(image, IMAGE_TYPES, "News image")
        stored = await storage.upload(NEWS_FOLDER, image.filename, data, image.content_type)
        old_key = item.image_key
        changes["image_url"] = stored["file_url"]
        changes["image_key"] = stored["key"]

    for field, value in changes.items():
        setattr(item, field, value)
    item.updated_by = current_user["user_id"]
    await db.commit()
    await db.refresh(item)
    await delete_quietly(storage, old_key)

    await log_activity(
        db, ActivityAction.UPDATE, "news_event", f"Updated '{item.title}'",
        user_id=current_user["user_id"], resource_id=item.id,
        details={"fields": sorted(changes)}, request=request,
    )
    return success_response(NewsEventResponse.model_validate(item), "News/event updated successfully")


@router.delete("/{item_id}")
async def delete_news_event(
    item_id: int,
    request: Request,
    current_user: dict = Depends(require_permission("website.delete")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    item = await ContentService.get_or_404(db, NewsEvent, item_id, "News/event")
    title, key = item.title, item.image_key
    await db.delete(item)
    await db.commit()
    await delete_quietly(storage, key)

    await log_activity(
        db, ActivityAction.DELETE, "news_event", f"Deleted '{title}'",
        user_id=current_user["user_id"], resource_id=item_id, severity="medium", request=request,
    )
    return success_response({"id": item_id}, "News/event deleted successfully")
