"""
Banner API Endpoints.

Homepage banners. Admin writes arrive as multipart forms with the image.
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response, paginated
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.content import Banner
from welfare_admin.app.models.enums import ContentStatus
from welfare_admin.app.schemas.content import BannerResponse
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.content import ContentService
from welfare_admin.app.services.storage import (
    Storage, get_storage, read_upload, delete_quietly, IMAGE_TYPES
)

router = APIRouter(prefix="/banners", tags=["Banners"])

BANNER_FOLDER = "banners"
ORDERING = [Banner.order, Banner.created_at]


@router.get("")
async def list_banners(
    status_filter: Optional[ContentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    conditions = [Banner.status == status_filter] if status_filter else []
    items, total = await ContentService.list_page(db, Banner, conditions, ORDERING, page, limit)
    return success_response(
        paginated([BannerResponse.model_validate(b) for b in items], page, limit, total),
        "Banners retrieved successfully"
    )


@router.get("/public")
async def public_banners(db: AsyncSession = Depends(get_db)):
    """Active banners for the public site. No authentication."""
    items, _ = await ContentService.list_page(
        db, Banner, [Banner.status == ContentStatus.ACTIVE], ORDERING, 1, 100
    )
    return success_response([BannerResponse.model_validate(b) for b in items], "Banners retrieved successfully")


@router.get("/{banner_id}")
async def get_banner(
    banner_id: int,
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    banner = await ContentService.get_or_404(db, Banner, banner_id, "Banner")
    return success_response(BannerResponse.model_validate(banner), "Banner retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_banner(
    request: Request,
    title: str = Form(..., min_length=1, max_length=200),
    description: Optional[str] = Form(None),
    link: Optional[str] = Form(None, max_length=500),
    order: int = Form(0, ge=0),
    status_value: ContentStatus = Form(ContentStatus.ACTIVE, alias="status"),
    image: UploadFile = File(...),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    content = await read_upload(image, IMAGE_TYPES, "Banner image")
    stored = await storage.upload(BANNER_FOLDER, image.filename, content, image.content_type)

    banner = Banner(
        title=title,
        description=description,
        link=link,
        order=order,
        status=status_value,
        image_url=stored["file_url"],
        image_key=stored["key"],
        created_by=current_user["user_id"],
        updated_by=current_user["user_id"],
    )
    db.add(banner)
    await db.commit()
    await db.refresh(banner)

    await log_activity(
        db, ActivityAction.CREATE, "banner", f"Created banner '{title}'",
        user_id=current_user["user_id"], resource_id=banner.id, request=request,
    )
    return success_response(BannerResponse.model_validate(banner), "Banner created successfully")


@router.put("/{banner_id}")
async def update_banner(
    banner_id: int,
    request: Request,
    title: Optional[str] = Form(None, min_length=1, max_length=200),
    description: Optional[str] = Form(None),
    link: Optional[str] = Form(None, max_length=500),
    order: Optional[int] = Form(None, ge=0),
    status_value: Optional[ContentStatus] = Form(None, alias="status"),
    image: Optional[UploadFile] = File(None),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """Update fields; a new image replaces the old one, which is removed after the row saves."""
    banner = await ContentService.get_or_404(db, Banner, banner_id, "Banner")

    changes = {
        "title": title, "description": description, "link": link,
        "order": order, "status": status_value,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    old_key = None
    if image is not None and image.filename:
        content = await read_upload(image, IMAGE_TYPES, "Banner image")
        stored = await storage.upload(BANNER_FOLDER, image.filename, content, image.content_type)
        old_key = banner.image_key
        changes["image_url"] = stored["file_url"]
        changes["image_key"] = stored["key"]

    for field, value in changes.items():
        setattr(banner, field, value)
    banner.updated_by = current_user["user_id"]
    await db.commit()
    await db.refresh(banner)
    await delete_quietly(storage, old_key)

    await log_activity(
        db, ActivityAction.UPDATE, "banner", f"Updated banner '{banner.title}'",
        user_id=current_user["user_id"], resource_id=banner.id,
        details={"fields": sorted(changes)}, request=request,
    )
    return success_response(BannerResponse.model_validate(banner), "Banner updated successfully")


@router.delete("/{banner_id}")
async def delete_banner(
    banner_id: int,
    request: Request,
    current_user: dict = Depends(require_permission("website.delete")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    banner = await ContentService.get_or_404(db, Banner, banner_id, "Banner")
    title, key = banner.title, banner.image_key
    await db.delete(banner)
    await db.commit()
    await delete_quietly(storage, key)

    await log_activity(
        db, ActivityAction.DELETE, "banner", f"Deleted banner '{title}'",
        user_id=current_user["user_id"], resource_id=banner_id, severity="medium", request=request,
    )
    return success_response({"id": banner_id}, "Banner deleted successfully")
