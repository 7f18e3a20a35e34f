"""
Brochure API Endpoints.

Downloadable documents (PDF or image) with a public download counter.
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.exceptions import NotFoundError
from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response, paginated
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.content import Brochure
from welfare_admin.app.models.enums import ContentStatus, BrochureCategory
from welfare_admin.app.schemas.content import BrochureResponse
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.content import ContentService
from welfare_admin.app.services.storage import (
    Storage, get_storage, read_upload, delete_quietly, DOCUMENT_TYPES
)

router = APIRouter(prefix="/brochures", tags=["Brochures"])

BROCHURE_FOLDER = "brochures"
ORDERING = [Brochure.created_at.desc(), Brochure.id.desc()]


@router.get("")
async def list_brochures(
    status_filter: Optional[ContentStatus] = Query(None, alias="status"),
    category: Optional[BrochureCategory] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    conditions = []
    if status_filter:
        conditions.append(Brochure.status == status_filter)
    if category:
        conditions.append(Brochure.category == category)
    items, total = await ContentService.list_page(db, Brochure, conditions, ORDERING, page, limit)
    return success_response(
        paginated([BrochureResponse.model_validate(b) for b in items], page, limit, total),
        "Brochures retrieved successfully"
    )


@router.get("/public")
async def public_brochures(
    category: Optional[BrochureCategory] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    conditions = [Brochure.status == ContentStatus.ACTIVE]
    if category:
        conditions.append(Brochure.category == category)
    items, _ = await ContentService.list_page(db, Brochure, conditions, ORDERING, 1, 100)
    return success_response([BrochureResponse.model_validate(b) for b in items], "Brochures retrieved successfully")


@router.get("/{brochure_id}")
async def get_brochure(
    brochure_id: int,
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    brochure = await ContentService.get_or_404(db, Brochure, brochure_id, "Brochure")
    return success_response(BrochureResponse.model_validate(brochure), "Brochure retrieved successfully")


@router.post("/{brochure_id}/download")
async def download_brochure(brochure_id: int, db: AsyncSession = Depends(get_db)):
    """Count a download and hand back the file URL. Public."""
    downloads = await ContentService.increment(db, Brochure, brochure_id, "downloads")
    if downloads is None:
        raise NotFoundError("Brochure", brochure_id)
    brochure = await db.get(Brochure, brochure_id)
    return success_response(
        {"file_url": brochure.file_url, "file_name": brochure.file_name, "downloads": downloads},
        "Download recorded"
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_brochure(
    request: Request,
    title: str = Form(..., min_length=1, max_length=200),
    description: Optional[str] = Form(None),
    category: BrochureCategory = Form(BrochureCategory.GENERAL),
    status_value: ContentStatus = Form(ContentStatus.ACTIVE, alias="status"),
    file: UploadFile = File(...),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    content = await read_upload(file, DOCUMENT_TYPES, "Brochure file")
    stored = await storage.upload(BROCHURE_FOLDER, file.filename, content, file.content_type)

    brochure = Brochure(
        title=title,
        description=description,
        category=category,
        status=status_value,
        file_url=stored["file_url"],
        file_key=stored["key"],
        file_name=file.filename,
        file_size=stored["size"],
        created_by=current_user["user_id"],
        updated_by=current_user["user_id"],
    )
    db.add(brochure)
    await db.commit()
    await db.refresh(brochure)

    await log_activity(
        db, ActivityAction.CREATE, "brochure", f"Created brochure '{title}'",
        user_id=current_user["user_id"], resource_id=brochure.id,
        details={"category": category.value, "file_size": stored["size"]}, request=request,
    )
    return success_response(BrochureResponse.model_validate(brochure), "Brochure created successfully")


@router.put("/{brochure_id}")
async def update_brochure(
    brochure_id: int,
    request: Request,
    title: Optional[str] = Form(None, min_length=1, max_length=200),
    description: Optional[str] = Form(None),
    category: Optional[BrochureCategory] = Form(None),
    status_value: Optional[ContentStatus] = Form(None, alias="status"),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    brochure = await ContentService.get_or_404(db, Brochure, brochure_id, "Brochure")

    changes = {"title": title, "description": description, "category": category, "status": status_value}
    changes = {k: v for k, v in changes.items() if v is not None}

    old_key = None
    if file is not None and file.filename:
        content = await read_upload(file, DOCUMENT_TYPES, "Brochure file")
        stored = await storage.upload(BROCHURE_FOLDER, file.filename, content, file.content_type)
        old_key = brochure.file_key
        changes.update(
            file_url=stored["file_url"], file_key=stored["key"],
            file_name=file.filename, file_size=stored["size"],
        )

    for field, value in changes.items():
        setattr(brochure, field, value)
    brochure.updated_by = current_user["user_id"]
    await db.commit()
    await db.refresh(brochure)
    await delete_quietly(storage, old_key)

    await log_activity(
        db, ActivityAction.UPDATE, "brochure", f"Updated brochure '{brochure.title}'",
        user_id=current_user["user_id"], resource_id=brochure.id,
        details={"fields": sorted(changes)}, request=request,
    )
    return success_response(BrochureResponse.model_validate(brochure), "Brochure updated successfully")


@router.delete("/{brochure_id}")
async def delete_brochure(
    brochure_id: int,
    request: Request,
    current_user: dict = Depends(require_permission("website.delete")),
    db: AsyncSession = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    brochure = await ContentService.get_or_404(db, Brochure, brochure_id, "Brochure")
    title, key = brochure.title, brochure.file_key
    await db.delete(brochure)
    await db.commit()
    await delete_quietly(storage, key)

    await log_activity(
        db, ActivityAction.DELETE, "brochure", f"Deleted brochure '{title}'",
        user_id=current_user["user_id"], resource_id=brochure_id, severity="medium", request=request,
    )
    return success_response({"id": brochure_id}, "Brochure deleted successfully")
