"""
Website Settings API Endpoints.

The about/contact/social singleton and its headline counters.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.guards import require_permission
from welfare_admin.app.core.response import success_response
from welfare_admin.app.db.session import get_db
from welfare_admin.app.schemas.content import (
    WebsiteSettingsUpdate, WebsiteSettingsResponse, CounterCreate, CounterUpdate, CounterResponse
)
from welfare_admin.app.services.activity_log import log_activity, ActivityAction
from welfare_admin.app.services.content import ContentService

router = APIRouter(prefix="/website", tags=["Website"])


async def _settings_payload(db: AsyncSession) -> WebsiteSettingsResponse:
    settings_row = await ContentService.ensure_settings(db)
    data = WebsiteSettingsResponse.model_validate(settings_row)
    data.counts = [CounterResponse.model_validate(c) for c in await ContentService.list_counters(db)]
    return data


@router.get("/settings")
async def get_settings(
    current_user: dict = Depends(require_permission("website.read")),
    db: AsyncSession = Depends(get_db)
):
    return success_response(await _settings_payload(db), "Website settings retrieved successfully")


@router.get("/public-settings")
async def get_public_settings(db: AsyncSession = Depends(get_db)):
    data = await _settings_payload(db)
    return success_response(
        data.model_dump(include={"about_us", "contact_details", "social_media", "counts"}),
        "Website settings retrieved successfully"
    )


@router.put("/settings")
async def update_settings(
    payload: WebsiteSettingsUpdate,
    request: Request,
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db)
):
    changes = payload.model_dump(exclude_unset=True)
    await ContentService.update_settings(db, changes, current_user["user_id"])
    await log_activity(
        db, ActivityAction.UPDATE, "website_settings", "Updated website settings",
        user_id=current_user["user_id"], resource_id=1, details={"fields": sorted(changes)}, request=request,
    )
    return success_response(await _settings_payload(db), "Website settings updated successfully")


@router.post("/settings/counts", status_code=status.HTTP_201_CREATED)
async def add_counter(
    payload: CounterCreate,
    request: Request,
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db)
):
    counter = await ContentService.add_counter(db, payload.title, payload.count, payload.icon)
    await log_activity(
        db, ActivityAction.CREATE, "website_counter", f"Added counter '{counter.title}'",
        user_id=current_user["user_id"], resource_id=counter.id, request=request,
    )
    return success_response(CounterResponse.model_validate(counter), "Counter added successfully")


@router.put("/settings/counts/{counter_id}")
async def update_counter(
    counter_id: int,
    payload: CounterUpdate,
    request: Request,
    current_user: dict = Depends(require_permission("website.write")),
    db: AsyncSession = Depends(get_db)
):
    changes = payload.model_dump(exclude_unset=True)
    counter = await ContentService.update_counter(db, counter_id, changes)
    await log_activity(
        db, ActivityAction.UPDATE, "website_counter", f"Updated counter '{counter.title}'",
        user_id=current_user["user_id"], resource_id=counter.id,
        details={"fields": sorted(changes)}, request=request,
    )
    return success_response(CounterResponse.model_validate(counter), "Counter updated successfully")


@router.delete("/settings/counts/{counter_id}")
async def delete_counter(
    counter_id: int,
    request: Request,
    current_user: dict = Depends(require_permission("website.delete")),
    db: AsyncSession = Depends(get_db)
):
    counter = await ContentService.delete_counter(db, counter_id)
    await log_activity(
        db, ActivityAction.DELETE, "website_counter", f"Deleted counter '{counter.title}'",
        user_id=current_user["user_id"], resource_id=counter_id, request=request,
    )
    return success_response({"id": counter_id}, "Counter deleted successfully")
