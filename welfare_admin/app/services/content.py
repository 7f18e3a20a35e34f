"""
Content Service.

Shared listing/lookup for the public-site content tables and the website
settings singleton with its counters.
"""

from typing import Any, List, Tuple, Type, Optional, Dict

from sqlalchemy import select, func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from welfare_admin.app.core.exceptions import NotFoundError
from welfare_admin.app.models.content import WebsiteSettings, WebsiteCounter, WEBSITE_SETTINGS_ID

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class ContentService:

    @staticmethod
    async def list_page(
        db: AsyncSession,
        model: Type[Any],
        conditions: list,
        order_by: list,
        page: int,
        limit: int
    ) -> Tuple[List[Any], int]:
        total = (await db.execute(select(func.count(model.id)).where(*conditions))).scalar() or 0
        result = await db.execute(
            select(model).where(*conditions).order_by(*order_by).offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def get_or_404(db: AsyncSession, model: Type[Any], item_id: int, label: str):
        item = await db.get(model, item_id)
        if item is None:
            raise NotFoundError(label, item_id)
        return item

    @staticmethod
    async def increment(db: AsyncSession, model: Type[Any], item_id: int, column: str) -> Optional[int]:
        """Atomic `column = column + 1`; returns the new value or None if the row is gone."""
        col = getattr(model, column)
        result = await db.execute(
            update(model).where(model.id == item_id).values({column: col + 1}).returning(col)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        await db.commit()
        return value

    # --- Website settings ---

    @staticmethod
    async def ensure_settings(db: AsyncSession) -> WebsiteSettings:
        """Return the settings row, creating it with an insert-if-absent upsert."""
        settings_row = await db.get(WebsiteSettings, WEBSITE_SETTINGS_ID)
        if settings_row is not None:
            return settings_row

        insert = _INSERTS[db.get_bind().dialect.name]
        await db.execute(
            insert(WebsiteSettings)
            .values(id=WEBSITE_SETTINGS_ID, contact_details={}, social_media={})
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await db.commit()
        return await db.get(WebsiteSettings, WEBSITE_SETTINGS_ID)

    @staticmethod
    async def update_settings(db: AsyncSession, changes: Dict[str, Any], user_id: int) -> WebsiteSettings:
        settings_row = await ContentService.ensure_settings(db)
        for field, value in changes.items():
            setattr(settings_row, field, value)
        settings_row.updated_by = user_id
        await db.commit()
        await db.refresh(settings_row)
        return settings_row

    @staticmethod
    async def list_counters(db: AsyncSession) -> List[WebsiteCounter]:
        result = await db.execute(
            select(WebsiteCounter)
            .where(WebsiteCounter.settings_id == WEBSITE_SETTINGS_ID)
            .order_by(WebsiteCounter.order, WebsiteCounter.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def add_counter(db: AsyncSession, title: str, count: str, icon: Optional[str] = None) -> WebsiteCounter:
        """New counters go to the end: order = current max + 1."""
        await ContentService.ensure_settings(db)
        current_max = (await db.execute(
            select(func.max(WebsiteCounter.order)).where(WebsiteCounter.settings_id == WEBSITE_SETTINGS_ID)
        )).scalar()
        counter = WebsiteCounter(
            settings_id=WEBSITE_SETTINGS_ID,
            title=title,
            count=count,
            icon=icon,
            order=0 if current_max is None else current_max + 1,
        )
        db.add(counter)
        await db.commit()
        await db.refresh(counter)
        return counter

    @staticmethod
    async def update_counter(db: AsyncSession, counter_id: int, changes: Dict[str, Any]) -> WebsiteCounter:
        counter = await ContentService.get_or_404(db, WebsiteCounter, counter_id, "Counter")
        for field, value in changes.items():
            setattr(counter, field, value)
        await db.commit()
        await db.refresh(counter)
        return counter

    @staticmethod
    async def delete_counter(db: AsyncSession, counter_id: int) -> WebsiteCounter:
        counter = await ContentService.get_or_404(db, WebsiteCounter, counter_id, "Counter")
        await db.delete(counter)
        await db.commit()
        return counter
