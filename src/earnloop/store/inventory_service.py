"""Inventory reads with lazy expiry."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.day_utils import utc_now
from earnloop.db.models import InventoryEntry, Streak
from earnloop.store.schemas import InventoryItemResponse, InventoryResponse


async def has_active_boost(db: AsyncSession, user_id: int, now: datetime) -> bool:
    """True while the user holds a boost whose expiry is still in the future."""
    result = await db.execute(
        select(InventoryEntry.id)
        .where(
            InventoryEntry.user_id == user_id,
            InventoryEntry.item_type == "boost",
            InventoryEntry.is_active.is_(True),
            or_(InventoryEntry.expires_at.is_(None), InventoryEntry.expires_at > now),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_inventory(db: AsyncSession, user_id: int, now: datetime | None = None) -> InventoryResponse:
    """List owned items; boosts and subscriptions past expires_at are reported inactive."""
    now = now or utc_now()
    result = await db.execute(
        select(InventoryEntry)
        .where(InventoryEntry.user_id == user_id)
        .order_by(InventoryEntry.created_at.desc(), InventoryEntry.id.desc())
    )
    entries = result.scalars().unique().all()

    items = []
    for entry in entries:
        active = entry.is_active_at(now)
        expired = entry.is_active and not active
        items.append(InventoryItemResponse(
            id=entry.id,
            item_id=entry.item_id,
            name=entry.item.name,
            item_type=entry.item_type,
            icon=entry.item.icon,
            quantity=entry.quantity,
            is_active=active,
            is_expired=expired,
            activated_at=entry.activated_at,
            expires_at=entry.expires_at,
        ))

    streak = await db.get(Streak, user_id)
    return InventoryResponse(
        items=items,
        streak_savers=streak.streak_saver_count if streak else 0,
        active_boosts=[i for i in items if i.item_type == "boost" and i.is_active],
    )
