"""Catalog listing and redemption history."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.day_utils import utc_now
from earnloop.db.models import Balance, InventoryEntry, Redemption, StoreItem
from earnloop.store.schemas import (
    CatalogItemResponse,
    CatalogResponse,
    RedemptionHistoryEntry,
    RedemptionHistoryResponse,
)


async def list_catalog(db: AsyncSession, user_id: int, now: datetime | None = None) -> CatalogResponse:
    """Active items with per-user affordability and ownership."""
    now = now or utc_now()
    items = (await db.execute(
        select(StoreItem)
        .where(StoreItem.is_active.is_(True))
        .order_by(StoreItem.sort_order, StoreItem.name)
    )).scalars().all()

    balance = await db.get(Balance, user_id, populate_existing=True)
    current = balance.current if balance else 0

    counts = dict((await db.execute(
        select(Redemption.item_id, func.count(Redemption.id))
        .where(Redemption.user_id == user_id)
        .group_by(Redemption.item_id)
    )).all())
    entries = {
        e.item_id: e
        for e in (await db.execute(
            select(InventoryEntry).where(InventoryEntry.user_id == user_id)
        )).scalars().unique()
    }
    boost_running = any(e.item_type == "boost" and e.is_active_at(now) for e in entries.values())

    result = []
    for item in items:
        redeemed = counts.get(item.id, 0)
        entry = entries.get(item.id)
        can_redeem = item.max_per_user is None or redeemed < item.max_per_user
        if item.item_type in ("cosmetic", "badge") and entry is not None:
            can_redeem = False
        elif item.item_type == "subscription" and entry is not None and entry.is_active_at(now):
            can_redeem = False
        elif item.item_type == "boost" and boost_running:
            can_redeem = False

        result.append(CatalogItemResponse(
            id=item.id,
            name=item.name,
            description=item.description,
            credits_cost=item.credits_cost,
            item_type=item.item_type,
            category=item.category,
            duration_days=item.duration_days,
            max_per_user=item.max_per_user,
            icon=item.icon,
            can_afford=current >= item.credits_cost,
            can_redeem=can_redeem,
            user_redemptions=redeemed,
            owned_quantity=entry.quantity if entry else 0,
        ))

    return CatalogResponse(items=result, balance=current)


async def get_redemption_history(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> RedemptionHistoryResponse:
    total = (await db.execute(
        select(func.count(Redemption.id)).where(Redemption.user_id == user_id)
    )).scalar_one()
    rows = (await db.execute(
        select(Redemption)
        .where(Redemption.user_id == user_id)
        .order_by(Redemption.created_at.desc(), Redemption.id.desc())
        .limit(limit)
        .offset(offset)
    )).scalars().unique().all()

    return RedemptionHistoryResponse(
        redemptions=[
            RedemptionHistoryEntry(
                id=r.id,
                item_id=r.item_id,
                credits_spent=r.credits_spent,
                status=r.status,
                delivery_email=r.delivery_email,
                fulfillment_code=r.fulfillment_code,
                expires_at=r.expires_at,
                fulfilled_at=r.fulfilled_at,
                created_at=r.created_at,
                item_name=r.item.name,
                item_type=r.item.item_type,
            )
            for r in rows
        ],
        total=total,
    )
