"""Store API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.auth.dependencies import get_current_user_id
from earnloop.config import EconomyConfig
from earnloop.database import get_session
from earnloop.dependencies import get_economy_config
from earnloop.store.catalog_service import get_redemption_history, list_catalog
from earnloop.store.inventory_service import get_inventory
from earnloop.store.redemption_service import RedemptionEngine
from earnloop.store.schemas import (
    CatalogResponse,
    InventoryResponse,
    RedeemRequest,
    RedemptionHistoryResponse,
    RedemptionResult,
)

router = APIRouter(prefix="/api/v1/store", tags=["Store"])


@router.get("/items", response_model=CatalogResponse)
async def store_items(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    return await list_catalog(db, user_id)


@router.post("/redeem", response_model=RedemptionResult)
async def redeem(
    body: RedeemRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    config: EconomyConfig = Depends(get_economy_config),
):
    """Spend credits on a catalog item. Gift cards require a delivery email."""
    return await RedemptionEngine(db, config).redeem(user_id, body.item_id, email=body.email)


@router.get("/inventory", response_model=InventoryResponse)
async def inventory(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    return await get_inventory(db, user_id)


@router.get("/history", response_model=RedemptionHistoryResponse)
async def redemption_history(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await get_redemption_history(db, user_id, limit=limit, offset=offset)
