"""Giveaway entry endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.auth.dependencies import get_current_user_id
from earnloop.config import EconomyConfig
from earnloop.database import get_session
from earnloop.dependencies import get_economy_config
from earnloop.giveaways.entry_service import GiveawayEntryLedger
from earnloop.giveaways.schemas import BonusEntryRequest, EntriesResponse, EntryResult

router = APIRouter(prefix="/api/v1/giveaways", tags=["Giveaways"])


def _ledger(
    db: AsyncSession = Depends(get_session),
    config: EconomyConfig = Depends(get_economy_config),
) -> GiveawayEntryLedger:
    return GiveawayEntryLedger(db, config)


@router.get("/entries", response_model=EntriesResponse)
async def entries(
    user_id: int = Depends(get_current_user_id),
    ledger: GiveawayEntryLedger = Depends(_ledger),
):
    """Free/bonus/paid entries per giveaway with the next bonus time."""
    return await ledger.get_entries(user_id)


@router.post("/{giveaway_id}/{action}", response_model=EntryResult)
async def enter(
    giveaway_id: str,
    action: str,
    body: BonusEntryRequest | None = Body(default=None),
    user_id: int = Depends(get_current_user_id),
    ledger: GiveawayEntryLedger = Depends(_ledger),
):
    """Run one entry action: ``claim_free``, ``buy`` or ``earn_bonus``."""
    engagement_type = body.engagement_type if body else None
    return await ledger.enter_giveaway(user_id, giveaway_id, action, engagement_type=engagement_type)
