"""User endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.auth.dependencies import get_current_user_id
from earnloop.config import EconomyConfig
from earnloop.database import get_session
from earnloop.dependencies import get_economy_config
from earnloop.ledger.schemas import HistoryResponse
from earnloop.users.schemas import UserSummaryResponse
from earnloop.users.service import get_history, get_user_summary

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserSummaryResponse)
async def me(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    config: EconomyConfig = Depends(get_economy_config),
):
    """Balance, streak and trust tier for the authenticated user."""
    return await get_user_summary(db, user_id, device_review_risk_score=config.device_review_risk_score)


@router.get("/me/history", response_model=HistoryResponse)
async def my_history(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await get_history(db, user_id, limit=limit, offset=offset)
