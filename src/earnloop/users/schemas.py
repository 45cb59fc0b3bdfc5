"""Pydantic models for user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr

from earnloop.earn.schemas import StreakSnapshot
from earnloop.ledger.schemas import BalanceSnapshot


class RegisterRequest(BaseModel):
    email: EmailStr


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime
    is_banned: bool


class UserSummaryResponse(BaseModel):
    user: UserResponse
    balance: BalanceSnapshot
    streak: StreakSnapshot | None = None
    tier: str
    account_age_days: int
    review_required: bool
    device_count: int
