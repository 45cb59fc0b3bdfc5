"""Pydantic models for giveaway entries."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from earnloop.ledger.schemas import BalanceSnapshot

GiveawayAction = Literal["claim_free", "buy", "earn_bonus"]


class EntryCounts(BaseModel):
    giveaway_id: str
    free_entries: int = 0
    bonus_entries: int = 0
    paid_entries: int = 0
    total_entries: int = 0
    bonus_entries_available: int = 0
    next_bonus_at: datetime | None = None
    bonus_cooldown_remaining_seconds: int = 0


class EntryResult(BaseModel):
    action: GiveawayAction
    entries: EntryCounts
    credits_spent: int = 0
    balance: BalanceSnapshot | None = None
    message: str


class EntriesResponse(BaseModel):
    giveaways: list[EntryCounts]
    entry_cost: int
    cooldown_hours: int


class BonusEntryRequest(BaseModel):
    engagement_type: str | None = None
