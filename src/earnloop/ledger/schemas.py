"""Pydantic models for balance snapshots and history."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class BalanceSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: int
    lifetime_earned: int
    lifetime_spent: int


class HistoryEntry(BaseModel):
    id: int
    category: str  # "earn" or "spend"
    type: str
    amount: int
    created_at: datetime


class HistoryResponse(BaseModel):
    history: list[HistoryEntry]
