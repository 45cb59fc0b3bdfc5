"""Pydantic models for store endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from earnloop.ledger.schemas import BalanceSnapshot

ITEM_TYPES = ("consumable", "boost", "cosmetic", "giftcard", "subscription", "badge")


# --- Catalog ---


class CatalogItemResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    credits_cost: int
    item_type: str
    category: str
    duration_days: int | None = None
    max_per_user: int | None = None
    icon: str | None = None
    can_afford: bool
    can_redeem: bool
    user_redemptions: int = 0
    owned_quantity: int = 0


class CatalogResponse(BaseModel):
    items: list[CatalogItemResponse]
    balance: int


# --- Redemption ---


class RedeemRequest(BaseModel):
    item_id: str
    email: str | None = None


class RedemptionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: str
    credits_spent: int
    status: str
    delivery_email: str | None = None
    fulfillment_code: str | None = None
    expires_at: datetime | None = None
    fulfilled_at: datetime | None = None
    created_at: datetime


class RedemptionResult(BaseModel):
    balance: BalanceSnapshot
    redemption: RedemptionRecord
    item_name: str
    item_type: str
    message: str


class RedemptionHistoryEntry(RedemptionRecord):
    item_name: str
    item_type: str


class RedemptionHistoryResponse(BaseModel):
    redemptions: list[RedemptionHistoryEntry]
    total: int


# --- Inventory ---


class InventoryItemResponse(BaseModel):
    id: int
    item_id: str
    name: str
    item_type: str
    icon: str | None = None
    quantity: int
    is_active: bool
    is_expired: bool = False
    activated_at: datetime | None = None
    expires_at: datetime | None = None


class InventoryResponse(BaseModel):
    items: list[InventoryItemResponse]
    streak_savers: int
    active_boosts: list[InventoryItemResponse]
