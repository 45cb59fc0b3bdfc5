"""Pydantic models for admin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BanRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class FulfillRequest(BaseModel):
    fulfillment_code: str = Field(min_length=1, max_length=255)


class BlockDeviceRequest(BaseModel):
    reason: str | None = None


class UserStatusResponse(BaseModel):
    id: int
    email: str
    is_banned: bool
    ban_reason: str | None = None


class PendingFulfillment(BaseModel):
    redemption_id: int
    user_id: int
    item_id: str
    item_name: str
    credits_spent: int
    delivery_email: str | None = None
    created_at: datetime


class PendingFulfillmentsResponse(BaseModel):
    redemptions: list[PendingFulfillment]


class FraudFlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    device_id: int | None = None
    flag_type: str
    severity: str
    reason: str | None = None
    flag_metadata: dict[str, Any] | None = None
    resolved: bool
    resolved_at: datetime | None = None
    created_at: datetime


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    fingerprint: str
    risk_score: int
    is_blocked: bool
