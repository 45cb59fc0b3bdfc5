"""Earn request payloads and result models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from earnloop.errors import InvalidPayload
from earnloop.ledger.schemas import BalanceSnapshot

EARN_TYPES = ("checkin", "ad_view", "lesson")


# --- Payloads ---


class CheckinPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["checkin"] = "checkin"


class AdViewPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["ad_view"] = "ad_view"
    ad_unit_id: str = Field(min_length=1, max_length=128)
    idempotency_token: str = Field(min_length=8, max_length=128)
    client_timestamp: datetime | None = None


class LessonPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["lesson"] = "lesson"
    module_id: str = Field(min_length=1, max_length=64)
    quiz_score: int = Field(ge=0, le=100)


EarnPayload = Annotated[
    Union[CheckinPayload, AdViewPayload, LessonPayload],
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[Any] = TypeAdapter(EarnPayload)


def parse_earn_payload(earn_type: str, payload: dict[str, Any] | None) -> CheckinPayload | AdViewPayload | LessonPayload:
    """Validate a raw payload for ``earn_type``; raises ``InvalidPayload`` before any DB work."""
    if earn_type not in EARN_TYPES:
        raise InvalidPayload(f"Unknown earn type: {earn_type}", details={"type": earn_type})
    data = {**(payload or {}), "type": earn_type}
    try:
        return _payload_adapter.validate_python(data)
    except PydanticValidationError as e:
        errors = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise InvalidPayload(details={"errors": errors}) from e


# --- Results ---


class StreakSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current_streak: int
    longest_streak: int
    last_checkin_date: date | None = None
    streak_saver_count: int


class EarnResult(BaseModel):
    event_type: str
    credits_earned: int
    balance: BalanceSnapshot
    streak: StreakSnapshot | None = None
    streak_saver_used: bool = False
    module_id: str | None = None
    boost_applied: bool = False
    tier: str
    review_required: bool
    today_non_ad_earned: int
    daily_cap: int
    ads_today: int


class EarnStatus(BaseModel):
    tier: str
    account_age_days: int
    daily_cap: int
    today_earned: int
    today_non_ad_earned: int
    remaining_non_ad: int
    ads_today: int
    max_ads_per_day: int
    checked_in_today: bool
    boost_active: bool
    streak: StreakSnapshot | None = None


# --- Request bodies (HTTP) ---


class AdCompleteRequest(BaseModel):
    ad_unit_id: str
    idempotency_token: str
    client_timestamp: datetime | None = None


class LessonCompleteRequest(BaseModel):
    module_id: str
    quiz_score: int
