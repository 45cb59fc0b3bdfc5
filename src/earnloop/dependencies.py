"""Shared FastAPI dependencies."""

from __future__ import annotations

from earnloop.config import EconomyConfig, get_settings
from earnloop.database import get_session_factory
from earnloop.fraud.flag_recorder import FraudFlagRecorder


def get_economy_config() -> EconomyConfig:
    """Economy constants from settings; override in tests via ``dependency_overrides``."""
    return EconomyConfig.from_settings(get_settings())


def get_flag_recorder() -> FraudFlagRecorder:
    return FraudFlagRecorder(get_session_factory())
