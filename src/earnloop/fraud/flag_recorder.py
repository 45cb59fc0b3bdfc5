"""Side-channel writer for fraud flags."""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from earnloop.db.models import Device, FraudFlag
from earnloop.errors import FraudSignal

logger = logging.getLogger(__name__)


class FraudFlagRecorder:
    """Persist fraud signals in their own transaction.

    Called after the rejected ledger transaction has rolled back. A failed
    write is logged and dropped: flags never block or undo a ledger operation.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(self, signal: FraudSignal) -> None:
        try:
            async with self.session_factory() as session:
                session.add(FraudFlag(
                    user_id=signal.user_id,
                    device_id=signal.device_id,
                    flag_type=signal.flag_type,
                    severity=signal.severity,
                    reason=signal.reason,
                    flag_metadata=signal.metadata or None,
                ))
                if signal.device_id is not None and signal.risk_increment:
                    await session.execute(
                        update(Device)
                        .where(Device.id == signal.device_id)
                        .values(risk_score=Device.risk_score + signal.risk_increment)
                    )
                await session.commit()
        except Exception:
            logger.warning("Failed to record fraud flag %s for user %d",
                           signal.flag_type, signal.user_id, exc_info=True)
            return

        logger.info("Fraud flag %s (%s) recorded for user %d", signal.flag_type, signal.severity, signal.user_id)
