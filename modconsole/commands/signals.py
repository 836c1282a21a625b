"""Post-commit security signal dispatch.

Burst and spam detection runs after the command's transaction has
committed, so telemetry latency or failure never affects the user-facing
result.
"""

import logging
from typing import Optional

from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.orm import Session

from modconsole.core.config import settings
from modconsole.services.security_events import SecurityEventService, security_event_service

logger = logging.getLogger("modconsole.signals")


class InlineSignalDispatcher:
    """Runs detectors in the caller's session, in a fresh transaction."""

    def __init__(self, signals: Optional[SecurityEventService] = None):
        self.signals = signals or security_event_service

    def high_risk_executed(self, db: Session, community_id: str, user_id: str) -> None:
        self._run(db, self.signals.maybe_record_high_risk_command_burst, community_id, user_id)

    def approval_submitted(self, db: Session, community_id: str, user_id: str) -> None:
        self._run(db, self.signals.maybe_record_approval_spam, community_id, user_id)

    @staticmethod
    def _run(db: Session, detector, community_id: str, user_id: str) -> None:
        try:
            detector(db, community_id, user_id)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Security signal %s failed", detector.__name__)


class CelerySignalDispatcher:
    """Queues detectors on the Celery worker."""

    def high_risk_executed(self, db: Session, community_id: str, user_id: str) -> None:
        from modconsole.tasks.celery_app import record_high_risk_burst
        self._enqueue(record_high_risk_burst, community_id, user_id)

    def approval_submitted(self, db: Session, community_id: str, user_id: str) -> None:
        from modconsole.tasks.celery_app import record_approval_spam
        self._enqueue(record_approval_spam, community_id, user_id)

    @staticmethod
    def _enqueue(task, community_id: str, user_id: str) -> None:
        try:
            task.delay(community_id, user_id)
        except BrokerError:
            logger.exception("Could not enqueue %s", task.name)


def default_dispatcher(signals: Optional[SecurityEventService] = None):
    if settings.SIGNAL_DISPATCH == "celery":
        return CelerySignalDispatcher()
    return InlineSignalDispatcher(signals)
