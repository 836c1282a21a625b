"""Celery app and tasks for out-of-band security signal detection."""

import logging

from celery import Celery

from modconsole.core.config import settings

logger = logging.getLogger("modconsole.tasks")

celery_app = Celery(
    "modconsole",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_soft_time_limit=30,
    task_time_limit=60,
)


def _run_detector(name: str, community_id: str, user_id: str) -> bool:
    from modconsole.db.session import SessionLocal
    from modconsole.services.security_events import security_event_service

    db = SessionLocal()
    try:
        event = getattr(security_event_service, name)(db, community_id, user_id)
        db.commit()
        return event is not None
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="record_high_risk_burst")
def record_high_risk_burst(community_id: str, user_id: str) -> bool:
    """Check one user for a burst of high-risk executions."""
    return _run_detector("maybe_record_high_risk_command_burst", community_id, user_id)


@celery_app.task(name="record_approval_spam")
def record_approval_spam(community_id: str, user_id: str) -> bool:
    """Check one user for an approval request flood."""
    return _run_detector("maybe_record_approval_spam", community_id, user_id)
