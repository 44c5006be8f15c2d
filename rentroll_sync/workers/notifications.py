# rentroll_sync/workers/notifications.py
from __future__ import annotations

import logging

from ..config import settings

log = logging.getLogger("rentroll_sync.notifications")

RUN_COMPLETED_TASK = "rentroll_sync.notifications.run_completed"


def notify_run_completed(run_id: int) -> bool:
    """
    Hand the finished run to the notification service.

    The receiving worker fetches the persisted summary and events itself; we
    only send the run id. Without a configured broker the trigger is logged.
    """
    if not settings.celery_broker_url:
        log.info("run %s completed; no broker configured, notification not sent", run_id)
        return False

    from .celery_app import celery_app

    celery_app.send_task(RUN_COMPLETED_TASK, args=[int(run_id)])
    log.info("run %s completion trigger sent", run_id)
    return True
