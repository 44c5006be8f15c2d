# rentroll_sync/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

# CELERY_BROKER_URL / CELERY_RESULT_BACKEND arrive through Settings.
DEFAULT_BROKER = "redis://localhost:6379/0"
DEFAULT_BACKEND = "redis://localhost:6379/1"

SOLVER_QUEUE = "solver"
NOTIFICATIONS_QUEUE = "notifications"

celery_app = Celery(
    "rentroll_sync",
    broker=settings.celery_broker_url or DEFAULT_BROKER,
    backend=settings.celery_result_backend or DEFAULT_BACKEND,
    include=["rentroll_sync.workers.solver_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,  # one batch run at a time per worker
    task_default_queue=SOLVER_QUEUE,
    result_expires=7 * 24 * 3600,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "rentroll_sync.workers.solver_tasks.*": {"queue": SOLVER_QUEUE},
    "rentroll_sync.notifications.*": {"queue": NOTIFICATIONS_QUEUE},
}
