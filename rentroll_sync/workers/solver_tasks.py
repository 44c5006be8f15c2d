# rentroll_sync/workers/solver_tasks.py
from __future__ import annotations

from ..db import SessionLocal
from ..services.solver_engine import run_batch
from ..services.storage import SqlAlchemyStorage
from .celery_app import celery_app
from .notifications import notify_run_completed


@celery_app.task(
    bind=True,
    max_retries=0,  # a failed run is recorded on the run row; re-run by uploading again
    name="rentroll_sync.workers.solver_tasks.process_batch",
)
def process_batch(self, batch_id: str) -> dict:
    """Reconcile one staged upload batch and fire the completion trigger."""
    db = SessionLocal()
    try:
        outcome, tracker = run_batch(SqlAlchemyStorage(db), batch_id, notifier=notify_run_completed)
        return {
            "ok": outcome.status == "completed",
            "run_id": outcome.run_id,
            "status": outcome.status,
            "status_message": outcome.status_message,
            "events": len(tracker.events),
            "skipped": len(outcome.skipped),
        }
    finally:
        db.close()
