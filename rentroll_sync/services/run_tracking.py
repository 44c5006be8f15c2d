# rentroll_sync/services/run_tracking.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from ..domain.tracking import EventTracker
from .storage import Storage, chunked

log = logging.getLogger("rentroll_sync.runs")

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


def start_run(storage: Storage, batch_id: str) -> int:
    res = storage.insert(
        "solver_runs",
        [{"batch_id": batch_id, "status": RUNNING, "created_at": datetime.utcnow()}],
    ).raise_for_error(table="solver_runs", op="insert")
    run_id = int(res.rows[0]["id"])
    log.info("solver run started", extra={"batch_id": batch_id})
    return run_id


def complete_run(
    storage: Storage,
    run_id: int,
    tracker: EventTracker,
    properties_processed: Iterable[str],
) -> int:
    """Persist the tracker's events (chunked) and close the run. Returns events written."""
    rows = [
        {
            "solver_run_id": run_id,
            "property_code": e.property_code,
            "event_type": e.event_type,
            "unit_id": e.unit_id,
            "tenancy_id": e.tenancy_id,
            "details": e.details,
            "created_at": e.created_at,
        }
        for e in tracker.events
    ]
    written = 0
    for part in chunked(rows):
        storage.insert("solver_events", part).raise_for_error(table="solver_events", op="insert")
        written += len(part)

    storage.update(
        "solver_runs",
        {"id": run_id},
        {
            "status": COMPLETED,
            "completed_at": datetime.utcnow(),
            "properties_processed": sorted(set(properties_processed)),
            "summary": tracker.summary_dict(),
        },
    ).raise_for_error(table="solver_runs", op="update")
    log.info("solver run completed (%s events)", written)
    return written


def fail_run(storage: Storage, run_id: int, message: str) -> None:
    # Best effort: a failing store is already the likely cause of the failure.
    res = storage.update(
        "solver_runs",
        {"id": run_id},
        {"status": FAILED, "error_message": message[:4000], "completed_at": datetime.utcnow()},
    )
    if not res.ok:
        log.error("could not mark run failed: %s", res.error)
