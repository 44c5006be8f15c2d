# rentroll_sync/services/run_reports.py
from __future__ import annotations

from datetime import date
from typing import Optional

from ..config import settings
from ..domain import dates
from ..domain.reporting import OperationalSummary, RunView, render_html, render_markdown, report_filename
from ..domain.tracking import SolverEvent
from .storage import Storage


def load_run(storage: Storage, run_id: int) -> Optional[RunView]:
    res = storage.select("solver_runs", {"id": run_id}).raise_for_error(table="solver_runs", op="select")
    if not res.rows:
        return None
    r = res.rows[0]
    return RunView(
        batch_id=r["batch_id"],
        created_at=r.get("created_at"),
        status=r.get("status") or "running",
        properties_processed=list(r.get("properties_processed") or []),
        summary=dict(r.get("summary") or {}),
        error_message=r.get("error_message"),
    )


def load_events(storage: Storage, run_id: int) -> list[SolverEvent]:
    res = storage.select("solver_events", {"solver_run_id": run_id}).raise_for_error(table="solver_events", op="select")
    return [
        SolverEvent(
            property_code=e["property_code"],
            event_type=e["event_type"],
            details=dict(e.get("details") or {}),
            unit_id=e.get("unit_id"),
            tenancy_id=e.get("tenancy_id"),
            created_at=e["created_at"],
        )
        for e in res.rows
    ]


def load_operational_summary(storage: Storage, today: Optional[date] = None) -> OperationalSummary:
    day = (today or dates.today()).isoformat()
    alerts = storage.select("alerts", {"is_active": True}).raise_for_error(table="alerts", op="select").rows
    open_wo = storage.select("work_orders", {"is_active": True}).raise_for_error(table="work_orders", op="select").rows
    done_wo = (
        storage.select("work_orders", {"is_active": False, "completion_date": day})
        .raise_for_error(table="work_orders", op="select")
        .rows
    )
    delinquent = (
        storage.select("delinquencies", {"is_active": True}).raise_for_error(table="delinquencies", op="select").rows
    )
    return OperationalSummary(
        alerts_active=len(alerts),
        work_orders_open=len(open_wo),
        work_orders_completed_today=len(done_wo),
        delinquencies_count=len(delinquent),
        delinquencies_total=round(sum(float(d.get("balance") or 0.0) for d in delinquent), 2),
        delinquencies_over_90=sum(1 for d in delinquent if float(d.get("days_91_plus") or 0.0) > 0),
    )


def markdown_for_run(storage: Storage, run_id: int) -> Optional[tuple[str, str]]:
    """(filename, markdown) for a persisted run, or None if the run does not exist."""
    run = load_run(storage, run_id)
    if run is None:
        return None
    body = render_markdown(run, load_events(storage, run_id))
    ts = run.created_at
    name = report_filename(ts, run.batch_id) if ts is not None else f"{run.batch_id[:8]}.md"
    return name, body


def html_for_run(storage: Storage, run_id: int, *, today: Optional[date] = None) -> Optional[str]:
    run = load_run(storage, run_id)
    if run is None:
        return None
    return render_html(
        run,
        load_events(storage, run_id),
        load_operational_summary(storage, today),
        base_url=settings.report_base_url,
    )
