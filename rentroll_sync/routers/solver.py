# rentroll_sync/routers/solver.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, PlainTextResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import StorageError
from ..schemas import RunStartIn, RunStartOut, SkipOut, SolverRunOut
from ..services.run_reports import html_for_run, markdown_for_run
from ..services.solver_engine import run_batch
from ..services.storage import SqlAlchemyStorage
from ..workers.notifications import notify_run_completed

router = APIRouter(prefix="/solver", tags=["solver"])


@router.post("/runs", response_model=RunStartOut)
def start_run(payload: RunStartIn, db: Session = Depends(get_db)):
    """Run the solver for one staged batch, synchronously."""
    try:
        outcome, _tracker = run_batch(SqlAlchemyStorage(db), payload.batch_id, notifier=notify_run_completed)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=f"storage unavailable: {e}")
    return RunStartOut(
        run_id=outcome.run_id,
        batch_id=outcome.batch_id,
        status=outcome.status,
        status_message=outcome.status_message,
        skipped=[SkipOut(**s.as_dict()) for s in outcome.skipped],
    )


@router.get("/runs/{run_id}", response_model=SolverRunOut)
def get_run(run_id: int, db: Session = Depends(get_db)):
    res = SqlAlchemyStorage(db).select("solver_runs", {"id": run_id})
    if not res.ok:
        raise HTTPException(status_code=503, detail=res.error)
    if not res.rows:
        raise HTTPException(status_code=404, detail="run not found")
    r = res.rows[0]
    return SolverRunOut(
        id=r["id"],
        batch_id=r["batch_id"],
        status=r["status"],
        properties_processed=r.get("properties_processed") or [],
        summary=r.get("summary") or {},
        error_message=r.get("error_message"),
        created_at=r["created_at"],
        completed_at=r.get("completed_at"),
    )


@router.get("/runs/{run_id}/report.md", response_class=PlainTextResponse)
def run_report_markdown(run_id: int, db: Session = Depends(get_db)):
    out = markdown_for_run(SqlAlchemyStorage(db), run_id)
    if out is None:
        raise HTTPException(status_code=404, detail="run not found")
    filename, body = out
    return PlainTextResponse(
        body,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.get("/runs/{run_id}/report.html", response_class=HTMLResponse)
def run_report_html(run_id: int, db: Session = Depends(get_db)):
    body = html_for_run(SqlAlchemyStorage(db), run_id)
    if body is None:
        raise HTTPException(status_code=404, detail="run not found")
    return HTMLResponse(body)
