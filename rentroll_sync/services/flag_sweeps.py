# rentroll_sync/services/flag_sweeps.py
"""
Overdue sweeps. They run after every report type has been reconciled.

Each sweep builds the set of flags the current state calls for, inserts the
ones without an unresolved twin (same unit + flag type), and resolves open
flags of its type whose condition no longer holds.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..config import settings
from ..domain.flags import (
    APPLICATION_OVERDUE,
    MAKEREADY_OVERDUE,
    MOVEOUT_OVERDUE,
    FlagSpec,
    application_overdue,
    cleared_flag_ids,
    dedupe_new_flags,
    makeready_overdue,
    moveout_overdue,
)
from ..domain.status import TenancyStatus
from .passes import PassState, ReportPass

if TYPE_CHECKING:
    from .solver_engine import SolverEngine

log = logging.getLogger("rentroll_sync.solver.flags")


def _apply(engine: "SolverEngine", code: str, flag_type: str, candidates: list[FlagSpec], p: ReportPass) -> None:
    open_flags = engine.select("unit_flags", {"property_code": code, "flag_type": flag_type, "resolved_at": None})

    p.advance(PassState.DIFFING)
    new_flags = dedupe_new_flags(candidates, {(f["unit_id"], f["flag_type"]) for f in open_flags})
    stale = cleared_flag_ids(open_flags, {c.unit_id for c in candidates})
    if not new_flags and not stale:
        return

    p.advance(PassState.APPLYING)
    now = datetime.utcnow()
    engine.insert("unit_flags", [f.row(now) for f in new_flags])
    if stale:
        engine.update("unit_flags", {"id": stale}, {"resolved_at": now, "resolved_by": "solver"})
    if new_flags:
        engine.tracker.track_flag(code, flag_type, len(new_flags))
    log.info(
        "%s: %s raised, %s resolved",
        flag_type,
        len(new_flags),
        len(stale),
        extra={"property_code": code},
    )


def sweep_moveout_overdue(engine: "SolverEngine", code: str, p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    names = engine.unit_names(code)
    tenancies = engine.select(
        "tenancies",
        {"property_code": code, "status": [TenancyStatus.NOTICE.value, TenancyStatus.EVICTION.value]},
    )
    candidates: list[FlagSpec] = []
    for t in tenancies:
        if t.get("unit_id") is None:
            continue
        spec = moveout_overdue(
            unit_id=int(t["unit_id"]),
            property_code=code,
            unit_name=names.get(int(t["unit_id"])),
            tenancy_id=t["id"],
            move_out_date=t.get("move_out_date"),
            today=engine.today,
            error_days=settings.moveout_overdue_error_days,
        )
        if spec is not None:
            candidates.append(spec)
    _apply(engine, code, MOVEOUT_OVERDUE, candidates, p)


def sweep_makeready_overdue(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    units = engine.units(code)
    candidates: list[FlagSpec] = []
    for row in rows:
        unit_id = units.get(row.unit_name)
        if unit_id is None:
            engine.skip(code, row.unit_name, f"Unit not found: {code} {row.unit_name}")
            continue
        spec = makeready_overdue(
            unit_id=unit_id,
            property_code=code,
            unit_name=row.unit_name,
            make_ready_date=row.make_ready_date,
            today=engine.today,
            cushion_days=settings.makeready_cushion_days,
            error_days=settings.makeready_error_days,
        )
        if spec is not None:
            candidates.append(spec)
    _apply(engine, code, MAKEREADY_OVERDUE, candidates, p)


def sweep_application_overdue(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    # only today's pipeline; an application that left the report resolves its flag
    p.advance(PassState.FETCHING)
    units = engine.units(code)
    candidates: list[FlagSpec] = []
    for row in rows:
        unit_id = units.get(row.unit_name)
        if unit_id is None:
            continue
        spec = application_overdue(
            unit_id=unit_id,
            property_code=code,
            unit_name=row.unit_name,
            applicant_name=row.applicant,
            application_date=row.application_date,
            screening_result=row.screening_result,
            today=engine.today,
            overdue_days=settings.application_overdue_days,
            error_days=settings.application_error_days,
        )
        if spec is not None:
            candidates.append(spec)
    _apply(engine, code, APPLICATION_OVERDUE, candidates, p)
