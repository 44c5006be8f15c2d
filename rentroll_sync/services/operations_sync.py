# rentroll_sync/services/operations_sync.py
"""
Snapshot reconciliation for the operational reports: applications, transfers,
work orders, alerts and delinquencies.

Each function is one (report type, property) pass driven by SolverEngine.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..domain import dates
from ..domain.availability import is_marketed
from ..domain.flags import TRANSFER_ACTIVE, cleared_flag_ids, dedupe_new_flags, transfer_flags
from .passes import PassState, ReportPass

if TYPE_CHECKING:
    from .solver_engine import SolverEngine

log = logging.getLogger("rentroll_sync.solver.operations")


# -----------------------------
# applications
# -----------------------------
def sync_applications(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    units = engine.units(code)
    known = {
        (a["unit_id"], str(a["applicant_name"]).strip().lower(), a.get("application_date"))
        for a in engine.select("applications", {"property_code": code})
    }
    availabilities = {a["unit_id"]: a for a in engine.select("availabilities", {"property_code": code, "is_active": True})}

    p.advance(PassState.DIFFING)
    upserts: list[dict[str, Any]] = []
    agent_patches: dict[int, dict[str, Any]] = {}
    fresh: list[dict[str, Any]] = []
    for row in rows:
        unit_id = units.get(row.unit_name)
        if unit_id is None:
            engine.skip(code, row.unit_name, f"Unit not found: {code} {row.unit_name}")
            continue
        app_date = dates.to_iso(row.application_date)
        rec = {
            "property_code": code,
            "unit_id": unit_id,
            "applicant_name": row.applicant,
            "agent": row.leasing_agent,
            "application_date": app_date,
            "screening_result": row.screening_result,
        }
        upserts.append(rec)
        key = (unit_id, row.applicant.lower(), app_date)
        if key not in known:
            # a second copy in the same file is not a new application
            known.add(key)
            fresh.append({**rec, "unit_name": row.unit_name})

        av = availabilities.get(unit_id)
        if av is not None and row.leasing_agent and is_marketed(av.get("status")):
            patch = {"leasing_agent": row.leasing_agent}
            if row.screening_result:
                patch["screening_result"] = row.screening_result
            agent_patches[int(av["id"])] = patch

    p.advance(PassState.APPLYING)
    engine.upsert("applications", upserts, ("property_code", "unit_id", "applicant_name", "application_date"))
    now = datetime.utcnow()
    for av_id, patch in agent_patches.items():
        engine.update("availabilities", {"id": av_id}, {**patch, "updated_at": now})
    for rec in fresh:
        engine.tracker.track_application(
            code,
            {
                "unit_id": rec["unit_id"],
                "unit_name": rec["unit_name"],
                "applicant_name": rec["applicant_name"],
                "application_date": rec["application_date"],
                "screening_result": rec["screening_result"],
                "agent": rec["agent"],
            },
        )


# -----------------------------
# transfers
# -----------------------------
def sync_transfers(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    candidates = []
    for row in rows:
        from_pc = (row.from_property_code or "").strip().upper()
        to_pc = (row.to_property_code or "").strip().upper()
        from_unit = (row.from_unit_name or "").strip()
        to_unit = (row.to_unit_name or "").strip()
        if not (row.resident and from_pc and from_unit and to_pc and to_unit):
            engine.skip(code, from_unit, "Transfer row missing resident or unit data")
            continue
        if from_pc == to_pc and from_unit == to_unit:
            engine.skip(code, from_unit, f"Transfer to same unit for {row.resident}")
            continue
        from_id = engine.units(from_pc).get(from_unit)
        to_id = engine.units(to_pc).get(to_unit)
        if from_id is None or to_id is None:
            engine.skip(code, from_unit, f"Transfer unit not found: {from_pc} {from_unit} -> {to_pc} {to_unit}")
            continue
        candidates.extend(
            transfer_flags(
                resident=row.resident,
                from_unit_id=from_id,
                from_property_code=from_pc,
                from_unit_name=from_unit,
                to_unit_id=to_id,
                to_property_code=to_pc,
                to_unit_name=to_unit,
                from_status=row.from_status,
                to_status=row.to_status,
            )
        )
    open_flags = engine.select("unit_flags", {"flag_type": TRANSFER_ACTIVE, "resolved_at": None})

    p.advance(PassState.DIFFING)
    new_flags = dedupe_new_flags(candidates, {(f["unit_id"], f["flag_type"]) for f in open_flags})
    # only flags raised from this property's file are ours to resolve
    ours = [f for f in open_flags if (f.get("metadata") or {}).get("from_property_code") == code]
    stale = cleared_flag_ids(ours, {c.unit_id for c in candidates})

    p.advance(PassState.APPLYING)
    now = datetime.utcnow()
    engine.insert("unit_flags", [f.row(now) for f in new_flags])
    if stale:
        engine.update("unit_flags", {"id": stale}, {"resolved_at": now, "resolved_by": "solver"})
    for f in new_flags:
        engine.tracker.track_flag(f.property_code, f.flag_type)


# -----------------------------
# work orders
# -----------------------------
_WO_FIELDS = ("unit_name", "description", "status", "category", "call_date", "resident", "phone")


def work_order_key(property_code: str, work_order_id: str) -> str:
    return f"{property_code}_{work_order_id}"


def sync_work_orders(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    units = engine.units(code)
    active = {work_order_key(code, w["yardi_work_order_id"]): w for w in engine.select("work_orders", {"property_code": code, "is_active": True})}

    p.advance(PassState.DIFFING)
    latest: dict[str, Any] = {}
    for row in rows:
        latest[work_order_key(code, row.yardi_work_order_id)] = row

    upserts: list[dict[str, Any]] = []
    for key, row in latest.items():
        rec = {
            "property_code": code,
            "yardi_work_order_id": row.yardi_work_order_id,
            "unit_name": row.unit_name,
            "unit_id": units.get(row.unit_name or ""),
            "description": row.description,
            "status": row.status,
            "category": row.category,
            "call_date": dates.to_iso(row.call_date),
            "resident": row.resident,
            "phone": row.phone,
            "is_active": True,
            "completion_date": None,
        }
        cur = active.get(key)
        if cur is None or any(cur.get(f) != rec[f] for f in _WO_FIELDS):
            upserts.append(rec)
    closed = [int(w["id"]) for key, w in active.items() if key not in latest]

    p.advance(PassState.APPLYING)
    engine.upsert("work_orders", upserts, ("property_code", "yardi_work_order_id"))
    if closed:
        engine.update("work_orders", {"id": closed}, {"is_active": False, "completion_date": engine.today.isoformat()})
    log.info("work orders %s: %s upserted, %s closed", code, len(upserts), len(closed), extra={"property_code": code})


# -----------------------------
# alerts
# -----------------------------
def alert_key(property_code: str, unit_name: Any, description: Any, resident: Any) -> str:
    # No stable id upstream: any text drift makes a "new" alert.
    return f"{property_code}_{unit_name or ''}_{description or ''}_{resident or ''}"


def sync_alerts(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    stored = {
        alert_key(code, a.get("unit_name"), a.get("description"), a.get("resident")): a
        for a in engine.select("alerts", {"property_code": code})
    }

    p.advance(PassState.DIFFING)
    inserts: list[dict[str, Any]] = []
    reactivate: list[int] = []
    reported: set[str] = set()
    for row in rows:
        key = alert_key(code, row.unit_name, row.description, row.resident)
        if key in reported:
            continue
        reported.add(key)
        cur = stored.get(key)
        if cur is None:
            inserts.append(
                {
                    "property_code": code,
                    "unit_name": row.unit_name,
                    "description": row.description,
                    "resident": row.resident,
                    "is_active": True,
                }
            )
        elif not cur.get("is_active"):
            reactivate.append(int(cur["id"]))
    deactivate = [int(a["id"]) for key, a in stored.items() if a.get("is_active") and key not in reported]

    p.advance(PassState.APPLYING)
    engine.insert("alerts", inserts)
    if reactivate:
        engine.update("alerts", {"id": reactivate}, {"is_active": True})
    if deactivate:
        engine.update("alerts", {"id": deactivate}, {"is_active": False})


# -----------------------------
# delinquencies
# -----------------------------
_AMOUNTS = ("total_unpaid", "days_0_30", "days_31_60", "days_61_90", "days_91_plus", "prepays", "balance")


def delinquency_key(property_code: str, unit_name: Any, tenancy_id: Any) -> str:
    return f"{property_code}_{unit_name or ''}_{tenancy_id or ''}"


def sync_delinquencies(engine: "SolverEngine", code: str, rows: list[Any], p: ReportPass) -> None:
    p.advance(PassState.FETCHING)
    stored = {
        delinquency_key(code, d.get("unit_name"), d.get("tenancy_id")): d
        for d in engine.select("delinquencies", {"property_code": code})
    }

    p.advance(PassState.DIFFING)
    now = datetime.utcnow()
    inserts: list[dict[str, Any]] = []
    updates: list[tuple[int, dict[str, Any]]] = []
    reported: set[str] = set()
    for row in rows:
        key = delinquency_key(code, row.unit_name, row.tenancy_id)
        reported.add(key)
        amounts = {f: float(getattr(row, f) or 0.0) for f in _AMOUNTS}
        cur = stored.get(key)
        if cur is None:
            inserts.append(
                {
                    "property_code": code,
                    "unit_name": row.unit_name,
                    "tenancy_id": row.tenancy_id,
                    "resident": row.resident,
                    **amounts,
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            continue
        moved = any(abs(float(cur.get(f) or 0.0) - v) >= 0.005 for f, v in amounts.items())
        if moved or not cur.get("is_active") or cur.get("resident") != row.resident:
            updates.append((int(cur["id"]), {**amounts, "resident": row.resident, "is_active": True, "updated_at": now}))
    deactivate = [int(d["id"]) for key, d in stored.items() if d.get("is_active") and key not in reported]

    p.advance(PassState.APPLYING)
    engine.insert("delinquencies", inserts)
    for d_id, patch in updates:
        engine.update("delinquencies", {"id": d_id}, patch)
    if deactivate:
        engine.update("delinquencies", {"id": deactivate}, {"is_active": False, "updated_at": now})
