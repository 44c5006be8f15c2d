# rentroll_sync/services/solver_engine.py
"""
Daily reconciliation driver.

One `SolverEngine.run(batch_id)` call reconciles a staged upload batch against
storage in a fixed order:

    residents_status -> expiring_leases -> availables -> stale availability sweep
    -> notices -> applications -> transfers -> work_orders / alerts / delinquencies
    -> overdue flag sweeps (move-out, makeready, application)

Every report type is processed per property. Each (report type, property) pass
walks Idle -> Fetching -> Diffing -> Applying -> Done; an exception inside a
pass marks it Failed, is recorded as a skip entry, and the next property
continues. Anything escaping the driver itself fails the whole run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..domain import dates
from ..domain.availability import (
    build_tenancy_priority_map,
    classify_stale_availabilities,
    price_change_details,
)
from ..domain.missing import classify_missing
from ..domain.renewals import IncomingLease, lease_status_from_text, plan_lease, retired_lease_patch
from ..domain.status import (
    LIVE_STATUSES,
    TenancyRef,
    TenancyStatus,
    derive_availability_status,
    map_tenancy_status,
)
from ..domain.tracking import STALE_UPDATE, EventTracker
from ..errors import InvalidPassTransition, RowValidationError, RunFailed, SkipEntry
from ..logging_config import run_id_ctx
from ..schemas import REPORT_TYPES, snapshot_row_adapter
from . import flag_sweeps, operations_sync
from .passes import PassState, ReportPass
from .run_tracking import COMPLETED, FAILED, complete_run, fail_run, start_run
from .storage import Storage, StorageResult

log = logging.getLogger("rentroll_sync.solver")

HOUSEHOLD_ROLES = ("roommate", "occupant", "guarantor")

# Which live tenancy a notice applies to when a unit has several.
_NOTICE_PREFERENCE = {
    TenancyStatus.NOTICE: 5,
    TenancyStatus.CURRENT: 4,
    TenancyStatus.EVICTION: 3,
    TenancyStatus.FUTURE: 2,
    TenancyStatus.APPLICANT: 1,
}


@dataclass
class RunOutcome:
    run_id: Optional[int]
    batch_id: str
    status: str
    status_message: str
    skipped: list[SkipEntry] = field(default_factory=list)
    error_message: Optional[str] = None


def validate_row(raw: dict[str, Any]) -> Any:
    """Staged dict -> typed snapshot row, or RowValidationError naming the first bad field."""
    report_type = raw.get("report_type")
    try:
        return snapshot_row_adapter.validate_python(raw)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {"loc": (), "msg": str(e)}
        # discriminated-union errors lead with the tag
        where = ".".join(str(x) for x in first.get("loc", ()) if x != report_type)
        raise RowValidationError(f"Invalid {report_type} row: {where} {first.get('msg')}".strip()) from e


def household_role(row_type: Optional[str], row_status: Optional[str]) -> str:
    text = f"{row_type or ''} {row_status or ''}".lower()
    for role in HOUSEHOLD_ROLES:
        if role in text:
            return role.capitalize()
    return "Primary"


def _changed(existing: dict[str, Any], patch: dict[str, Any]) -> bool:
    for k, v in patch.items():
        if k == "updated_at":
            continue
        cur = existing.get(k)
        if isinstance(v, date) and not isinstance(v, datetime):
            v = v.isoformat()
        if isinstance(cur, float) or isinstance(v, float):
            try:
                if cur is not None and v is not None and abs(float(cur) - float(v)) < 0.005:
                    continue
            except (TypeError, ValueError):
                pass
        if cur != v:
            return True
    return False


class SolverEngine:
    def __init__(
        self,
        storage: Storage,
        tracker: Optional[EventTracker] = None,
        *,
        today: Optional[date] = None,
        notifier: Optional[Callable[[int], Any]] = None,
    ) -> None:
        self.storage = storage
        self.tracker = tracker if tracker is not None else EventTracker()
        self.today = today or dates.today()
        self.notifier = notifier
        self.status_message = "Idle"
        self.skipped_rows: list[SkipEntry] = []
        self.passes: list[ReportPass] = []
        self._units: dict[str, dict[str, int]] = {}
        # tenancy ids present in the residents report, including rows that were skipped
        self._reported: dict[str, set[str]] = {}

    # -----------------------------
    # shared helpers (also used by operations_sync / flag_sweeps)
    # -----------------------------
    def set_status(self, message: str) -> None:
        self.status_message = message
        log.info(message)

    def skip(self, property_code: str, unit_name: Optional[str], reason: str) -> None:
        entry = SkipEntry(property_code=property_code, unit_name=unit_name or "", reason=reason)
        self.skipped_rows.append(entry)
        log.debug("skip: %s", reason, extra={"property_code": property_code, "unit_name": unit_name})

    def note_reported(self, property_code: str, tenancy_id: Any) -> None:
        tid = str(tenancy_id or "").strip()
        if tid:
            self._reported.setdefault((property_code or "").strip().upper(), set()).add(tid)

    def ok(self, res: StorageResult, table: str, op: str) -> StorageResult:
        return res.raise_for_error(table=table, op=op)

    def select(self, table: str, filters: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        return self.ok(self.storage.select(table, filters), table, "select").rows

    def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not rows:
            return []
        return self.ok(self.storage.insert(table, rows), table, "insert").rows

    def update(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> int:
        return self.ok(self.storage.update(table, filters, patch), table, "update").count

    def upsert(self, table: str, rows: list[dict[str, Any]], conflict_key: tuple[str, ...]) -> list[dict[str, Any]]:
        if not rows:
            return []
        return self.ok(self.storage.upsert(table, rows, conflict_key), table, "upsert").rows

    def units(self, property_code: str) -> dict[str, int]:
        """unit_name -> unit id for one property, fetched once per run."""
        code = (property_code or "").upper()
        idx = self._units.get(code)
        if idx is None:
            rows = self.select("units", {"property_code": code})
            idx = {str(r["unit_name"]).strip(): int(r["id"]) for r in rows}
            self._units[code] = idx
        return idx

    def unit_names(self, property_code: str) -> dict[int, str]:
        return {v: k for k, v in self.units(property_code).items()}

    def for_each_property(
        self,
        report_type: str,
        groups: dict[str, list[Any]],
        handler: Callable[[str, list[Any], ReportPass], None],
    ) -> None:
        for code in sorted(groups):
            p = ReportPass(report_type, code)
            self.passes.append(p)
            self.set_status(f"Processing {report_type} for {code} ({len(groups[code])} rows)")
            try:
                handler(code, groups[code], p)
                if p.state != PassState.DONE:
                    p.advance(PassState.DONE)
            except InvalidPassTransition:
                raise
            except Exception as e:
                p.fail(str(e))
                log.exception(
                    "property pass failed",
                    extra={"property_code": code, "report_type": report_type},
                )
                self.skip(code, "", f"Property Batch Failed: {report_type}: {e}")

    # -----------------------------
    # driver
    # -----------------------------
    def run(self, batch_id: str) -> RunOutcome:
        self.tracker.reset()
        self.skipped_rows.clear()
        self.passes.clear()
        self._units.clear()
        self._reported.clear()

        self.set_status(f"Starting solver run for batch {batch_id}")
        run_id = start_run(self.storage, batch_id)
        token = run_id_ctx.set(run_id)
        try:
            groups = self._load_batch(batch_id)
            properties = self._process(groups)

            self.set_status("Saving run summary")
            complete_run(self.storage, run_id, self.tracker, properties)
            self.set_status(
                f"Completed: {len(properties)} properties, {len(self.tracker.events)} events, "
                f"{len(self.skipped_rows)} skipped rows"
            )
            if self.notifier is not None:
                try:
                    self.notifier(run_id)
                except Exception:
                    log.exception("run completion trigger failed")
            return RunOutcome(run_id, batch_id, COMPLETED, self.status_message, list(self.skipped_rows))
        except Exception as e:
            log.exception("solver run failed", extra={"batch_id": batch_id})
            fail_run(self.storage, run_id, str(e))
            self.status_message = f"Failed: {e}"
            return RunOutcome(run_id, batch_id, FAILED, self.status_message, list(self.skipped_rows), str(e))
        finally:
            run_id_ctx.reset(token)

    def _load_batch(self, batch_id: str) -> dict[str, dict[str, list[Any]]]:
        self.set_status("Fetching import batch")
        res = self.storage.select("import_staging", {"batch_id": batch_id})
        if not res.ok:
            raise RunFailed(f"cannot fetch batch {batch_id}: {res.error}")
        if not res.rows:
            raise RunFailed(f"batch {batch_id} has no staged rows")

        groups: dict[str, dict[str, list[Any]]] = {rt: {} for rt in REPORT_TYPES}
        for staged in res.rows:
            report_type = staged.get("report_type")
            raw = dict(staged.get("raw_data") or {})
            raw["report_type"] = report_type
            if not raw.get("property_code") and staged.get("property_code"):
                raw["property_code"] = staged["property_code"]
            try:
                row = validate_row(raw)
            except RowValidationError as e:
                code = str(raw.get("property_code") or "")
                if report_type == "residents_status":
                    self.note_reported(code, raw.get("tenancy_id"))
                self.skip(code, str(raw.get("unit_name") or ""), str(e))
                continue

            code = self._group_code(row)
            groups[row.report_type].setdefault(code, []).append(row)
        return groups

    @staticmethod
    def _group_code(row: Any) -> str:
        if row.report_type == "transfers":
            return str(row.from_property_code or row.property_code or "").upper()
        return row.property_code

    def _process(self, groups: dict[str, dict[str, list[Any]]]) -> list[str]:
        seen: set[str] = set()
        for by_property in groups.values():
            seen.update(c for c in by_property if c)

        self.for_each_property("residents_status", groups["residents_status"], self._sync_residents)
        self.for_each_property("expiring_leases", groups["expiring_leases"], self._sync_leases)
        self.for_each_property("availables", groups["availables"], self._sync_availabilities)

        self.set_status("Sweeping stale availabilities")
        self.for_each_property("stale_availability", {STALE_UPDATE: []}, self._sweep_stale_availabilities)

        self.for_each_property("notices", groups["notices"], self._sync_notices)
        self.for_each_property("applications", groups["applications"], lambda c, r, p: operations_sync.sync_applications(self, c, r, p))
        self.for_each_property("transfers", groups["transfers"], lambda c, r, p: operations_sync.sync_transfers(self, c, r, p))
        self.for_each_property("work_orders", groups["work_orders"], lambda c, r, p: operations_sync.sync_work_orders(self, c, r, p))
        self.for_each_property("alerts", groups["alerts"], lambda c, r, p: operations_sync.sync_alerts(self, c, r, p))
        self.for_each_property("delinquencies", groups["delinquencies"], lambda c, r, p: operations_sync.sync_delinquencies(self, c, r, p))

        self.set_status("Running overdue sweeps")
        everywhere = {c: [] for c in sorted(seen)}
        applications = {c: groups["applications"].get(c, []) for c in sorted(seen)}
        self.for_each_property("moveout_overdue", everywhere, lambda c, r, p: flag_sweeps.sweep_moveout_overdue(self, c, p))
        self.for_each_property("make_ready", groups["make_ready"], lambda c, r, p: flag_sweeps.sweep_makeready_overdue(self, c, r, p))
        self.for_each_property("application_overdue", applications, lambda c, r, p: flag_sweeps.sweep_application_overdue(self, c, r, p))

        return sorted(seen | set(self.tracker.summaries))

    # -----------------------------
    # residents_status: tenancies + residents
    # -----------------------------
    def _sync_residents(self, code: str, rows: list[Any], p: ReportPass) -> None:
        p.advance(PassState.FETCHING)
        units = self.units(code)
        existing = {t["id"]: t for t in self.select("tenancies", {"property_code": code})}
        residents = self.select("residents", {"property_code": code})

        p.advance(PassState.DIFFING)
        incoming: dict[str, dict[str, Any]] = {}
        people: list[tuple[Any, str, int]] = []
        for row in rows:
            unit_id = units.get(row.unit_name)
            if unit_id is None:
                self.note_reported(code, row.tenancy_id)
                self.skip(code, row.unit_name, f"Unit not found: {code} {row.unit_name}")
                continue
            role = household_role(row.type, row.status)
            people.append((row, role, unit_id))
            if role != "Primary":
                continue

            t = incoming.get(row.tenancy_id)
            if t is None:
                t = {"unit_name": row.unit_name, "resident": row.resident, "rent": row.rent}
                incoming[row.tenancy_id] = t
            t["unit_id"] = unit_id
            t["status"] = map_tenancy_status(row.status)
            # later rows win, but never blank out a date an earlier row had
            if row.move_in_date is not None:
                t["move_in_date"] = row.move_in_date
            if row.move_out_date is not None:
                t["move_out_date"] = row.move_out_date

        now = datetime.utcnow()
        to_insert: list[dict[str, Any]] = []
        to_update: list[tuple[str, dict[str, Any]]] = []
        for tid, t in incoming.items():
            status: TenancyStatus = t["status"]
            if status == TenancyStatus.CURRENT and t.get("move_in_date") is None:
                self.skip(code, t["unit_name"], f"Current tenancy {tid} has no move-in date")
            row = {
                "unit_id": t["unit_id"],
                "status": status.value,
                "move_in_date": dates.to_iso(t.get("move_in_date")),
                "move_out_date": dates.to_iso(t.get("move_out_date")),
            }
            cur = existing.get(tid)
            if cur is None:
                to_insert.append({"id": tid, "property_code": code, **row, "updated_at": now})
                self.tracker.track_new_tenancy(
                    code,
                    {
                        "tenancy_id": tid,
                        "unit_id": t["unit_id"],
                        "unit_name": t["unit_name"],
                        "resident_name": t["resident"],
                        "status": status.value,
                        "move_in_date": row["move_in_date"],
                    },
                )
                continue
            if cur.get("status") == TenancyStatus.APPLICANT.value and status == TenancyStatus.FUTURE:
                self.tracker.track_new_lease_signed(
                    code,
                    {
                        "tenancy_id": tid,
                        "unit_id": t["unit_id"],
                        "unit_name": t["unit_name"],
                        "resident_name": t["resident"],
                        "previous_status": cur.get("status"),
                        "move_in_date": row["move_in_date"],
                        "rent_amount": t.get("rent"),
                    },
                )
            patch = {k: v for k, v in row.items() if v is not None}
            if _changed(cur, patch):
                to_update.append((tid, {**patch, "updated_at": now}))

        live = [
            TenancyRef.from_row(t)
            for t in existing.values()
            if t.get("status") in {s.value for s in LIVE_STATUSES}
        ]
        missing = classify_missing(set(incoming) | self._reported.get(code, set()), live)
        for ref in missing.missing:
            if ref.id not in missing.to_past_ids and ref.id not in missing.to_canceled_ids:
                log.info("tenancy %s missing from report with status %s; left as is", ref.id, ref.status.value)

        fell_through = [
            tid
            for tid, patch in to_update
            if patch.get("status") in (TenancyStatus.DENIED.value, TenancyStatus.CANCELED.value)
        ]

        resident_rows, resident_updates = self._diff_residents(code, people, residents, incoming, existing)

        p.advance(PassState.APPLYING)
        self.insert("tenancies", to_insert)
        for tid, patch in to_update:
            self.update("tenancies", {"id": tid}, patch)
        if missing.to_past_ids:
            self.update("tenancies", {"id": missing.to_past_ids}, {"status": TenancyStatus.PAST.value, "updated_at": now})
        if missing.to_canceled_ids:
            self.update(
                "tenancies", {"id": missing.to_canceled_ids}, {"status": TenancyStatus.CANCELED.value, "updated_at": now}
            )

        canceled = derive_availability_status(TenancyRef(id="", status=TenancyStatus.CANCELED)).patch()
        if missing.availability_reset_unit_ids:
            self.update(
                "availabilities",
                {"unit_id": missing.availability_reset_unit_ids, "is_active": True},
                {**canceled, "updated_at": now},
            )
        if fell_through:
            self.update(
                "availabilities",
                {"future_tenancy_id": fell_through, "is_active": True},
                {**canceled, "updated_at": now},
            )

        self.insert("residents", resident_rows)
        for rid, patch in resident_updates:
            self.update("residents", {"id": rid}, patch)

        self.tracker.track_tenancy_updates(
            code, len(to_update) + len(missing.to_past_ids) + len(missing.to_canceled_ids)
        )
        self.tracker.track_resident_updates(code, len(resident_updates))

    def _diff_residents(
        self,
        code: str,
        people: list[tuple[Any, str, int]],
        residents: list[dict[str, Any]],
        incoming: dict[str, dict[str, Any]],
        existing: dict[str, dict[str, Any]],
    ) -> tuple[list[dict[str, Any]], list[tuple[int, dict[str, Any]]]]:
        by_key = {(r["tenancy_id"], str(r["name"]).strip().lower()): r for r in residents}
        inserts: list[dict[str, Any]] = []
        updates: list[tuple[int, dict[str, Any]]] = []
        seen: set[tuple[str, str]] = set()

        for row, role, _unit_id in people:
            if row.tenancy_id not in incoming and row.tenancy_id not in existing:
                self.skip(code, row.unit_name, f"No primary resident for tenancy {row.tenancy_id}")
                continue
            key = (row.tenancy_id, row.resident.strip().lower())
            if key in seen:
                continue
            seen.add(key)

            data = {"role": role, "email": row.email, "phone": row.phone, "is_active": True}
            cur = by_key.get(key)
            if cur is None:
                inserts.append({"tenancy_id": row.tenancy_id, "property_code": code, "name": row.resident, **data})
                self.tracker.track_new_resident(
                    code,
                    {
                        "tenancy_id": row.tenancy_id,
                        "resident_name": row.resident,
                        "unit_name": row.unit_name,
                        "role": role,
                    },
                )
            elif _changed(cur, data):
                updates.append((int(cur["id"]), data))
        return inserts, updates

    # -----------------------------
    # expiring_leases
    # -----------------------------
    def _sync_leases(self, code: str, rows: list[Any], p: ReportPass) -> None:
        p.advance(PassState.FETCHING)
        latest: dict[str, Any] = {}
        for row in rows:
            latest[row.tenancy_code] = row  # last one wins
        ids = list(latest)
        tenancies = {t["id"]: t for t in self.select("tenancies", {"id": ids})}
        active = self.select("leases", {"tenancy_id": ids, "is_active": True})

        p.advance(PassState.DIFFING)
        by_tenancy: dict[str, dict[str, Any]] = {}
        extras: list[int] = []
        for lease in sorted(active, key=lambda r: r["id"]):
            prev = by_tenancy.get(lease["tenancy_id"])
            if prev is not None:
                extras.append(prev["id"])
            by_tenancy[lease["tenancy_id"]] = lease

        inserts: list[dict[str, Any]] = []
        updates: list[tuple[int, dict[str, Any]]] = []
        renewals: list[tuple[Any, Any]] = []
        for tid, row in latest.items():
            if tid not in tenancies:
                self.skip(code, row.unit_name, f"Lease for unknown tenancy {tid}")
                continue
            incoming = IncomingLease(
                tenancy_id=tid,
                property_code=code,
                start_date=row.lease_start_date,
                end_date=row.lease_end_date,
                rent_amount=row.lease_rent,
                deposit_amount=row.deposit,
                status=lease_status_from_text(row.status),
            )
            existing = by_tenancy.get(tid)
            plan = plan_lease(incoming, existing)
            if plan.kind == "insert":
                inserts.append(plan.insert_row)
            elif plan.kind == "update":
                if _changed(existing, plan.patch):
                    updates.append((plan.existing_id, plan.patch))
            else:
                renewals.append((row, plan))

        p.advance(PassState.APPLYING)
        if extras:
            # more than one active lease per tenancy: keep the newest
            self.update("leases", {"id": extras}, retired_lease_patch())
        self.insert("leases", inserts)
        for lease_id, patch in updates:
            self.update("leases", {"id": lease_id}, patch)
        for row, plan in renewals:
            self.update("leases", {"id": plan.existing_id}, plan.patch)
            self.insert("leases", [plan.insert_row])
            self.tracker.track_lease_renewal(
                code,
                {
                    "tenancy_id": row.tenancy_code,
                    "resident_name": row.resident,
                    "unit_name": row.unit_name,
                    **(plan.renewal_details or {}),
                },
            )
        self.tracker.track_lease_changes(code, len(inserts), len(updates))

    # -----------------------------
    # availables
    # -----------------------------
    def _governing_tenancies(self, filters: dict[str, Any]) -> dict[int, TenancyRef]:
        rows = self.select(
            "tenancies",
            {
                **filters,
                "status": [TenancyStatus.CURRENT.value, TenancyStatus.FUTURE.value, TenancyStatus.APPLICANT.value],
            },
        )
        return build_tenancy_priority_map(TenancyRef.from_row(t) for t in rows)

    def _sync_availabilities(self, code: str, rows: list[Any], p: ReportPass) -> None:
        p.advance(PassState.FETCHING)
        units = self.units(code)
        current = {a["unit_id"]: a for a in self.select("availabilities", {"property_code": code, "is_active": True})}
        governing = self._governing_tenancies({"property_code": code})

        p.advance(PassState.DIFFING)
        latest: dict[int, Any] = {}
        for row in rows:
            unit_id = units.get(row.unit_name)
            if unit_id is None:
                self.skip(code, row.unit_name, f"Unit not found: {code} {row.unit_name}")
                continue
            latest[unit_id] = row

        now = datetime.utcnow()
        inserts: list[dict[str, Any]] = []
        updates: list[tuple[int, dict[str, Any]]] = []
        for unit_id, row in latest.items():
            decision = derive_availability_status(governing.get(unit_id))
            data = {
                "property_code": code,
                "unit_name": row.unit_name,
                "available_date": dates.to_iso(row.available_date),
                "move_out_date": dates.to_iso(row.move_out_date),
                "rent_offered": row.offered_rent,
                "amenities": {"raw": row.amenities} if row.amenities else None,
                **decision.patch(),
            }
            cur = current.get(unit_id)
            if cur is None:
                inserts.append({"unit_id": unit_id, **data, "updated_at": now})
                continue

            change = price_change_details(row.unit_name, unit_id, cur.get("rent_offered"), row.offered_rent)
            if change is not None:
                self.tracker.track_price_change(code, change)
            cmp = {k: v for k, v in data.items() if k != "amenities"}
            if _changed(cur, cmp) or (cur.get("amenities") or None) != data["amenities"]:
                updates.append((int(cur["id"]), {**data, "updated_at": now}))

        p.advance(PassState.APPLYING)
        self.insert("availabilities", inserts)
        for av_id, patch in updates:
            self.update("availabilities", {"id": av_id}, patch)
        self.tracker.track_availability_changes(code, len(inserts), len(updates))

    def _sweep_stale_availabilities(self, code: str, _rows: list[Any], p: ReportPass) -> None:
        p.advance(PassState.FETCHING)
        active = self.select("availabilities", {"is_active": True})
        governing = self._governing_tenancies({})

        p.advance(PassState.DIFFING)
        plan = classify_stale_availabilities(active, governing)
        if not plan.total:
            return

        p.advance(PassState.APPLYING)
        now = datetime.utcnow()
        occupied = derive_availability_status(TenancyRef(id="", status=TenancyStatus.CURRENT)).patch()
        if plan.to_deactivate:
            self.update("availabilities", {"id": plan.to_deactivate}, {**occupied, "updated_at": now})
        for av_id, patch in plan.to_update:
            self.update("availabilities", {"id": av_id}, {**patch, "updated_at": now})
        self.tracker.track_availability_changes(code, 0, plan.total)
        log.info("stale availability sweep updated %s rows", plan.total)

    # -----------------------------
    # notices
    # -----------------------------
    def _sync_notices(self, code: str, rows: list[Any], p: ReportPass) -> None:
        p.advance(PassState.FETCHING)
        units = self.units(code)
        live = self.select("tenancies", {"property_code": code, "status": [s.value for s in LIVE_STATUSES]})
        availabilities = {
            a["unit_id"]: a for a in self.select("availabilities", {"property_code": code, "is_active": True})
        }

        p.advance(PassState.DIFFING)
        by_unit: dict[int, list[TenancyRef]] = {}
        for t in live:
            ref = TenancyRef.from_row(t)
            if ref.unit_id is not None:
                by_unit.setdefault(ref.unit_id, []).append(ref)
        stored = {t["id"]: t for t in live}

        now = datetime.utcnow()
        tenancy_patches: list[tuple[str, dict[str, Any]]] = []
        availability_patches: list[tuple[int, dict[str, Any]]] = []
        for row in rows:
            unit_id = units.get(row.unit_name)
            if unit_id is None:
                self.skip(code, row.unit_name, f"Unit not found: {code} {row.unit_name}")
                continue
            candidates = by_unit.get(unit_id) or []
            if not candidates:
                self.skip(code, row.unit_name, f"No live tenancy for notice on {row.unit_name}")
                continue
            ref = max(candidates, key=lambda r: _NOTICE_PREFERENCE.get(r.status, 0))
            cur = stored[ref.id]
            move_out = dates.to_iso(row.move_out_date) or cur.get("move_out_date")

            status_change = None
            if ref.status != TenancyStatus.NOTICE:
                status_change = f"{ref.status.value} → Notice"
                log.warning(
                    "Auto-fixed status for %s: %s",
                    row.unit_name,
                    status_change,
                    extra={"property_code": code, "unit_name": row.unit_name},
                )
                self.tracker.track_status_auto_fix(code, row.unit_name, status_change)
            elif move_out == cur.get("move_out_date"):
                continue

            tenancy_patches.append((ref.id, {"status": TenancyStatus.NOTICE.value, "move_out_date": move_out, "updated_at": now}))

            av = availabilities.get(unit_id)
            if av is not None:
                others = [r for r in candidates if r.id != ref.id]
                decision = derive_availability_status(build_tenancy_priority_map(others).get(unit_id))
                availability_patches.append((int(av["id"]), {**decision.patch(), "move_out_date": move_out, "updated_at": now}))

            self.tracker.track_notice(
                code,
                {
                    "tenancy_id": ref.id,
                    "unit_id": unit_id,
                    "unit_name": row.unit_name,
                    "resident_name": row.resident,
                    "move_out_date": move_out,
                    "status_change": status_change,
                },
            )

        p.advance(PassState.APPLYING)
        for tid, patch in tenancy_patches:
            self.update("tenancies", {"id": tid}, patch)
        for av_id, patch in availability_patches:
            self.update("availabilities", {"id": av_id}, patch)
        self.tracker.track_tenancy_updates(code, len(tenancy_patches))


def run_batch(
    storage: Storage,
    batch_id: str,
    *,
    today: Optional[date] = None,
    notifier: Optional[Callable[[int], Any]] = None,
) -> tuple[RunOutcome, EventTracker]:
    """Convenience wrapper: fresh tracker, one run."""
    tracker = EventTracker()
    engine = SolverEngine(storage, tracker, today=today, notifier=notifier)
    outcome = engine.run(batch_id)
    return outcome, tracker
