# tests/test_solver_engine.py
from __future__ import annotations

from datetime import date

import pytest

from rentroll_sync.domain.tracking import (
    APPLICATION_SAVED,
    LEASE_RENEWAL,
    LEASE_SIGNED,
    NOTICE_GIVEN,
    PRICE_CHANGE,
    STALE_UPDATE,
)
from rentroll_sync.errors import RowValidationError
from rentroll_sync.services.passes import PassState
from rentroll_sync.services.run_reports import load_operational_summary, markdown_for_run
from rentroll_sync.services.solver_engine import SolverEngine, household_role, run_batch, validate_row
from rentroll_sync.services.storage import SqlAlchemyStorage, StorageResult

TODAY = date(2026, 3, 10)


def _resident(unit: str, tenancy: str, name: str, status: str = "Current", **extra) -> dict:
    row = {
        "property_code": "SB",
        "unit_name": unit,
        "tenancy_id": tenancy,
        "resident": name,
        "status": status,
        "move_in_date": "3/1/2025",
        "rent": "$1,800.00",
    }
    row.update(extra)
    return row


def test_household_role():
    assert household_role("Roommate", None) == "Roommate"
    assert household_role(None, "Occupant - Current") == "Occupant"
    assert household_role("Guarantor", "") == "Guarantor"
    assert household_role("Resident", "Current") == "Primary"


def test_validate_row_names_the_bad_field():
    row = validate_row({"report_type": "notices", "property_code": " sb ", "unit_name": "101", "move_out_date": "4/1/2026"})
    assert (row.property_code, row.move_out_date) == ("SB", date(2026, 4, 1))

    with pytest.raises(RowValidationError) as ei:
        validate_row({"report_type": "notices", "property_code": "SB", "unit_name": "101", "move_out_date": "someday"})
    assert str(ei.value).startswith("Invalid notices row: move_out_date")


def test_new_tenancy_lease_and_resident_are_created(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe"), _resident("101", "t1", "Jim Roe", type="Roommate")])
    stage(
        "b1",
        "expiring_leases",
        [{"property_code": "SB", "unit_name": "101", "tenancy_code": "t1", "resident": "Jane Roe",
          "lease_start_date": "3/1/2025", "lease_end_date": "2/28/2026", "lease_rent": "1700", "deposit": "500"}],
    )

    outcome, tracker = run_batch(storage, "b1", today=TODAY)

    assert outcome.status == "completed"
    assert outcome.skipped == []
    t = storage.select("tenancies", {"id": "t1"}).rows[0]
    assert (t["status"], t["unit_id"], t["move_in_date"]) == ("Current", units[("SB", "101")], "2025-03-01")
    residents = storage.select("residents", {"tenancy_id": "t1"}).rows
    assert sorted((r["name"], r["role"]) for r in residents) == [("Jane Roe", "Primary"), ("Jim Roe", "Roommate")]
    lease = storage.select("leases", {"tenancy_id": "t1"}).rows[0]
    assert (lease["start_date"], lease["rent_amount"], lease["deposit_amount"], lease["is_active"]) == (
        "2025-03-01",
        1700.0,
        500.0,
        True,
    )

    s = tracker.summaries["SB"]
    assert (s.tenancies_new, s.residents_new, s.leases_new) == (1, 2, 1)

    run = storage.select("solver_runs", {"id": outcome.run_id}).rows[0]
    assert run["status"] == "completed"
    assert run["properties_processed"] == ["SB"]
    assert run["summary"]["SB"]["tenancies_new"] == 1
    assert len(storage.select("solver_events", {"solver_run_id": outcome.run_id}).rows) == len(tracker.events)


def test_back_to_back_renewal_emits_one_event(storage, units, stage):
    lease = {"property_code": "SB", "unit_name": "101", "tenancy_code": "t1", "resident": "Jane Roe"}
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe")])
    stage("b1", "expiring_leases", [{**lease, "lease_start_date": "3/1/2025", "lease_end_date": "2/28/2026", "lease_rent": 1700, "deposit": 500}])
    run_batch(storage, "b1", today=TODAY)

    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    stage("b2", "expiring_leases", [{**lease, "lease_start_date": "3/1/2026", "lease_end_date": "2/28/2027", "lease_rent": 1800}])
    outcome, tracker = run_batch(storage, "b2", today=TODAY)

    renewals = tracker.events_of(LEASE_RENEWAL)
    assert len(renewals) == 1
    assert renewals[0].details["old_lease"]["rent_amount"] == 1700.0
    assert renewals[0].details["new_lease"]["rent_amount"] == 1800.0

    leases = storage.select("leases", {"tenancy_id": "t1"}).rows
    assert [(x["start_date"], x["status"], x["is_active"]) for x in leases] == [
        ("2025-03-01", "Past", False),
        ("2026-03-01", "Current", True),
    ]
    assert leases[1]["deposit_amount"] == 500.0

    _name, md = markdown_for_run(storage, outcome.run_id)
    assert "↑ $100" in md
    assert "- **Lease Renewals:** 1" in md


def test_missing_applicant_is_canceled_and_availability_reset(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe"), _resident("102", "t2", "Ann App", status="Applicant", move_in_date="")])
    stage("b1", "availables", [{"property_code": "SB", "unit_name": "102", "offered_rent": "1500", "available_date": "3/1/2026"}])
    stage(
        "b1",
        "applications",
        [{"property_code": "SB", "unit_name": "102", "applicant": "Ann App", "leasing_agent": "Sam",
          "application_date": "3/5/2026", "screening_result": "Approved"}],
    )
    run_batch(storage, "b1", today=TODAY)
    storage.update("availabilities", {"unit_id": units[("SB", "102")]}, {"move_in_date": "2026-04-01"})

    av = storage.select("availabilities", {"unit_id": units[("SB", "102")]}).rows[0]
    assert (av["status"], av["future_tenancy_id"], av["leasing_agent"]) == ("Applied", "t2", "Sam")
    assert (av["screening_result"], av["move_in_date"]) == ("Approved", "2026-04-01")

    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    outcome, _ = run_batch(storage, "b2", today=TODAY)

    assert outcome.status == "completed"
    assert storage.select("tenancies", {"id": "t2"}).rows[0]["status"] == "Canceled"
    assert storage.select("tenancies", {"id": "t1"}).rows[0]["status"] == "Current"
    av = storage.select("availabilities", {"unit_id": units[("SB", "102")]}).rows[0]
    assert av["status"] == "Available" and av["is_active"] is True
    assert av["future_tenancy_id"] is None and av["leasing_agent"] is None
    assert av["move_in_date"] is None and av["screening_result"] is None


def test_missing_current_tenancy_moves_to_past(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe"), _resident("103", "t3", "Cal Cur")])
    run_batch(storage, "b1", today=TODAY)
    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    _, tracker = run_batch(storage, "b2", today=TODAY)

    assert storage.select("tenancies", {"id": "t3"}).rows[0]["status"] == "Past"
    assert tracker.summaries["SB"].tenancies_updated == 1


def test_skipped_rows_do_not_count_as_missing(storage, units, stage):
    stage("b1", "residents_status", [
        _resident("101", "t1", "Jane Roe"),
        _resident("103", "t3", "Cal Cur"),
        _resident("104", "t4", "Una Unit"),
        _resident("102", "t2", "Ann App", status="Applicant", move_in_date=""),
    ])
    run_batch(storage, "b1", today=TODAY)

    stage("b2", "residents_status", [
        _resident("101", "t1", "Jane Roe"),
        _resident("103", "t3", "Cal Cur", move_out_date="13/45/2026"),
        _resident("0104", "t4", "Una Unit"),
        _resident("102", "t2", "Ann App", status="Applicant", move_in_date="", rent="lots"),
    ])
    outcome, tracker = run_batch(storage, "b2", today=TODAY)

    assert outcome.status == "completed"
    reasons = sorted(s.reason for s in outcome.skipped)
    assert len(reasons) == 3
    assert reasons[0].startswith("Invalid residents_status row: move_out_date")
    assert reasons[1].startswith("Invalid residents_status row: rent")
    assert reasons[2] == "Unit not found: SB 0104"

    statuses = {t["id"]: t["status"] for t in storage.select("tenancies").rows}
    assert statuses == {"t1": "Current", "t2": "Applicant", "t3": "Current", "t4": "Current"}
    assert tracker.summaries["SB"].tenancies_updated == 0


def test_applicant_to_future_is_a_signed_lease(storage, units, stage):
    stage("b1", "residents_status", [_resident("103", "t5", "Fay Fut", status="Applicant")])
    run_batch(storage, "b1", today=TODAY)
    stage("b2", "residents_status", [_resident("103", "t5", "Fay Fut", status="Future", move_in_date="4/1/2026")])
    _, tracker = run_batch(storage, "b2", today=TODAY)

    signed = tracker.events_of(LEASE_SIGNED)
    assert len(signed) == 1
    assert signed[0].details["resident_name"] == "Fay Fut"
    assert signed[0].details["move_in_date"] == "2026-04-01"
    assert storage.select("tenancies", {"id": "t5"}).rows[0]["status"] == "Future"


def test_notice_auto_fixes_current_tenancy(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe")])
    run_batch(storage, "b1", today=TODAY)

    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    stage("b2", "notices", [{"property_code": "SB", "unit_name": "101", "resident": "Jane Roe", "move_out_date": "3/31/2026"}])
    outcome, tracker = run_batch(storage, "b2", today=TODAY)

    t = storage.select("tenancies", {"id": "t1"}).rows[0]
    assert (t["status"], t["move_out_date"]) == ("Notice", "2026-03-31")
    notices = tracker.events_of(NOTICE_GIVEN)
    assert len(notices) == 1 and notices[0].details["status_change"] == "Current → Notice"
    assert tracker.summaries["SB"].status_auto_fixes == ["101: Current → Notice"]

    _name, md = markdown_for_run(storage, outcome.run_id)
    assert "- **Status Auto-Fixes:** 1" in md
    assert "  - 101: Current → Notice" in md


def test_repeated_notice_is_not_reported_twice(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe", status="Notice", move_out_date="3/31/2026")])
    stage("b1", "notices", [{"property_code": "SB", "unit_name": "101", "resident": "Jane Roe", "move_out_date": "3/31/2026"}])
    _, tracker = run_batch(storage, "b1", today=TODAY)
    assert tracker.events_of(NOTICE_GIVEN) == []
    assert tracker.summaries["SB"].status_auto_fixes == []


def test_price_change_and_stale_sweep(storage, units, stage):
    stage("b1", "availables", [
        {"property_code": "SB", "unit_name": "103", "offered_rent": "1500"},
        {"property_code": "SB", "unit_name": "104", "offered_rent": "1400"},
    ])
    run_batch(storage, "b1", today=TODAY)

    stage("b2", "availables", [{"property_code": "SB", "unit_name": "103", "offered_rent": "1550"}])
    stage("b2", "residents_status", [_resident("104", "t7", "Neu Mover")])
    _, tracker = run_batch(storage, "b2", today=TODAY)

    changes = tracker.events_of(PRICE_CHANGE)
    assert len(changes) == 1
    assert (changes[0].details["old_rent"], changes[0].details["new_rent"], changes[0].details["change_amount"]) == (1500.0, 1550.0, 50.0)

    # 104 now has a Current tenancy: its availability is retired by the sweep
    av = storage.select("availabilities", {"unit_id": units[("SB", "104")]}).rows[0]
    assert (av["status"], av["is_active"]) == ("Occupied", False)
    assert tracker.summaries[STALE_UPDATE].availabilities_updated == 1


def test_invalid_rows_are_skipped(storage, units, stage):
    stage("b1", "residents_status", [
        _resident("101", "t1", "Jane Roe"),
        {"property_code": "SB", "unit_name": "102", "resident": "No Id"},
        _resident("999", "t9", "Ghost"),
    ])
    outcome, _ = run_batch(storage, "b1", today=TODAY)

    assert outcome.status == "completed"
    reasons = [s.reason for s in outcome.skipped]
    assert any(r.startswith("Invalid residents_status row: tenancy_id") for r in reasons)
    assert "Unit not found: SB 999" in reasons
    assert len(storage.select("tenancies").rows) == 1


def test_current_without_move_in_is_reported(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe", move_in_date="N/A")])
    outcome, _ = run_batch(storage, "b1", today=TODAY)
    assert [s.as_dict() for s in outcome.skipped] == [
        {"property": "SB", "unit": "101", "reason": "Current tenancy t1 has no move-in date"}
    ]


class _FlakyStorage(SqlAlchemyStorage):
    def select(self, table, filters=None):
        if table == "tenancies" and (filters or {}).get("property_code") == "RS":
            return StorageResult(error="connection reset")
        return super().select(table, filters)


def test_one_property_failing_does_not_stop_the_others(db, units, stage):
    stage("b1", "residents_status", [
        _resident("101", "t1", "Jane Roe"),
        {**_resident("A1", "r1", "Rae Ess"), "property_code": "RS"},
    ])
    storage = _FlakyStorage(db)
    engine = SolverEngine(storage, today=TODAY)
    outcome = engine.run("b1")

    assert outcome.status == "completed"
    failed = [s for s in outcome.skipped if s.reason.startswith("Property Batch Failed: residents_status")]
    assert len(failed) == 1 and failed[0].property_code == "RS"
    assert "connection reset" in failed[0].reason
    assert [t["id"] for t in storage.select("tenancies").rows] == ["t1"]

    states = {(p.report_type, p.property_code): p.state for p in engine.passes}
    assert states[("residents_status", "SB")] == PassState.DONE
    assert states[("residents_status", "RS")] == PassState.FAILED


def test_empty_batch_fails_the_run(storage):
    outcome, tracker = run_batch(storage, "nothing-here", today=TODAY)

    assert outcome.status == "failed"
    assert "no staged rows" in outcome.error_message
    run = storage.select("solver_runs", {"id": outcome.run_id}).rows[0]
    assert run["status"] == "failed"
    assert "no staged rows" in run["error_message"]
    assert run["completed_at"] is not None
    assert tracker.events == []


def test_notifier_receives_run_id(storage, units, stage):
    seen: list[int] = []
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe")])
    outcome, _ = run_batch(storage, "b1", today=TODAY, notifier=seen.append)
    assert seen == [outcome.run_id]


def test_engine_reuse_resets_state(storage, units, stage):
    stage("b1", "residents_status", [_resident("101", "t1", "Jane Roe")])
    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    engine = SolverEngine(storage, today=TODAY)
    engine.run("b1")
    assert len(engine.tracker.events) >= 1
    engine.run("b2")
    assert engine.tracker.events == []


def test_operational_snapshots(storage, units, stage):
    stage("b1", "work_orders", [
        {"property_code": "SB", "unit_name": "101", "yardi_work_order_id": "W1", "status": "Open", "description": "Leak"},
        {"property_code": "SB", "unit_name": "102", "yardi_work_order_id": "W2", "status": "Open"},
    ])
    stage("b1", "alerts", [{"property_code": "SB", "unit_name": "101", "description": "Lease expiring", "resident": "Jane Roe"}])
    stage("b1", "delinquencies", [{"property_code": "SB", "unit_name": "101", "tenancy_id": "t1", "resident": "Jane Roe",
                                   "balance": "$1,200.00", "days_91_plus": "300"}])
    run_batch(storage, "b1", today=TODAY)

    stage("b2", "work_orders", [
        {"property_code": "SB", "unit_name": "101", "yardi_work_order_id": "W1", "status": "In Progress", "description": "Leak"},
    ])
    stage("b2", "alerts", [{"property_code": "SB", "unit_name": "102", "description": "Insurance missing", "resident": "Ann"}])
    stage("b2", "delinquencies", [{"property_code": "SB", "unit_name": "101", "tenancy_id": "t1", "resident": "Jane Roe",
                                   "balance": "800"}])
    run_batch(storage, "b2", today=TODAY)

    wos = {w["yardi_work_order_id"]: w for w in storage.select("work_orders").rows}
    assert (wos["W1"]["status"], wos["W1"]["is_active"]) == ("In Progress", True)
    assert (wos["W2"]["is_active"], wos["W2"]["completion_date"]) == (False, "2026-03-10")

    alerts = {a["description"]: a["is_active"] for a in storage.select("alerts").rows}
    assert alerts == {"Lease expiring": False, "Insurance missing": True}

    d = storage.select("delinquencies").rows
    assert len(d) == 1 and d[0]["balance"] == 800.0 and d[0]["days_91_plus"] == 0.0

    op = load_operational_summary(storage, TODAY)
    assert (op.alerts_active, op.work_orders_open, op.work_orders_completed_today) == (1, 1, 1)
    assert (op.delinquencies_count, op.delinquencies_total, op.delinquencies_over_90) == (1, 800.0, 0)


def test_makeready_flags_are_deduped_and_resolved(storage, units, stage):
    row = {"property_code": "SB", "unit_name": "103", "make_ready_date": "3/1/2026"}
    stage("b1", "make_ready", [row])
    _, t1 = run_batch(storage, "b1", today=TODAY)
    stage("b2", "make_ready", [row])
    _, t2 = run_batch(storage, "b2", today=TODAY)

    flags = storage.select("unit_flags", {"flag_type": "makeready_overdue"}).rows
    assert len(flags) == 1
    assert flags[0]["severity"] == "error"
    assert flags[0]["metadata"]["days_overdue"] == 9
    assert t1.summaries["SB"].makeready_flags == 1
    assert "SB" not in t2.summaries or t2.summaries["SB"].makeready_flags == 0

    stage("b3", "make_ready", [{"property_code": "SB", "unit_name": "104", "make_ready_date": "3/9/2026"}])
    run_batch(storage, "b3", today=TODAY)
    flag = storage.select("unit_flags", {"id": flags[0]["id"]}).rows[0]
    assert flag["resolved_at"] is not None and flag["resolved_by"] == "solver"


def test_transfer_flags_on_both_units(storage, units, stage):
    row = {"resident": "Bo Mover", "from_property_code": "SB", "from_unit_name": "101", "to_property_code": "RS", "to_unit_name": "A1"}
    stage("b1", "transfers", [row])
    _, tracker = run_batch(storage, "b1", today=TODAY)
    stage("b2", "transfers", [row])
    run_batch(storage, "b2", today=TODAY)

    flags = storage.select("unit_flags", {"flag_type": "unit_transfer_active", "resolved_at": None}).rows
    assert sorted((f["property_code"], f["metadata"]["direction"]) for f in flags) == [("RS", "in"), ("SB", "out")]
    assert tracker.summaries["SB"].transfer_flags == 1
    assert tracker.summaries["RS"].transfer_flags == 1


def test_overdue_application_flag(storage, units, stage):
    stage("b1", "applications", [{"property_code": "SB", "unit_name": "102", "applicant": "Ann App", "application_date": "2/20/2026"}])
    _, tracker = run_batch(storage, "b1", today=TODAY)

    flags = storage.select("unit_flags", {"flag_type": "application_overdue"}).rows
    assert len(flags) == 1 and flags[0]["severity"] == "error"
    assert tracker.summaries["SB"].application_flags == 1
    assert tracker.summaries["SB"].applications_saved == 1


def test_application_gone_from_report_resolves_its_flag(storage, units, stage):
    stage("b1", "applications", [{"property_code": "SB", "unit_name": "102", "applicant": "Old App", "application_date": "1/5/2026"}])
    run_batch(storage, "b1", today=TODAY)
    assert len(storage.select("unit_flags", {"flag_type": "application_overdue", "resolved_at": None}).rows) == 1

    stage("b2", "residents_status", [_resident("101", "t1", "Jane Roe")])
    _, tracker = run_batch(storage, "b2", today=TODAY)

    assert storage.select("unit_flags", {"flag_type": "application_overdue", "resolved_at": None}).rows == []
    assert tracker.summaries["SB"].application_flags == 0

    stage("b3", "residents_status", [_resident("101", "t1", "Jane Roe")])
    run_batch(storage, "b3", today=TODAY)
    assert len(storage.select("unit_flags", {"flag_type": "application_overdue"}).rows) == 1


def test_application_listed_twice_is_saved_once(storage, units, stage):
    app = {"property_code": "SB", "unit_name": "102", "applicant": "Ann App", "application_date": "3/5/2026"}
    stage("b1", "applications", [app, dict(app)])
    _, tracker = run_batch(storage, "b1", today=TODAY)

    assert len(tracker.events_of(APPLICATION_SAVED)) == 1
    assert tracker.summaries["SB"].applications_saved == 1
