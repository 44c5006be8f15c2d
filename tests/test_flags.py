# tests/test_flags.py
from __future__ import annotations

import json
from datetime import date

from rentroll_sync.domain.flags import (
    APPLICATION_OVERDUE,
    MAKEREADY_OVERDUE,
    TRANSFER_ACTIVE,
    FlagSpec,
    application_overdue,
    cleared_flag_ids,
    dedupe_new_flags,
    makeready_overdue,
    moveout_overdue,
    transfer_flags,
)

TODAY = date(2026, 3, 10)


def _mr(day: date):
    return makeready_overdue(
        unit_id=1,
        property_code="SB",
        unit_name="101",
        make_ready_date=day.isoformat(),
        today=TODAY,
        cushion_days=1,
        error_days=7,
    )


def test_makeready_cushion_and_severity():
    assert _mr(date(2026, 3, 9)) is None  # 1 day: within cushion
    f = _mr(date(2026, 3, 8))
    assert f.flag_type == MAKEREADY_OVERDUE
    assert f.severity == "warning"
    assert f.title == "MakeReady Overdue"
    assert f.message == "Unit 101 makeready was due on 03/08/2026"
    assert _mr(date(2026, 3, 3)).severity == "warning"  # 7 days
    assert _mr(date(2026, 3, 2)).severity == "error"  # 8 days


def test_application_overdue_only_when_unscreened():
    kw = dict(unit_id=2, property_code="SB", unit_name="102", applicant_name="Ann", today=TODAY, overdue_days=7, error_days=14)
    assert application_overdue(application_date="2026-03-03", screening_result=None, **kw) is None
    f = application_overdue(application_date="2026-03-02", screening_result=None, **kw)
    assert f.flag_type == APPLICATION_OVERDUE and f.severity == "warning"
    assert application_overdue(application_date="2026-02-20", screening_result="", **kw).severity == "error"
    assert application_overdue(application_date="2026-02-20", screening_result="Approved", **kw) is None
    assert application_overdue(application_date=None, screening_result=None, **kw) is None


def test_moveout_overdue():
    kw = dict(unit_id=3, property_code="SB", unit_name="103", tenancy_id="t3", today=TODAY, error_days=7)
    assert moveout_overdue(move_out_date="2026-03-10", **kw) is None
    f = moveout_overdue(move_out_date="2026-03-01", **kw)
    assert f.severity == "error"
    assert f.metadata["days_overdue"] == 9
    assert f.metadata["tenancy_id"] == "t3"


def test_transfer_flags_pair():
    out_flag, in_flag = transfer_flags(
        resident="Bo",
        from_unit_id=1,
        from_property_code="SB",
        from_unit_name="101",
        to_unit_id=9,
        to_property_code="RS",
        to_unit_name="A1",
    )
    assert out_flag.flag_type == in_flag.flag_type == TRANSFER_ACTIVE
    assert (out_flag.unit_id, out_flag.property_code, out_flag.metadata["direction"]) == (1, "SB", "out")
    assert (in_flag.unit_id, in_flag.property_code, in_flag.metadata["direction"]) == (9, "RS", "in")
    assert out_flag.severity == "info"


def test_dedupe_against_open_and_within_batch():
    a = _mr(date(2026, 3, 1))
    b = FlagSpec(unit_id=2, property_code="SB", flag_type=MAKEREADY_OVERDUE, severity="warning", title="t", message="m")
    c = FlagSpec(unit_id=2, property_code="SB", flag_type=MAKEREADY_OVERDUE, severity="error", title="t", message="m2")
    out = dedupe_new_flags([a, b, c], {(1, MAKEREADY_OVERDUE)})
    assert out == [b]


def test_cleared_flag_ids():
    open_flags = [{"id": 1, "unit_id": 10}, {"id": 2, "unit_id": 11}]
    assert cleared_flag_ids(open_flags, {10}) == [2]


def test_flag_row_serializes_metadata():
    row = _mr(date(2026, 3, 1)).row()
    assert json.loads(row["metadata_json"])["days_overdue"] == 9
    assert row["created_at"] is not None
