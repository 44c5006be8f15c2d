# tests/test_missing.py
from __future__ import annotations

from rentroll_sync.domain.missing import classify_missing
from rentroll_sync.domain.status import TenancyRef, TenancyStatus


def test_classify_missing_splits_by_status():
    active = [
        TenancyRef("cur", TenancyStatus.CURRENT, 1),
        TenancyRef("ntc", TenancyStatus.NOTICE, 2),
        TenancyRef("app", TenancyStatus.APPLICANT, 3),
        TenancyRef("fut", TenancyStatus.FUTURE, 4),
        TenancyRef("evc", TenancyStatus.EVICTION, 5),
        TenancyRef("seen", TenancyStatus.CURRENT, 6),
    ]
    out = classify_missing(["seen"], active)

    assert [m.id for m in out.missing] == ["cur", "ntc", "app", "fut", "evc"]
    assert out.to_past_ids == ["cur", "ntc"]
    assert out.to_canceled_ids == ["app", "fut"]
    assert out.availability_reset_unit_ids == [3, 4]


def test_reported_tenancies_are_never_missing():
    active = [{"id": "t1", "status": "Current", "unit_id": 1}, {"id": "t2", "status": "Applicant", "unit_id": 1}]
    out = classify_missing(["t1", "t2"], active)
    assert out.as_dict() == {"missing": [], "to_past_ids": [], "to_canceled_ids": [], "availability_reset_unit_ids": []}


def test_availability_reset_units_are_unique():
    active = [
        {"id": "a", "status": "Applicant", "unit_id": 9},
        {"id": "b", "status": "Future", "unit_id": 9},
        {"id": "c", "status": "Applicant", "unit_id": None},
    ]
    out = classify_missing([], active)
    assert out.to_canceled_ids == ["a", "b", "c"]
    assert out.availability_reset_unit_ids == [9]
