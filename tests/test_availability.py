# tests/test_availability.py
from __future__ import annotations

from rentroll_sync.domain.availability import (
    build_tenancy_priority_map,
    classify_stale_availabilities,
    is_marketed,
    price_change_details,
)
from rentroll_sync.domain.status import TenancyRef, TenancyStatus


def test_priority_map_prefers_current_then_future_then_applicant():
    refs = [
        TenancyRef("a1", TenancyStatus.APPLICANT, 1),
        TenancyRef("f1", TenancyStatus.FUTURE, 1),
        TenancyRef("c1", TenancyStatus.CURRENT, 1),
        TenancyRef("a2", TenancyStatus.APPLICANT, 2),
        TenancyRef("f2", TenancyStatus.FUTURE, 2),
        TenancyRef("n3", TenancyStatus.NOTICE, 3),
        TenancyRef("x", TenancyStatus.CURRENT, None),
    ]
    m = build_tenancy_priority_map(refs)
    assert m[1].id == "c1"
    assert m[2].id == "f2"
    assert 3 not in m
    assert set(m) == {1, 2}


def test_priority_map_ties_keep_first():
    m = build_tenancy_priority_map([TenancyRef("f1", TenancyStatus.FUTURE, 5), TenancyRef("f2", TenancyStatus.FUTURE, 5)])
    assert m[5].id == "f1"


def test_stale_sweep_plan():
    availabilities = [
        {"id": 10, "unit_id": 1, "status": "Available"},
        {"id": 11, "unit_id": 2, "status": "Available"},
        {"id": 12, "unit_id": 3, "status": "Leased"},
        {"id": 13, "unit_id": 4, "status": "Available"},
    ]
    governing = {
        1: TenancyRef("c", TenancyStatus.CURRENT, 1),
        2: TenancyRef("f", TenancyStatus.FUTURE, 2),
        3: TenancyRef("f3", TenancyStatus.FUTURE, 3),
    }
    plan = classify_stale_availabilities(availabilities, governing)
    assert plan.to_deactivate == [10]
    assert plan.to_update == [(11, {"status": "Leased", "is_active": True, "future_tenancy_id": "f"})]
    assert plan.total == 2


def test_price_change_details():
    d = price_change_details("101", 1, 1500, 1550)
    assert d == {
        "unit_name": "101",
        "unit_id": 1,
        "old_rent": 1500.0,
        "new_rent": 1550.0,
        "change_amount": 50.0,
        "change_percent": 3.33,
    }
    assert price_change_details("101", 1, 1500, 1500) is None
    assert price_change_details("101", 1, 1500, 0) is None
    assert price_change_details("101", 1, None, 1500) is None
    assert price_change_details("101", 1, 0, 1500)["change_percent"] == 0.0


def test_is_marketed():
    assert is_marketed("Applied") and is_marketed("Leased")
    assert not is_marketed("Available") and not is_marketed(None)
