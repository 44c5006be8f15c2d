# tests/test_status.py
from __future__ import annotations

import pytest

from rentroll_sync.domain.status import (
    APPLICANT_FIELDS,
    AvailabilityStatus,
    TenancyRef,
    TenancyStatus,
    derive_availability_status,
    map_tenancy_status,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Current", TenancyStatus.CURRENT),
        ("current resident", TenancyStatus.CURRENT),
        ("PAST", TenancyStatus.PAST),
        ("Future", TenancyStatus.FUTURE),
        ("Notice", TenancyStatus.NOTICE),
        ("Eviction filed", TenancyStatus.EVICTION),
        ("Applicant", TenancyStatus.APPLICANT),
        ("Denied", TenancyStatus.DENIED),
        ("Cancelled", TenancyStatus.CANCELED),
        ("Canceled", TenancyStatus.CANCELED),
    ],
)
def test_map_tenancy_status_keywords(raw, expected):
    assert map_tenancy_status(raw) == expected


def test_first_keyword_wins():
    # "past" is checked before "notice"
    assert map_tenancy_status("Past Notice") == TenancyStatus.PAST
    assert map_tenancy_status("Current - Notice pending") == TenancyStatus.CURRENT


@pytest.mark.parametrize("raw", [None, "", "weird"])
def test_unknown_status_defaults_to_current(raw):
    assert map_tenancy_status(raw) == TenancyStatus.CURRENT


def test_derive_availability_status_table():
    d = derive_availability_status(None)
    assert (d.status, d.is_active, d.should_clear_applicant_fields, d.future_tenancy_id) == (
        AvailabilityStatus.AVAILABLE,
        True,
        False,
        None,
    )

    d = derive_availability_status(TenancyRef("t1", TenancyStatus.CURRENT))
    assert d.status == AvailabilityStatus.OCCUPIED and d.is_active is False

    d = derive_availability_status(TenancyRef("t2", TenancyStatus.FUTURE))
    assert d.status == AvailabilityStatus.LEASED and d.future_tenancy_id == "t2"

    d = derive_availability_status(TenancyRef("t3", TenancyStatus.APPLICANT))
    assert d.status == AvailabilityStatus.APPLIED and d.future_tenancy_id == "t3"

    for st in (TenancyStatus.DENIED, TenancyStatus.CANCELED):
        d = derive_availability_status(TenancyRef("t4", st))
        assert d.status == AvailabilityStatus.AVAILABLE
        assert d.is_active is True
        assert d.should_clear_applicant_fields is True
        assert d.future_tenancy_id is None

    for st in (TenancyStatus.NOTICE, TenancyStatus.EVICTION, TenancyStatus.PAST):
        assert derive_availability_status(TenancyRef("t5", st)) == derive_availability_status(None)


def test_decision_patch_clears_applicant_fields():
    patch = derive_availability_status(TenancyRef("t", TenancyStatus.CANCELED)).patch()
    assert patch["status"] == "Available"
    for f in APPLICANT_FIELDS:
        assert f in patch and patch[f] is None

    patch = derive_availability_status(TenancyRef("t9", TenancyStatus.FUTURE)).patch()
    assert patch == {"status": "Leased", "is_active": True, "future_tenancy_id": "t9"}


def test_tenancy_ref_from_row_coerces_status():
    ref = TenancyRef.from_row({"id": "t1", "status": "Notice", "unit_id": 4})
    assert ref == TenancyRef("t1", TenancyStatus.NOTICE, 4)
    assert TenancyRef.from_row({"id": "t2", "status": "past due"}).status == TenancyStatus.PAST
