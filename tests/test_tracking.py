# tests/test_tracking.py
from __future__ import annotations

from rentroll_sync.domain.flags import APPLICATION_OVERDUE, MAKEREADY_OVERDUE, MOVEOUT_OVERDUE, TRANSFER_ACTIVE
from rentroll_sync.domain.tracking import LEASE_RENEWAL, NEW_TENANCY, EventTracker, PropertySummary


def test_trackers_are_isolated_per_run():
    a, b = EventTracker(), EventTracker()
    a.track_new_tenancy("SB", {"tenancy_id": "t1", "unit_id": 1})
    assert len(a.events) == 1
    assert b.events == [] and b.summaries == {}


def test_init_property_is_idempotent():
    t = EventTracker()
    s1 = t.init_property("SB")
    s1.tenancies_new = 4
    assert t.init_property("SB") is s1
    assert t.summaries["SB"].tenancies_new == 4


def test_reset_clears_in_place():
    t = EventTracker()
    events, summaries = t.events, t.summaries
    t.track_lease_renewal("SB", {"tenancy_id": "t1"})
    t.reset()
    assert t.events is events and t.summaries is summaries
    assert events == [] and summaries == {}


def test_event_trackers_bump_counters():
    t = EventTracker()
    t.track_new_tenancy("SB", {"tenancy_id": "t1", "unit_id": 3})
    t.track_lease_renewal("SB", {"tenancy_id": "t1"})
    t.track_lease_changes("SB", 2, 1)
    t.track_availability_changes("RS", 1, 5)
    t.track_status_auto_fix("SB", "101", "Current → Notice")

    s = t.summaries["SB"]
    assert (s.tenancies_new, s.leases_renewed, s.leases_new, s.leases_updated) == (1, 1, 2, 1)
    assert s.status_auto_fixes == ["101: Current → Notice"]
    assert t.summaries["RS"].availabilities_updated == 5

    ev = t.events_of(NEW_TENANCY)[0]
    assert (ev.unit_id, ev.tenancy_id) == (3, "t1")
    assert len(t.events_of(LEASE_RENEWAL, "SB")) == 1
    assert t.events_of(LEASE_RENEWAL, "RS") == []


def test_track_flag_routes_to_buckets():
    t = EventTracker()
    t.track_flag("SB", MAKEREADY_OVERDUE, 2)
    t.track_flag("SB", APPLICATION_OVERDUE)
    t.track_flag("SB", TRANSFER_ACTIVE, 3)
    t.track_flag("SB", MOVEOUT_OVERDUE, 7)
    t.track_flag("RS", "something_else")

    s = t.summaries["SB"]
    assert (s.makeready_flags, s.application_flags, s.transfer_flags) == (2, 1, 3)
    assert "RS" not in t.summaries


def test_summary_round_trips_through_dict():
    t = EventTracker()
    t.track_notice("SB", {"tenancy_id": "t1"})
    d = t.summary_dict()
    assert d["SB"]["notices_processed"] == 1
    assert PropertySummary.from_dict({**d["SB"], "unknown_key": 1}).notices_processed == 1
