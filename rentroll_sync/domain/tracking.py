# rentroll_sync/domain/tracking.py
"""
Per-run accumulator of business events and per-property counters.

One EventTracker per run, constructed by the caller and passed down the
reconciliation call chain. It never performs I/O; the run-record service
persists its final state. Not thread-safe: a run is a single sequential pass.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from .flags import APPLICATION_OVERDUE, MAKEREADY_OVERDUE, TRANSFER_ACTIVE

# Sweeps that are not tied to one property's file are counted under this code.
STALE_UPDATE = "STALE_UPDATE"

NEW_TENANCY = "new_tenancy"
NEW_RESIDENT = "new_resident"
LEASE_RENEWAL = "lease_renewal"
LEASE_SIGNED = "lease_signed"
NOTICE_GIVEN = "notice_given"
APPLICATION_SAVED = "application_saved"
PRICE_CHANGE = "price_change"


@dataclass
class PropertySummary:
    tenancies_new: int = 0
    tenancies_updated: int = 0
    residents_new: int = 0
    residents_updated: int = 0
    leases_new: int = 0
    leases_updated: int = 0
    leases_renewed: int = 0
    availabilities_new: int = 0
    availabilities_updated: int = 0
    notices_processed: int = 0
    status_auto_fixes: list[str] = field(default_factory=list)
    makeready_flags: int = 0
    application_flags: int = 0
    transfer_flags: int = 0
    applications_saved: int = 0
    price_changes: int = 0
    new_leases_signed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PropertySummary":
        known = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class SolverEvent:
    property_code: str
    event_type: str
    details: dict[str, Any]
    unit_id: Optional[int] = None
    tenancy_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {
            "property_code": self.property_code,
            "event_type": self.event_type,
            "details": dict(self.details),
            "unit_id": self.unit_id,
            "tenancy_id": self.tenancy_id,
        }


_FLAG_BUCKETS = {
    MAKEREADY_OVERDUE: "makeready_flags",
    APPLICATION_OVERDUE: "application_flags",
    TRANSFER_ACTIVE: "transfer_flags",
}


class EventTracker:
    def __init__(self) -> None:
        self.events: list[SolverEvent] = []
        self.summaries: dict[str, PropertySummary] = {}

    # -----------------------------
    # bookkeeping
    # -----------------------------
    def init_property(self, property_code: str) -> PropertySummary:
        summary = self.summaries.get(property_code)
        if summary is None:
            summary = PropertySummary()
            self.summaries[property_code] = summary
        return summary

    def reset(self) -> None:
        self.events.clear()
        self.summaries.clear()

    def _emit(
        self,
        property_code: str,
        event_type: str,
        details: dict[str, Any],
        *,
        unit_id: Optional[int] = None,
        tenancy_id: Optional[str] = None,
    ) -> SolverEvent:
        ev = SolverEvent(
            property_code=property_code,
            event_type=event_type,
            details=dict(details),
            unit_id=unit_id,
            tenancy_id=tenancy_id,
        )
        self.events.append(ev)
        return ev

    def events_of(self, event_type: str, property_code: Optional[str] = None) -> list[SolverEvent]:
        return [
            e
            for e in self.events
            if e.event_type == event_type and (property_code is None or e.property_code == property_code)
        ]

    # -----------------------------
    # narratable events
    # -----------------------------
    def track_new_tenancy(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).tenancies_new += 1
        self._emit(
            property_code,
            NEW_TENANCY,
            details,
            unit_id=details.get("unit_id"),
            tenancy_id=details.get("tenancy_id"),
        )

    def track_new_resident(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).residents_new += 1
        self._emit(property_code, NEW_RESIDENT, details, tenancy_id=details.get("tenancy_id"))

    def track_lease_renewal(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).leases_renewed += 1
        self._emit(property_code, LEASE_RENEWAL, details, tenancy_id=details.get("tenancy_id"))

    def track_new_lease_signed(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).new_leases_signed += 1
        self._emit(
            property_code,
            LEASE_SIGNED,
            details,
            unit_id=details.get("unit_id"),
            tenancy_id=details.get("tenancy_id"),
        )

    def track_notice(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).notices_processed += 1
        self._emit(
            property_code,
            NOTICE_GIVEN,
            details,
            unit_id=details.get("unit_id"),
            tenancy_id=details.get("tenancy_id"),
        )

    def track_application(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).applications_saved += 1
        self._emit(property_code, APPLICATION_SAVED, details, unit_id=details.get("unit_id"))

    def track_price_change(self, property_code: str, details: dict[str, Any]) -> None:
        self.init_property(property_code).price_changes += 1
        self._emit(property_code, PRICE_CHANGE, details, unit_id=details.get("unit_id"))

    # -----------------------------
    # counters only
    # -----------------------------
    def track_tenancy_updates(self, property_code: str, count: int) -> None:
        self.init_property(property_code).tenancies_updated += int(count)

    def track_resident_updates(self, property_code: str, count: int) -> None:
        self.init_property(property_code).residents_updated += int(count)

    def track_lease_changes(self, property_code: str, new: int, updated: int) -> None:
        s = self.init_property(property_code)
        s.leases_new += int(new)
        s.leases_updated += int(updated)

    def track_availability_changes(self, property_code: str, new: int, updated: int) -> None:
        s = self.init_property(property_code)
        s.availabilities_new += int(new)
        s.availabilities_updated += int(updated)

    def track_status_auto_fix(self, property_code: str, unit_name: str, change: str) -> None:
        self.init_property(property_code).status_auto_fixes.append(f"{unit_name}: {change}")

    def track_flag(self, property_code: str, flag_type: str, count: int = 1) -> None:
        bucket = _FLAG_BUCKETS.get(flag_type)
        if bucket is None:
            return
        s = self.init_property(property_code)
        setattr(s, bucket, getattr(s, bucket) + int(count))

    # -----------------------------
    # export
    # -----------------------------
    def summary_dict(self) -> dict[str, dict[str, Any]]:
        return {code: s.as_dict() for code, s in self.summaries.items()}
