# rentroll_sync/domain/availability.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .status import AvailabilityStatus, TenancyRef, TenancyStatus, derive_availability_status

# Which tenancy governs a unit when several are live at once.
TENANCY_PRIORITY: dict[TenancyStatus, int] = {
    TenancyStatus.CURRENT: 3,
    TenancyStatus.FUTURE: 2,
    TenancyStatus.APPLICANT: 1,
}


def build_tenancy_priority_map(tenancies: Iterable[TenancyRef]) -> dict[int, TenancyRef]:
    """unit_id -> governing tenancy. Ties keep the first one seen."""
    out: dict[int, TenancyRef] = {}
    for t in tenancies:
        if t.unit_id is None:
            continue
        prio = TENANCY_PRIORITY.get(t.status)
        if prio is None:
            continue
        held = out.get(t.unit_id)
        if held is None or prio > TENANCY_PRIORITY[held.status]:
            out[t.unit_id] = t
    return out


@dataclass
class StaleSweepPlan:
    to_deactivate: list[int] = field(default_factory=list)
    to_update: list[tuple[int, dict[str, Any]]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_deactivate) + len(self.to_update)


def classify_stale_availabilities(
    availabilities: Iterable[dict[str, Any]],
    governing: dict[int, TenancyRef],
) -> StaleSweepPlan:
    """
    Re-derive status for active availabilities whose tenancy moved on without
    the availability report noticing (e.g. it arrived in a different file).
    """
    plan = StaleSweepPlan()
    for av in availabilities:
        tenancy = governing.get(av.get("unit_id"))
        if tenancy is None:
            continue
        decision = derive_availability_status(tenancy)
        if tenancy.status == TenancyStatus.CURRENT:
            plan.to_deactivate.append(av["id"])
        elif tenancy.status in (TenancyStatus.FUTURE, TenancyStatus.APPLICANT):
            if av.get("status") != decision.status.value:
                plan.to_update.append((av["id"], decision.patch()))
    return plan


def price_change_details(
    unit_name: Optional[str],
    unit_id: Optional[int],
    old_rent: Any,
    new_rent: Any,
) -> Optional[dict[str, Any]]:
    """Event payload for an offered-rent change, or None when nothing moved."""
    if new_rent is None or old_rent is None:
        return None
    try:
        old_v, new_v = float(old_rent), float(new_rent)
    except (TypeError, ValueError):
        return None
    if new_v <= 0 or old_v == new_v:
        return None

    change = round(new_v - old_v, 2)
    pct = round(change / old_v * 100, 2) if old_v else 0.0
    return {
        "unit_name": unit_name,
        "unit_id": unit_id,
        "old_rent": old_v,
        "new_rent": new_v,
        "change_amount": change,
        "change_percent": pct,
    }


def is_marketed(status: Optional[str]) -> bool:
    return status in (AvailabilityStatus.APPLIED.value, AvailabilityStatus.LEASED.value)
