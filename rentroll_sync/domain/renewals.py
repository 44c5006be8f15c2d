# rentroll_sync/domain/renewals.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .dates import parse_flexible, to_iso
from .status import TenancyStatus

# Thresholds were tuned against real exports; keep the exact boundaries.
RENEWAL_GAP_DAYS = 30
TERM_CHANGE_DAYS = 60
CONTIGUOUS_GAP_DAYS = -7
MIN_RENEWED_TERM_DAYS = 90


def is_renewal(new_start: Any, new_end: Any, existing_start: Any, existing_end: Any) -> bool:
    """
    True when the incoming lease is a successive term, False when it is a
    correction of the existing one (or when any date is missing).
    """
    ns, ne = parse_flexible(new_start), parse_flexible(new_end)
    es, ee = parse_flexible(existing_start), parse_flexible(existing_end)
    if ns is None or ne is None or es is None or ee is None:
        return False

    gap_days = (ns - ee).days
    new_term_days = (ne - ns).days
    existing_term_days = (ee - es).days

    if gap_days >= RENEWAL_GAP_DAYS:
        return True
    if abs(new_term_days - existing_term_days) >= TERM_CHANGE_DAYS:
        return True
    if gap_days >= CONTIGUOUS_GAP_DAYS and new_term_days >= MIN_RENEWED_TERM_DAYS:
        return True
    return False


def lease_status_from_text(raw: Optional[str]) -> TenancyStatus:
    """Lease status keeps the exact source word for Notice/Future/Past/Eviction, Current otherwise."""
    s = (raw or "").strip()
    for st in (TenancyStatus.NOTICE, TenancyStatus.FUTURE, TenancyStatus.PAST, TenancyStatus.EVICTION):
        if s == st.value:
            return st
    return TenancyStatus.CURRENT


def retired_lease_patch() -> dict[str, Any]:
    """The only way a lease leaves the active set."""
    return {"is_active": False, "status": TenancyStatus.PAST.value}


@dataclass(frozen=True)
class IncomingLease:
    tenancy_id: str
    property_code: str
    start_date: Any
    end_date: Any
    rent_amount: Optional[float]
    deposit_amount: Optional[float]
    status: TenancyStatus = TenancyStatus.CURRENT

    def row(self) -> dict[str, Any]:
        return {
            "tenancy_id": self.tenancy_id,
            "property_code": self.property_code,
            "start_date": to_iso(parse_flexible(self.start_date)),
            "end_date": to_iso(parse_flexible(self.end_date)),
            "rent_amount": self.rent_amount,
            "deposit_amount": self.deposit_amount,
            "status": self.status.value,
            "is_active": self.status != TenancyStatus.PAST,
        }


@dataclass
class LeasePlan:
    """
    What to do with one tenancy's lease.

    kind: "insert" | "update" | "renew"
    """

    kind: str
    insert_row: Optional[dict[str, Any]] = None
    existing_id: Optional[int] = None
    patch: dict[str, Any] = field(default_factory=dict)
    renewal_details: Optional[dict[str, Any]] = None


def _term(start: Any, end: Any, rent: Any) -> dict[str, Any]:
    return {
        "start_date": to_iso(parse_flexible(start)),
        "end_date": to_iso(parse_flexible(end)),
        "rent_amount": rent,
    }


def plan_lease(incoming: IncomingLease, existing: Optional[dict[str, Any]]) -> LeasePlan:
    """
    Decide insert / in-place update / renewal for one tenancy.

    On renewal the new row inherits tenancy, property and deposit from the old
    lease; dates and rent come from the file.
    """
    new_row = incoming.row()
    if existing is None:
        return LeasePlan(kind="insert", insert_row=new_row)

    if is_renewal(incoming.start_date, incoming.end_date, existing.get("start_date"), existing.get("end_date")):
        carried = dict(new_row)
        carried["tenancy_id"] = existing.get("tenancy_id") or incoming.tenancy_id
        carried["property_code"] = existing.get("property_code") or incoming.property_code
        carried["deposit_amount"] = existing.get("deposit_amount")
        details = {
            "old_lease": _term(existing.get("start_date"), existing.get("end_date"), existing.get("rent_amount")),
            "new_lease": _term(incoming.start_date, incoming.end_date, incoming.rent_amount),
        }
        return LeasePlan(
            kind="renew",
            insert_row=carried,
            existing_id=existing.get("id"),
            patch=retired_lease_patch(),
            renewal_details=details,
        )

    patch = {k: v for k, v in new_row.items() if k not in ("tenancy_id", "property_code")}
    return LeasePlan(kind="update", existing_id=existing.get("id"), patch=patch)
