# rentroll_sync/domain/status.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class TenancyStatus(str, Enum):
    CURRENT = "Current"
    NOTICE = "Notice"
    FUTURE = "Future"
    APPLICANT = "Applicant"
    EVICTION = "Eviction"
    PAST = "Past"
    DENIED = "Denied"
    CANCELED = "Canceled"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    LEASED = "Leased"
    APPLIED = "Applied"


# Match order is part of the contract: "past notice" is Past, not Notice.
_KEYWORDS: tuple[tuple[str, TenancyStatus], ...] = (
    ("current", TenancyStatus.CURRENT),
    ("past", TenancyStatus.PAST),
    ("future", TenancyStatus.FUTURE),
    ("notice", TenancyStatus.NOTICE),
    ("eviction", TenancyStatus.EVICTION),
    ("applicant", TenancyStatus.APPLICANT),
    ("denied", TenancyStatus.DENIED),
    ("cancel", TenancyStatus.CANCELED),
)

# Tenancies that still hold (or are about to hold) a unit.
LIVE_STATUSES = frozenset(
    {
        TenancyStatus.CURRENT,
        TenancyStatus.NOTICE,
        TenancyStatus.FUTURE,
        TenancyStatus.APPLICANT,
        TenancyStatus.EVICTION,
    }
)

# Fields wiped from an availability when its applicant/future tenancy falls through.
APPLICANT_FIELDS: tuple[str, ...] = (
    "leasing_agent",
    "move_in_date",
    "future_tenancy_id",
    "is_mi_inspection",
    "screening_result",
)


def map_tenancy_status(raw: Optional[str]) -> TenancyStatus:
    """Best-effort mapping of free-text status; first keyword hit wins, default Current."""
    text = (raw or "").lower()
    for keyword, status in _KEYWORDS:
        if keyword in text:
            return status
    return TenancyStatus.CURRENT


def coerce_status(value: Any) -> TenancyStatus:
    """Stored values are canonical already; anything else goes through the keyword map."""
    if isinstance(value, TenancyStatus):
        return value
    try:
        return TenancyStatus(str(value))
    except ValueError:
        return map_tenancy_status(str(value) if value is not None else None)


@dataclass(frozen=True)
class TenancyRef:
    id: str
    status: TenancyStatus
    unit_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TenancyRef":
        return cls(id=str(row["id"]), status=coerce_status(row.get("status")), unit_id=row.get("unit_id"))


@dataclass(frozen=True)
class AvailabilityDecision:
    status: AvailabilityStatus
    is_active: bool
    should_clear_applicant_fields: bool
    future_tenancy_id: Optional[str]

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "is_active": self.is_active,
            "should_clear_applicant_fields": self.should_clear_applicant_fields,
            "future_tenancy_id": self.future_tenancy_id,
        }

    def patch(self) -> dict[str, Any]:
        """Column patch for an availability row governed by this decision."""
        out: dict[str, Any] = {"status": self.status.value, "is_active": self.is_active}
        if self.should_clear_applicant_fields:
            for field in APPLICANT_FIELDS:
                out[field] = None
        elif self.future_tenancy_id is not None:
            out["future_tenancy_id"] = self.future_tenancy_id
        return out


_DEFAULT = AvailabilityDecision(AvailabilityStatus.AVAILABLE, True, False, None)


def derive_availability_status(tenancy: Optional[TenancyRef]) -> AvailabilityDecision:
    """
    Availability status is a pure function of the governing tenancy.

    No tenancy (and Notice/Eviction/Past) leaves the unit Available; Current
    occupies it; Future/Applicant link the tenancy; Denied/Canceled also wipe
    the applicant fields.
    """
    if tenancy is None:
        return _DEFAULT

    st = tenancy.status
    if st == TenancyStatus.CURRENT:
        return AvailabilityDecision(AvailabilityStatus.OCCUPIED, False, False, None)
    if st == TenancyStatus.FUTURE:
        return AvailabilityDecision(AvailabilityStatus.LEASED, True, False, tenancy.id)
    if st == TenancyStatus.APPLICANT:
        return AvailabilityDecision(AvailabilityStatus.APPLIED, True, False, tenancy.id)
    if st in (TenancyStatus.DENIED, TenancyStatus.CANCELED):
        return AvailabilityDecision(AvailabilityStatus.AVAILABLE, True, True, None)
    return _DEFAULT
