# rentroll_sync/domain/flags.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional

from .dates import format_for_display, parse_flexible, to_iso

MOVEOUT_OVERDUE = "moveout_overdue"
MAKEREADY_OVERDUE = "makeready_overdue"
APPLICATION_OVERDUE = "application_overdue"
TRANSFER_ACTIVE = "unit_transfer_active"


@dataclass(frozen=True)
class FlagSpec:
    unit_id: int
    property_code: str
    flag_type: str
    severity: str
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def row(self, now: Optional[datetime] = None) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "property_code": self.property_code,
            "flag_type": self.flag_type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "metadata_json": json.dumps(self.metadata, ensure_ascii=False, default=str),
            "created_at": now or datetime.utcnow(),
        }


def _severity(days_overdue: int, error_after: int) -> str:
    return "error" if days_overdue > error_after else "warning"


def moveout_overdue(
    *,
    unit_id: int,
    property_code: str,
    unit_name: Optional[str],
    tenancy_id: str,
    move_out_date: Any,
    today: date,
    error_days: int,
) -> Optional[FlagSpec]:
    mo = parse_flexible(move_out_date)
    if mo is None or mo >= today:
        return None
    days = (today - mo).days
    return FlagSpec(
        unit_id=unit_id,
        property_code=property_code,
        flag_type=MOVEOUT_OVERDUE,
        severity=_severity(days, error_days),
        title="Move-Out Overdue",
        message=f"Unit {unit_name or unit_id} was due to move out on {format_for_display(mo)}",
        metadata={
            "tenancy_id": tenancy_id,
            "expected_date": to_iso(mo),
            "days_overdue": days,
            "unit_name": unit_name,
        },
    )


def makeready_overdue(
    *,
    unit_id: int,
    property_code: str,
    unit_name: Optional[str],
    make_ready_date: Any,
    today: date,
    cushion_days: int,
    error_days: int,
) -> Optional[FlagSpec]:
    """Overdue once the make-ready date is more than `cushion_days` in the past."""
    mr = parse_flexible(make_ready_date)
    if mr is None:
        return None
    days = (today - mr).days
    if days <= cushion_days:
        return None
    return FlagSpec(
        unit_id=unit_id,
        property_code=property_code,
        flag_type=MAKEREADY_OVERDUE,
        severity=_severity(days, error_days),
        title="MakeReady Overdue",
        message=f"Unit {unit_name or unit_id} makeready was due on {format_for_display(mr)}",
        metadata={"expected_date": to_iso(mr), "days_overdue": days, "unit_name": unit_name},
    )


def application_overdue(
    *,
    unit_id: int,
    property_code: str,
    unit_name: Optional[str],
    applicant_name: str,
    application_date: Any,
    screening_result: Optional[str],
    today: date,
    overdue_days: int,
    error_days: int,
) -> Optional[FlagSpec]:
    """An application still unscreened after `overdue_days`."""
    if (screening_result or "").strip():
        return None
    ad = parse_flexible(application_date)
    if ad is None:
        return None
    days = (today - ad).days
    if days <= overdue_days:
        return None
    return FlagSpec(
        unit_id=unit_id,
        property_code=property_code,
        flag_type=APPLICATION_OVERDUE,
        severity=_severity(days, error_days),
        title="Application Screening Overdue",
        message=f"Application for {applicant_name} on unit {unit_name or unit_id} has waited {days} days for screening",
        metadata={
            "applicant_name": applicant_name,
            "application_date": to_iso(ad),
            "days_pending": days,
            "unit_name": unit_name,
        },
    )


def transfer_flags(
    *,
    resident: str,
    from_unit_id: int,
    from_property_code: str,
    from_unit_name: str,
    to_unit_id: int,
    to_property_code: str,
    to_unit_name: str,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
) -> list[FlagSpec]:
    meta = {
        "resident": resident,
        "from_property_code": from_property_code,
        "from_unit_name": from_unit_name,
        "from_status": from_status,
        "to_property_code": to_property_code,
        "to_unit_name": to_unit_name,
        "to_status": to_status,
    }
    return [
        FlagSpec(
            unit_id=from_unit_id,
            property_code=from_property_code,
            flag_type=TRANSFER_ACTIVE,
            severity="info",
            title="Resident Transferring Out",
            message=f"{resident} is transferring to {to_property_code} {to_unit_name}",
            metadata={**meta, "direction": "out"},
        ),
        FlagSpec(
            unit_id=to_unit_id,
            property_code=to_property_code,
            flag_type=TRANSFER_ACTIVE,
            severity="info",
            title="Resident Transferring In",
            message=f"{resident} is transferring from {from_property_code} {from_unit_name}",
            metadata={**meta, "direction": "in"},
        ),
    ]


def dedupe_new_flags(candidates: Iterable[FlagSpec], open_keys: set[tuple[int, str]]) -> list[FlagSpec]:
    """
    Drop candidates that already have an unresolved flag, and repeats within
    the same batch. `open_keys` holds (unit_id, flag_type) of unresolved flags.
    """
    seen = set(open_keys)
    out: list[FlagSpec] = []
    for spec in candidates:
        key = (spec.unit_id, spec.flag_type)
        if key in seen:
            continue
        seen.add(key)
        out.append(spec)
    return out


def cleared_flag_ids(open_flags: Iterable[dict[str, Any]], still_true_units: set[int]) -> list[int]:
    """Open flags whose unit no longer meets the condition."""
    return [f["id"] for f in open_flags if f.get("unit_id") not in still_true_units]
