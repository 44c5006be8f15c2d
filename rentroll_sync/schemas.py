# rentroll_sync/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

from .domain.dates import NOT_AVAILABLE, parse_iso_date


# -------------------- field coercion --------------------

def _flex_date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, str) and (not v.strip() or v.strip().upper() == NOT_AVAILABLE):
        return None
    parsed = parse_iso_date(v)
    if parsed is None:
        raise ValueError(f"unrecognized date: {v!r}")
    return parsed


def _money(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    s = str(v).strip().replace("$", "").replace(",", "")
    if not s:
        return None
    # accounting negatives: (123.45)
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    return float(s)


FlexDate = Annotated[Optional[date], BeforeValidator(_flex_date)]
Money = Annotated[Optional[float], BeforeValidator(_money)]
Code = Annotated[str, BeforeValidator(lambda v: str(v).strip().upper() if v is not None else v), Field(min_length=1)]


class _Row(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", coerce_numbers_to_str=True)


# -------------------- typed snapshot rows --------------------

class ResidentStatusRow(_Row):
    report_type: Literal["residents_status"] = "residents_status"
    property_code: Code
    unit_name: str = Field(min_length=1)
    tenancy_id: str = Field(min_length=1)
    resident: str = Field(min_length=1)
    status: Optional[str] = None
    type: Optional[str] = None
    rent: Money = None
    move_in_date: FlexDate = None
    move_out_date: FlexDate = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ExpiringLeaseRow(_Row):
    report_type: Literal["expiring_leases"] = "expiring_leases"
    property_code: Code
    unit_name: Optional[str] = None
    tenancy_code: str = Field(min_length=1)
    resident: Optional[str] = None
    status: Optional[str] = None
    lease_start_date: FlexDate = None
    lease_end_date: FlexDate = None
    lease_rent: Money = None
    deposit: Money = None


class AvailableRow(_Row):
    report_type: Literal["availables"] = "availables"
    property_code: Code
    unit_name: str = Field(min_length=1)
    available_date: FlexDate = None
    move_out_date: FlexDate = None
    offered_rent: Money = None
    amenities: Optional[str] = None


class NoticeRow(_Row):
    report_type: Literal["notices"] = "notices"
    property_code: Code
    unit_name: str = Field(min_length=1)
    resident: Optional[str] = None
    move_out_date: FlexDate = None


class ApplicationRow(_Row):
    report_type: Literal["applications"] = "applications"
    property_code: Code
    unit_name: str = Field(min_length=1)
    applicant: str = Field(min_length=1)
    leasing_agent: Optional[str] = None
    application_date: FlexDate = None
    screening_result: Optional[str] = None


class MakeReadyRow(_Row):
    report_type: Literal["make_ready"] = "make_ready"
    property_code: Code
    unit_name: str = Field(min_length=1)
    make_ready_date: FlexDate = None


class TransferRow(_Row):
    report_type: Literal["transfers"] = "transfers"
    property_code: Optional[str] = None
    resident: Optional[str] = None
    from_property_code: Optional[str] = None
    from_unit_name: Optional[str] = None
    from_status: Optional[str] = None
    to_property_code: Optional[str] = None
    to_unit_name: Optional[str] = None
    to_status: Optional[str] = None


class WorkOrderRow(_Row):
    report_type: Literal["work_orders"] = "work_orders"
    property_code: Code
    unit_name: Optional[str] = None
    yardi_work_order_id: str = Field(min_length=1)
    description: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    call_date: FlexDate = None
    resident: Optional[str] = None
    phone: Optional[str] = None


class AlertRow(_Row):
    report_type: Literal["alerts"] = "alerts"
    property_code: Code
    unit_name: Optional[str] = None
    description: str = ""
    resident: Optional[str] = None


class DelinquencyRow(_Row):
    report_type: Literal["delinquencies"] = "delinquencies"
    property_code: Code
    unit_name: Optional[str] = None
    tenancy_id: Optional[str] = None
    resident: Optional[str] = None
    total_unpaid: Money = 0.0
    days_0_30: Money = 0.0
    days_31_60: Money = 0.0
    days_61_90: Money = 0.0
    days_91_plus: Money = 0.0
    prepays: Money = 0.0
    balance: Money = 0.0


SnapshotRow = Annotated[
    Union[
        ResidentStatusRow,
        ExpiringLeaseRow,
        AvailableRow,
        NoticeRow,
        ApplicationRow,
        MakeReadyRow,
        TransferRow,
        WorkOrderRow,
        AlertRow,
        DelinquencyRow,
    ],
    Field(discriminator="report_type"),
]

snapshot_row_adapter: TypeAdapter[SnapshotRow] = TypeAdapter(SnapshotRow)

REPORT_TYPES: tuple[str, ...] = (
    "residents_status",
    "expiring_leases",
    "availables",
    "notices",
    "applications",
    "make_ready",
    "transfers",
    "work_orders",
    "alerts",
    "delinquencies",
)


# -------------------- API --------------------

class RunStartIn(BaseModel):
    batch_id: str = Field(min_length=1)


class SkipOut(BaseModel):
    property: str
    unit: str
    reason: str


class RunStartOut(BaseModel):
    run_id: Optional[int]
    batch_id: str
    status: str
    status_message: str
    skipped: list[SkipOut] = Field(default_factory=list)


class SolverRunOut(BaseModel):
    id: int
    batch_id: str
    status: str
    properties_processed: list[str] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
