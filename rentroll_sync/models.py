# rentroll_sync/models.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


# -----------------------------
# Portfolio reference data
# -----------------------------
class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("property_code", "unit_name", name="uq_units_property_unit"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_name: Mapped[str] = mapped_column(String(40), nullable=False)


# -----------------------------
# Occupancy
# -----------------------------
class Tenancy(Base):
    """
    One household's occupancy of a unit.

    The id is the leasing system's tenancy code. Lifecycle lives entirely in
    `status`; tenancies are never deleted.
    """

    __tablename__ = "tenancies"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("units.id"), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Current")
    move_in_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Resident(Base):
    __tablename__ = "residents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenancy_id: Mapped[str] = mapped_column(String(40), ForeignKey("tenancies.id"), nullable=False, index=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="Primary")  # Primary|Roommate|Occupant|Guarantor
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Lease(Base):
    __tablename__ = "leases"
    __table_args__ = (Index("ix_leases_tenancy_active", "tenancy_id", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenancy_id: Mapped[str] = mapped_column(String(40), ForeignKey("tenancies.id"), nullable=False)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rent_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    deposit_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Current")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# -----------------------------
# Marketing
# -----------------------------
class Availability(Base):
    __tablename__ = "availabilities"
    __table_args__ = (Index("ix_availabilities_unit_active", "unit_id", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    unit_id: Mapped[int] = mapped_column(Integer, ForeignKey("units.id"), nullable=False)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_name: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Available")
    available_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    move_in_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rent_offered: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    amenities_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    leasing_agent: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    future_tenancy_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    is_mi_inspection: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    screening_result: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint(
            "property_code", "unit_id", "applicant_name", "application_date", name="uq_applications_natural"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(Integer, ForeignKey("units.id"), nullable=False)
    applicant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    agent: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    application_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    screening_result: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)


# -----------------------------
# Operational flags + snapshots
# -----------------------------
class UnitFlag(Base):
    __tablename__ = "unit_flags"
    __table_args__ = (Index("ix_unit_flags_open", "unit_id", "flag_type", "resolved_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    unit_id: Mapped[int] = mapped_column(Integer, ForeignKey("units.id"), nullable=False)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    flag_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="warning")  # info|warning|error
    title: Mapped[str] = mapped_column(String(160), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)


class WorkOrder(Base):
    __tablename__ = "work_orders"
    __table_args__ = (UniqueConstraint("property_code", "yardi_work_order_id", name="uq_work_orders_external"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_name: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    unit_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("units.id"), nullable=True)
    yardi_work_order_id: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    call_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    resident: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class Alert(Base):
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_name: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resident: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Delinquency(Base):
    __tablename__ = "delinquencies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    unit_name: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    tenancy_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    resident: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    total_unpaid: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    days_0_30: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    days_31_60: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    days_61_90: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    days_91_plus: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    prepays: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Import staging + run audit
# -----------------------------
class ImportStaging(Base):
    """Rows produced by the spreadsheet parser, one per source row, keyed by upload batch."""

    __tablename__ = "import_staging"
    __table_args__ = (Index("ix_import_staging_batch_report", "batch_id", "report_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    report_type: Mapped[str] = mapped_column(String(40), nullable=False)
    property_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    raw_data_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class SolverRun(Base):
    __tablename__ = "solver_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")  # running|completed|failed
    properties_processed_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class SolverEventRow(Base):
    __tablename__ = "solver_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    solver_run_id: Mapped[int] = mapped_column(Integer, ForeignKey("solver_runs.id"), nullable=False, index=True)
    property_code: Mapped[str] = mapped_column(String(16), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    unit_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tenancy_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    details_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
