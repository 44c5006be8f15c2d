# rentroll_sync/domain/reporting.py
"""
Run report rendering: a markdown document (stored / attached) and an
inline-styled HTML document for email. Both are pure functions of the run
record and its events.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from html import escape
from typing import Any, Iterable, Optional

from .properties import filter_known, property_label
from .tracking import (
    APPLICATION_SAVED,
    LEASE_RENEWAL,
    LEASE_SIGNED,
    NEW_TENANCY,
    NOTICE_GIVEN,
    PRICE_CHANGE,
    PropertySummary,
    SolverEvent,
)

PLACEHOLDER = "—"


@dataclass
class RunView:
    """What the renderers need from a run record."""

    batch_id: str
    created_at: Optional[datetime] = None
    status: str = "completed"
    properties_processed: list[str] = field(default_factory=list)
    summary: dict[str, dict[str, Any]] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class OperationalSummary:
    alerts_active: int = 0
    work_orders_open: int = 0
    work_orders_completed_today: int = 0
    delinquencies_count: int = 0
    delinquencies_total: float = 0.0
    delinquencies_over_90: int = 0


def report_filename(upload_ts: datetime, batch_id: str) -> str:
    return f"{upload_ts:%Y-%m-%d}_{upload_ts:%H%M}_{batch_id[:8]}.md"


# -----------------------------
# formatting helpers
# -----------------------------
def _as_event(e: SolverEvent | dict[str, Any]) -> SolverEvent:
    if isinstance(e, SolverEvent):
        return e
    return SolverEvent(
        property_code=str(e.get("property_code") or ""),
        event_type=str(e.get("event_type") or ""),
        details=dict(e.get("details") or {}),
        unit_id=e.get("unit_id"),
        tenancy_id=e.get("tenancy_id"),
    )


def _num(v: Any) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


def dollars(v: Any) -> str:
    # whole dollars, halves round up (1800.5 -> $1801)
    whole = Decimal(str(_num(v))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"${whole}"


def direction_glyph(delta: float, *, flat: str = "=") -> str:
    if delta > 0:
        return "↑"
    if delta < 0:
        return "↓"
    return flat


def _count(n: int) -> str:
    return str(n) if n else PLACEHOLDER


def _when(run: RunView) -> str:
    ts = run.created_at or datetime.utcnow()
    return ts.strftime("%A, %B %d, %Y %I:%M %p")


def _by_type(events: list[SolverEvent], event_type: str) -> list[SolverEvent]:
    return [e for e in events if e.event_type == event_type]


def _summaries(run: RunView) -> list[tuple[str, PropertySummary]]:
    codes = filter_known(run.properties_processed)
    return [(c, PropertySummary.from_dict(run.summary.get(c) or {})) for c in codes]


def _rent_delta(d: dict[str, Any]) -> tuple[float, float, float]:
    old = _num((d.get("old_lease") or {}).get("rent_amount"))
    new = _num((d.get("new_lease") or {}).get("rent_amount"))
    return old, new, new - old


# -----------------------------
# markdown
# -----------------------------
def _md_cell(v: Any) -> str:
    return str(v).replace("|", "\\|").replace("\n", " ")


def _md_table(lines: list[str], title: str, header: list[str], rows: list[list[str]]) -> None:
    if not rows:
        return
    lines.append(f"### {title}")
    lines.append("")
    lines.append("| " + " | ".join(header) + " |")
    lines.append("|" + "|".join("-" * (len(h) + 2) for h in header) + "|")
    for r in rows:
        lines.append("| " + " | ".join(_md_cell(c) for c in r) + " |")
    lines.append("")


def render_markdown(run: RunView, events: Iterable[SolverEvent | dict[str, Any]]) -> str:
    evs = [_as_event(e) for e in events]
    lines: list[str] = [
        "# Solver Run Summary",
        "",
        f"**Date:** {_when(run)}",
        f"**Batch ID:** `{run.batch_id}`",
        "",
        "---",
        "",
        "## 📊 Executive Summary - Daily Changes",
        "",
    ]

    _md_table(
        lines,
        "✅ New Tenancies",
        ["Resident", "Unit", "Property", "Status", "Move-In"],
        [
            [
                f"**{e.details.get('resident_name') or 'Unknown'}**",
                str(e.details.get("unit_name") or ""),
                e.property_code,
                str(e.details.get("status") or ""),
                str(e.details.get("move_in_date") or "TBD"),
            ]
            for e in _by_type(evs, NEW_TENANCY)
        ],
    )
    _md_table(
        lines,
        "✍️ New Leases Signed",
        ["Resident", "Unit", "Property", "Move-In", "Rent"],
        [
            [
                f"**{e.details.get('resident_name') or 'Unknown'}**",
                str(e.details.get("unit_name") or ""),
                e.property_code,
                str(e.details.get("move_in_date") or "TBD"),
                dollars(e.details.get("rent_amount")) if e.details.get("rent_amount") else "N/A",
            ]
            for e in _by_type(evs, LEASE_SIGNED)
        ],
    )

    renewal_rows = []
    for e in _by_type(evs, LEASE_RENEWAL):
        old, new, delta = _rent_delta(e.details)
        renewal_rows.append(
            [
                f"**{e.details.get('resident_name') or 'Unknown'}**",
                str(e.details.get("unit_name") or ""),
                e.property_code,
                dollars(old),
                dollars(new),
                f"{direction_glyph(delta)} {dollars(abs(delta))}",
            ]
        )
    _md_table(lines, "🔄 Lease Renewals", ["Resident", "Unit", "Property", "Old Rent", "New Rent", "Change"], renewal_rows)

    _md_table(
        lines,
        "📋 Notices Given",
        ["Resident", "Unit", "Property", "Move-Out", "Status"],
        [
            [
                f"**{e.details.get('resident_name') or 'Unknown'}**",
                str(e.details.get("unit_name") or ""),
                e.property_code,
                str(e.details.get("move_out_date") or "TBD"),
                str(e.details.get("status_change") or "Notice"),
            ]
            for e in _by_type(evs, NOTICE_GIVEN)
        ],
    )
    _md_table(
        lines,
        "📝 New Applications",
        ["Applicant", "Unit", "Property", "Date", "Result"],
        [
            [
                f"**{e.details.get('applicant_name') or 'Unknown'}**",
                str(e.details.get("unit_name") or ""),
                e.property_code,
                str(e.details.get("application_date") or "N/A"),
                str(e.details.get("screening_result") or "Pending"),
            ]
            for e in _by_type(evs, APPLICATION_SAVED)
        ],
    )

    price_rows = []
    for e in _by_type(evs, PRICE_CHANGE):
        d = e.details
        delta = _num(d.get("change_amount"))
        dot = "🟢" if delta > 0 else "🔴"
        price_rows.append(
            [
                f"**{d.get('unit_name') or ''}**",
                e.property_code,
                dollars(d.get("old_rent")),
                dollars(d.get("new_rent")),
                f"{dot} {direction_glyph(delta)} {dollars(abs(delta))}",
                f"{_num(d.get('change_percent')):.1f}%",
            ]
        )
    _md_table(
        lines,
        "💰 Availability Price Changes",
        ["Unit", "Property", "Old Rent", "New Rent", "Change", "% Change"],
        price_rows,
    )

    lines.append("---")
    lines.append("")

    for code, s in _summaries(run):
        lines.append(f"## Property: {property_label(code)}")
        lines.append("")
        lines.append(f"- **New Tenancies:** {_count(s.tenancies_new)}")
        lines.append(f"- **Lease Renewals:** {_count(s.leases_renewed)}")
        lines.append(f"- **Notices on File:** {_count(s.notices_processed)}")
        lines.append(f"- **Applications:** {_count(s.applications_saved)}")
        lines.append(f"- **Price Changes:** {_count(s.price_changes)}")
        lines.append(f"- **Flags Created:** {_count(s.makeready_flags + s.application_flags + s.transfer_flags)}")
        lines.append(f"- **Status Auto-Fixes:** {_count(len(s.status_auto_fixes))}")
        for fix in s.status_auto_fixes:
            lines.append(f"  - {fix}")
        lines.append("")

    return "\n".join(lines)


# -----------------------------
# html
# -----------------------------
_H2 = "font-size: 18px; font-weight: 600; color: #111827; margin-bottom: 16px; border-bottom: 1px solid #e5e7eb; padding-bottom: 8px;"
_H3 = "font-size: 16px; font-weight: 600; color: #374151; margin-bottom: 12px;"
_TH = "padding: 10px; text-align: left; font-weight: 600; color: #4b5563;"
_TD = "padding: 10px; border-bottom: 1px solid #f3f4f6;"
_BADGE = "margin-left: 8px; background: #e0e7ff; color: #4338ca; font-size: 12px; padding: 2px 8px; border-radius: 9999px;"


def _stat_card(label: str, value: Any) -> str:
    return (
        '<div style="background-color: #f9fafb; padding: 16px; border-radius: 8px; border: 1px solid #f3f4f6; text-align: center;">'
        f'<div style="font-size: 12px; color: #6b7280; text-transform: uppercase; font-weight: 600;">{escape(label)}</div>'
        f'<div style="font-size: 24px; font-weight: 700; color: #4f46e5; margin-top: 4px;">{escape(str(value))}</div>'
        "</div>"
    )


def _property_card(code: str, s: PropertySummary) -> str:
    cells = [
        ("Availabilities", f"+{s.availabilities_new} / {s.availabilities_updated} mod"),
        ("Tenancies", f"+{s.tenancies_new} / {s.tenancies_updated} mod"),
        ("Leases", f"{_count(s.leases_renewed)} renewals"),
        ("Notices", _count(s.notices_processed)),
        ("Applications", f"{_count(s.applications_saved)} total"),
        ("Flags", f"{_count(s.makeready_flags + s.application_flags + s.transfer_flags)} created"),
    ]
    body = "".join(
        f'<div><div style="color: #6b7280;">{escape(label)}</div><div style="font-weight: 600;">{escape(value)}</div></div>'
        for label, value in cells
    )
    fixes = ""
    if s.status_auto_fixes:
        items = "".join(f"<li>{escape(f)}</li>" for f in s.status_auto_fixes)
        fixes = f'<ul style="margin: 12px 0 0; font-size: 12px; color: #9a3412;">{items}</ul>'
    return (
        '<div style="margin-bottom: 24px; padding: 16px; background-color: #f9fafb; border-radius: 8px; border: 1px solid #e5e7eb;">'
        f'<h4 style="margin: 0 0 12px; font-size: 15px; color: #111827;">{escape(property_label(code))}</h4>'
        f'<div style="display: grid; grid-template-columns: repeat(auto-fit, minmax(140px, 1fr)); gap: 12px; font-size: 12px;">{body}</div>'
        f"{fixes}</div>"
    )


def _html_table(title: str, header: list[str], rows: list[list[str]]) -> str:
    """Rows are pre-escaped cell HTML. Empty sections render nothing."""
    if not rows:
        return ""
    head = "".join(f'<th style="{_TH}">{escape(h)}</th>' for h in header)
    body = "".join("<tr>" + "".join(f'<td style="{_TD}">{c}</td>' for c in r) + "</tr>" for r in rows)
    return (
        '<div style="margin-bottom: 40px;">'
        f'<h3 style="{_H3}">{escape(title)}<span style="{_BADGE}">{len(rows)}</span></h3>'
        '<table style="width: 100%; border-collapse: collapse; font-size: 13px;">'
        f'<thead><tr style="background-color: #f9fafb;">{head}</tr></thead><tbody>{body}</tbody></table></div>'
    )


def _e(v: Any, default: str = "") -> str:
    return escape(str(v)) if v not in (None, "") else escape(default)


def _operational_block(op: OperationalSummary, base_url: str) -> str:
    items = [
        ("🚨 Open Alerts", str(op.alerts_active), f"{base_url}/office/alerts"),
        ("🔧 Open Work Orders", str(op.work_orders_open), f"{base_url}/maintenance/work-orders"),
        ("✔️ Completed Today", str(op.work_orders_completed_today), f"{base_url}/maintenance/work-orders"),
        ("💵 Delinquent", str(op.delinquencies_count), f"{base_url}/office/delinquencies"),
        ("💵 Total Owed", f"${op.delinquencies_total:,.2f}", f"{base_url}/office/delinquencies"),
        ("⏳ Over 90 Days", str(op.delinquencies_over_90), f"{base_url}/office/delinquencies"),
    ]
    cards = "".join(
        f'<a href="{escape(url)}" style="text-decoration: none;">{_stat_card(label, value)}</a>'
        for label, value, url in items
    )
    return (
        f'<div style="margin-top: 48px;"><h2 style="{_H2}">Operational Summary</h2>'
        f'<div style="display: grid; grid-template-columns: repeat(3, 1fr); gap: 16px;">{cards}</div></div>'
    )


def _health_block(run: RunView) -> str:
    ok = run.status == "completed"
    failed = run.status == "failed"
    bg = "#ecfdf5" if ok else "#fef2f2" if failed else "#fef3c7"
    label = "✓ SUCCESS" if ok else "✗ FAILED" if failed else "⋯ RUNNING"
    err = ""
    if run.error_message:
        err = (
            '<div style="margin-top: 12px; font-size: 13px; color: #991b1b; font-family: monospace;">'
            f"<strong>Error:</strong> {escape(run.error_message)}</div>"
        )
    return (
        f'<div style="margin-top: 48px;"><h2 style="{_H2}">⚙️ Technical Health</h2>'
        f'<div style="background-color: {bg}; border-radius: 8px; padding: 20px;">'
        f'<div style="font-size: 16px; font-weight: 700;">{label}</div>{err}</div></div>'
    )


def render_html(
    run: RunView,
    events: Iterable[SolverEvent | dict[str, Any]],
    operational: Optional[OperationalSummary] = None,
    *,
    base_url: str = "",
) -> str:
    evs = [_as_event(e) for e in events]
    summaries = _summaries(run)

    signed = [
        [
            f"<strong>{_e(e.details.get('resident_name'), 'Unknown')}</strong>",
            _e(e.details.get("unit_name")),
            _e(e.property_code),
            _e(e.details.get("move_in_date"), "TBD"),
            dollars(e.details.get("rent_amount")) if e.details.get("rent_amount") else "N/A",
        ]
        for e in _by_type(evs, LEASE_SIGNED)
    ]

    renewals = []
    for e in _by_type(evs, LEASE_RENEWAL):
        old, new, delta = _rent_delta(e.details)
        color = "#059669" if delta > 0 else "#dc2626" if delta < 0 else "#6b7280"
        renewals.append(
            [
                f"<strong>{_e(e.details.get('resident_name'), 'Unknown')}</strong>",
                _e(e.details.get("unit_name")),
                _e(e.property_code),
                dollars(old),
                dollars(new),
                f'<span style="color: {color}; font-weight: 600;">{direction_glyph(delta, flat="")} {dollars(abs(delta))}</span>',
            ]
        )

    prices = []
    for e in _by_type(evs, PRICE_CHANGE):
        d = e.details
        delta = _num(d.get("change_amount"))
        color = "#059669" if delta > 0 else "#dc2626"
        prices.append(
            [
                f"<strong>{_e(d.get('unit_name'))}</strong>",
                _e(e.property_code),
                dollars(d.get("old_rent")),
                dollars(d.get("new_rent")),
                f'<span style="color: {color}; font-weight: 600;">{direction_glyph(delta, flat="")} '
                f"{dollars(abs(delta))} ({_num(d.get('change_percent')):.1f}%)</span>",
            ]
        )

    apps = [
        [
            f"<strong>{_e(e.details.get('applicant_name'), 'Unknown')}</strong>",
            _e(e.details.get("unit_name")),
            _e(e.property_code),
            _e(e.details.get("application_date"), "N/A"),
            _e(e.details.get("screening_result"), "Pending"),
        ]
        for e in _by_type(evs, APPLICATION_SAVED)
    ]

    notices = [
        [
            f"<strong>{_e(e.details.get('resident_name'), 'Unknown')}</strong>",
            _e(e.details.get("unit_name")),
            _e(e.property_code),
            _e(e.details.get("move_out_date"), "TBD"),
            _e(e.details.get("status_change"), "Notice"),
        ]
        for e in _by_type(evs, NOTICE_GIVEN)
    ]

    tenancies = [
        [
            f"<strong>{_e(e.details.get('resident_name'), 'Unknown')}</strong>",
            _e(e.details.get("unit_name")),
            _e(e.property_code),
            _e(e.details.get("status")),
            _e(e.details.get("move_in_date"), "TBD"),
        ]
        for e in _by_type(evs, NEW_TENANCY)
    ]

    parts = [
        '<div style="font-family: \'Inter\', sans-serif, system-ui; max-width: 800px; margin: 0 auto; color: #1f2937; line-height: 1.5;">',
        '<div style="background-color: #4f46e5; padding: 32px; border-radius: 12px 12px 0 0; color: white;">',
        '<h1 style="margin: 0; font-size: 24px; font-weight: 700;">Daily Solver Report</h1>',
        f'<p style="margin: 8px 0 0; font-size: 14px;">Batch ID: <code>{escape(run.batch_id)}</code></p>',
        f'<p style="margin: 4px 0 0; font-size: 14px;">Processed at: {escape(_when(run))}</p>',
        "</div>",
        '<div style="padding: 32px; background-color: #ffffff; border: 1px solid #e5e7eb; border-top: none;">',
        f'<div style="margin-bottom: 48px;"><h2 style="{_H2}">Property Breakdown</h2>',
        "".join(_property_card(code, s) for code, s in summaries),
        "</div>",
        f'<div style="margin-bottom: 40px;"><h2 style="{_H2}">System Overview - Details</h2>',
        '<div style="display: grid; grid-template-columns: repeat(3, 1fr); gap: 16px;">',
        _stat_card("Properties", len(summaries)),
        _stat_card("New Tenancies", len(tenancies)),
        _stat_card("Renewals", len(renewals)),
        "</div></div>",
        _html_table("✅ New Tenancies", ["Resident", "Unit", "Property", "Status", "Move-In"], tenancies),
        _html_table("✍️ New Leases Signed", ["Resident", "Unit", "Property", "Move-In", "Rent"], signed),
        _html_table("🔄 Lease Renewals", ["Resident", "Unit", "Property", "Old Rent", "New Rent", "Change"], renewals),
        _html_table("💰 Price Changes", ["Unit", "Property", "Old Rent", "New Rent", "Change"], prices),
        _html_table("📝 New Applications", ["Applicant", "Unit", "Property", "Date", "Result"], apps),
        _html_table("📋 Notices Given", ["Resident", "Unit", "Property", "Move-Out", "Status"], notices),
        _operational_block(operational, base_url) if operational is not None else "",
        _health_block(run),
        '<div style="margin-top: 48px; padding-top: 24px; border-top: 1px solid #e5e7eb; text-align: center; color: #6b7280; font-size: 12px;">',
        "<p>This is an automated operational report generated by the daily solver run.</p>",
        "</div></div></div>",
    ]
    return "".join(parts)
