# rentroll_sync/cli/staging.py
"""
Local helpers for loading parser output into the staging table.

In production the spreadsheet parser writes import_staging directly; these
exist so a batch can be replayed from JSON on a developer machine.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from sqlalchemy.orm import Session

from ..models import ImportStaging, Unit
from ..schemas import REPORT_TYPES


@dataclass(frozen=True)
class StageResult:
    batch_id: str
    report_type: str
    rows: int


def ensure_units(db: Session, property_code: str, unit_names: Iterable[str]) -> int:
    """Create any missing units for a property. Returns how many were added."""
    code = property_code.strip().upper()
    have = {u.unit_name for u in db.query(Unit).filter(Unit.property_code == code).all()}
    added = 0
    for name in unit_names:
        name = str(name).strip()
        if not name or name in have:
            continue
        db.add(Unit(property_code=code, unit_name=name))
        have.add(name)
        added += 1
    db.commit()
    return added


def stage_rows(db: Session, batch_id: str, report_type: str, rows: list[dict[str, Any]]) -> StageResult:
    if report_type not in REPORT_TYPES:
        raise ValueError(f"unknown report type: {report_type}")
    now = datetime.utcnow()
    for r in rows:
        db.add(
            ImportStaging(
                batch_id=batch_id,
                report_type=report_type,
                property_code=(str(r.get("property_code") or "").upper() or None),
                raw_data_json=json.dumps(r, ensure_ascii=False, default=str),
                created_at=now,
            )
        )
    db.commit()
    return StageResult(batch_id=batch_id, report_type=report_type, rows=len(rows))


def stage_file(db: Session, batch_id: str, path: Path) -> list[StageResult]:
    """
    Stage a JSON file shaped {"<report_type>": [row, ...], ...}.
    Units referenced by the rows are created on the way in.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    out: list[StageResult] = []
    for report_type, rows in data.items():
        by_property: dict[str, set[str]] = {}
        for r in rows:
            if r.get("property_code") and r.get("unit_name"):
                by_property.setdefault(str(r["property_code"]), set()).add(str(r["unit_name"]))
        for code, names in by_property.items():
            ensure_units(db, code, sorted(names))
        out.append(stage_rows(db, batch_id, report_type, rows))
    return out
