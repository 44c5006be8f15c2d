# rentroll_sync/domain/missing.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .status import TenancyRef, TenancyStatus

TO_PAST = frozenset({TenancyStatus.CURRENT, TenancyStatus.NOTICE})
TO_CANCELED = frozenset({TenancyStatus.APPLICANT, TenancyStatus.FUTURE})


@dataclass
class MissingClassification:
    missing: list[TenancyRef] = field(default_factory=list)
    to_past_ids: list[str] = field(default_factory=list)
    to_canceled_ids: list[str] = field(default_factory=list)
    availability_reset_unit_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "missing": [m.id for m in self.missing],
            "to_past_ids": list(self.to_past_ids),
            "to_canceled_ids": list(self.to_canceled_ids),
            "availability_reset_unit_ids": list(self.availability_reset_unit_ids),
        }


def classify_missing(
    reported_ids: Iterable[str],
    active: Iterable[TenancyRef | dict[str, Any]],
) -> MissingClassification:
    """
    Split active primary-occupant tenancies absent from today's report.

    Current/Notice moved out silently -> Past. Applicant/Future dropped out of
    the pipeline -> Canceled, and their units need an availability reset.
    Everything else is reported as missing with no transition.
    """
    reported = {str(x) for x in reported_ids}
    out = MissingClassification()
    reset_units: set[Optional[int]] = set()

    for entity in active:
        ref = entity if isinstance(entity, TenancyRef) else TenancyRef.from_row(entity)
        if ref.id in reported:
            continue
        out.missing.append(ref)
        if ref.status in TO_PAST:
            out.to_past_ids.append(ref.id)
        elif ref.status in TO_CANCELED:
            out.to_canceled_ids.append(ref.id)
            if ref.unit_id is not None and ref.unit_id not in reset_units:
                reset_units.add(ref.unit_id)
                out.availability_reset_unit_ids.append(ref.unit_id)

    return out
