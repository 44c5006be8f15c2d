# rentroll_sync/domain/properties.py
from __future__ import annotations

from typing import Iterable, Optional

from ..config import settings

PROPERTY_NAMES: dict[str, str] = {
    "SB": "Stonebridge",
    "RS": "Residences",
    "OB": "Ocean Breeze",
    "CV": "City View",
    "WO": "Whispering Oaks",
}


def property_label(code: str) -> str:
    name = PROPERTY_NAMES.get(code)
    return f"{code} - {name}" if name else code


def known_codes() -> list[str]:
    return [c.upper() for c in settings.known_property_codes]


def filter_known(codes: Iterable[str], allow: Optional[Iterable[str]] = None) -> list[str]:
    """Drop codes outside the allowlist (e.g. the STALE_UPDATE sentinel); keeps order, no dupes."""
    allowed = {c.upper() for c in (allow if allow is not None else known_codes())}
    out: list[str] = []
    for c in codes:
        if c in allowed and c not in out:
            out.append(c)
    return out
