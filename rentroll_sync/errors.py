# rentroll_sync/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class SolverError(Exception):
    pass


class StorageError(SolverError):
    def __init__(self, message: str, *, table: Optional[str] = None, op: Optional[str] = None) -> None:
        super().__init__(message)
        self.table = table
        self.op = op

    def __str__(self) -> str:
        where = f"{self.op} {self.table}".strip() if (self.op or self.table) else ""
        base = super().__str__()
        return f"{where}: {base}" if where else base


class RowValidationError(SolverError):
    pass


class RunFailed(SolverError):
    pass


class InvalidPassTransition(SolverError):
    pass


@dataclass(frozen=True)
class SkipEntry:
    """One row (or whole property) left out of reconciliation, and why."""

    property_code: str
    unit_name: str
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {"property": self.property_code, "unit": self.unit_name, "reason": self.reason}
