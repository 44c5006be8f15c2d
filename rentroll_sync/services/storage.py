# rentroll_sync/services/storage.py
"""
Request/response storage collaborator.

Every call returns a StorageResult; database errors are caught, the session
rolled back, and the error reported in `result.error` instead of raised. Each
call commits on success, so a run is at-least-once rather than atomic.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol, Sequence, TypeVar

from sqlalchemy import Date, DateTime, and_, false, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.dates import parse_flexible
from ..errors import StorageError
from ..models import (
    Alert,
    Application,
    Availability,
    Delinquency,
    ImportStaging,
    Lease,
    Resident,
    SolverEventRow,
    SolverRun,
    Tenancy,
    Unit,
    UnitFlag,
    WorkOrder,
)

log = logging.getLogger("rentroll_sync.storage")

T = TypeVar("T")

TABLES = {
    "units": Unit,
    "tenancies": Tenancy,
    "residents": Resident,
    "leases": Lease,
    "availabilities": Availability,
    "applications": Application,
    "unit_flags": UnitFlag,
    "work_orders": WorkOrder,
    "alerts": Alert,
    "delinquencies": Delinquency,
    "import_staging": ImportStaging,
    "solver_runs": SolverRun,
    "solver_events": SolverEventRow,
}


def chunked(seq: Sequence[T] | Iterable[T], size: Optional[int] = None) -> Iterator[list[T]]:
    n = int(size or settings.write_chunk_size)
    items = list(seq)
    for i in range(0, len(items), n):
        yield items[i : i + n]


@dataclass
class StorageResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self, *, table: str, op: str) -> "StorageResult":
        if self.error is not None:
            raise StorageError(self.error, table=table, op=op)
        return self


class Storage(Protocol):
    def select(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> StorageResult: ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> StorageResult: ...

    def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> StorageResult: ...

    def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: Sequence[str] = ("id",)
    ) -> StorageResult: ...


class SqlAlchemyStorage:
    def __init__(self, db: Session, *, chunk_size: Optional[int] = None) -> None:
        self.db = db
        self.chunk_size = int(chunk_size or settings.write_chunk_size)

    # -----------------------------
    # value conversion
    # -----------------------------
    @staticmethod
    def _model(table: str):
        model = TABLES.get(table)
        if model is None:
            raise KeyError(f"unknown table: {table}")
        return model

    @staticmethod
    def _convert(col, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(col.type, DateTime):
            if isinstance(value, str):
                return datetime.fromisoformat(value)
            return value
        if isinstance(col.type, Date):
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            parsed = parse_flexible(value)
            if parsed is None:
                raise ValueError(f"{col.name}: not a date: {value!r}")
            return parsed
        return value

    def _to_db(self, model, row: Mapping[str, Any]) -> dict[str, Any]:
        cols = model.__table__.columns
        out: dict[str, Any] = {}
        for k, v in row.items():
            if k in cols:
                if k.endswith("_json") and not isinstance(v, (str, type(None))):
                    v = json.dumps(v, ensure_ascii=False, default=str)
                out[k] = self._convert(cols[k], v)
            elif f"{k}_json" in cols:
                out[f"{k}_json"] = json.dumps(v, ensure_ascii=False, default=str) if v is not None else None
            else:
                raise KeyError(f"{model.__tablename__}: unknown column {k}")
        return out

    @staticmethod
    def _from_db(obj) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for col in obj.__table__.columns:
            v = getattr(obj, col.name)
            if isinstance(v, date) and not isinstance(v, datetime):
                v = v.isoformat()
            out[col.name] = v
            if col.name.endswith("_json"):
                out[col.name[: -len("_json")]] = json.loads(v) if v else None
        return out

    def _where(self, model, filters: Optional[Mapping[str, Any]]) -> list:
        clauses = []
        cols = model.__table__.columns
        for k, v in (filters or {}).items():
            col = getattr(model, k)
            if v is None:
                clauses.append(col.is_(None))
            elif isinstance(v, (list, tuple, set, frozenset)):
                values = [self._convert(cols[k], x) for x in v]
                clauses.append(col.in_(values) if values else false())
            else:
                clauses.append(col == self._convert(cols[k], v))
        return clauses

    def _fail(self, table: str, op: str, e: Exception) -> StorageResult:
        self.db.rollback()
        log.error("storage %s on %s failed: %s", op, table, e, extra={"table": table, "op": op})
        return StorageResult(error=str(e))

    # -----------------------------
    # operations
    # -----------------------------
    def select(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> StorageResult:
        model = self._model(table)
        filters = dict(filters or {})

        # Split oversized IN lists across several queries.
        big = next(
            (k for k, v in filters.items() if isinstance(v, (list, tuple, set, frozenset)) and len(v) > self.chunk_size),
            None,
        )
        try:
            rows: list[dict[str, Any]] = []
            batches = [filters]
            if big is not None:
                batches = [{**filters, big: part} for part in chunked(sorted(filters[big], key=str), self.chunk_size)]
            for f in batches:
                stmt = select(model).where(and_(*self._where(model, f))).order_by(model.id)
                rows.extend(self._from_db(obj) for obj in self.db.scalars(stmt))
            return StorageResult(rows=rows, count=len(rows))
        except (SQLAlchemyError, ValueError) as e:
            return self._fail(table, "select", e)

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> StorageResult:
        model = self._model(table)
        out: list[dict[str, Any]] = []
        try:
            for part in chunked(rows, self.chunk_size):
                objs = [model(**self._to_db(model, r)) for r in part]
                self.db.add_all(objs)
                self.db.flush()
                out.extend(self._from_db(o) for o in objs)
                self.db.commit()
            return StorageResult(rows=out, count=len(out))
        except (SQLAlchemyError, ValueError, KeyError, TypeError) as e:
            return self._fail(table, "insert", e)

    def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> StorageResult:
        model = self._model(table)
        try:
            values = self._to_db(model, patch)
            clauses = self._where(model, filters)
            if not clauses:
                raise ValueError("refusing to update without a filter")
            res = self.db.execute(
                update(model).where(and_(*clauses)).values(**values).execution_options(synchronize_session=False)
            )
            self.db.commit()
            self.db.expire_all()
            return StorageResult(count=int(res.rowcount or 0))
        except (SQLAlchemyError, ValueError, KeyError) as e:
            return self._fail(table, "update", e)

    def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: Sequence[str] = ("id",)
    ) -> StorageResult:
        model = self._model(table)
        keys = list(conflict_key)
        out: list[dict[str, Any]] = []
        try:
            for part in chunked(rows, self.chunk_size):
                prepared = [self._to_db(model, r) for r in part]
                lead = keys[0]
                lead_values = list({r[lead] for r in prepared if r.get(lead) is not None})
                existing = {}
                if lead_values:
                    stmt = select(model).where(getattr(model, lead).in_(lead_values))
                    for obj in self.db.scalars(stmt):
                        existing[tuple(getattr(obj, k) for k in keys)] = obj

                touched = []
                for r in prepared:
                    key = tuple(r.get(k) for k in keys)
                    obj = existing.get(key)
                    if obj is None:
                        obj = model(**r)
                        self.db.add(obj)
                        existing[key] = obj
                    else:
                        for k, v in r.items():
                            setattr(obj, k, v)
                    touched.append(obj)
                self.db.flush()
                out.extend(self._from_db(o) for o in touched)
                self.db.commit()
            return StorageResult(rows=out, count=len(out))
        except (SQLAlchemyError, ValueError, KeyError, TypeError) as e:
            return self._fail(table, "upsert", e)
