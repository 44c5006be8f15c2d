# tests/conftest.py
from __future__ import annotations

import json
import os
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rentroll_sync import models  # noqa: F401  (registers tables)
from rentroll_sync.db import Base
from rentroll_sync.models import ImportStaging, Unit
from rentroll_sync.services.storage import SqlAlchemyStorage


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def storage(db):
    return SqlAlchemyStorage(db)


@pytest.fixture()
def units(db) -> dict[tuple[str, str], int]:
    """A few units in two properties: (property_code, unit_name) -> id."""
    out: dict[tuple[str, str], int] = {}
    for code, names in (("SB", ["101", "102", "103", "104"]), ("RS", ["A1", "A2"])):
        for name in names:
            u = Unit(property_code=code, unit_name=name)
            db.add(u)
            db.flush()
            out[(code, name)] = int(u.id)
    db.commit()
    return out


@pytest.fixture()
def stage(db):
    """stage(batch_id, report_type, rows) -> writes rows into import_staging."""

    def _stage(batch_id: str, report_type: str, rows: list[dict]) -> None:
        for r in rows:
            db.add(
                ImportStaging(
                    batch_id=batch_id,
                    report_type=report_type,
                    property_code=r.get("property_code"),
                    raw_data_json=json.dumps(r),
                    created_at=datetime(2026, 3, 2, 6, 30),
                )
            )
        db.commit()

    return _stage
