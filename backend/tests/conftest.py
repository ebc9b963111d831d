from __future__ import annotations

import os
import tempfile

# Settings are read at import time, so the database must be chosen before any app import.
_DB_DIR = tempfile.mkdtemp(prefix="scheduler-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'scheduler.db')}"
os.environ.setdefault("ENVIRONMENT", "test")

import pytest

import models  # noqa: F401  (registers every table on Base.metadata)
from core.database import ENGINE, SessionLocal
from models.base import Base


@pytest.fixture()
def db():
    Base.metadata.create_all(ENGINE)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(ENGINE)


@pytest.fixture()
def database_url() -> str:
    return os.environ["DATABASE_URL"]
