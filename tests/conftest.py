from __future__ import annotations

from typing import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from app import create_app, shutdown_app
from app.clock import FixedClock
from app.db import Database
from app.services.memory_store import InMemoryPasteStore
from app.services.paste_service import PasteService, PasteStore


@pytest.fixture(scope="function")
def database() -> Generator[Database, None, None]:
    """
    Fresh in-memory SQLite database for each test function.

    Keeps tests focused on paste behavior while still exercising real SQL.
    """

    db = Database("sqlite+pysqlite:///:memory:").open()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def paste_service(database: Database) -> PasteService:
    return PasteService.from_database(database)


@pytest.fixture
def memory_store() -> InMemoryPasteStore:
    return InMemoryPasteStore()


@pytest.fixture(params=["sql", "memory"])
def store(request: pytest.FixtureRequest) -> Generator[PasteStore, None, None]:
    """Every PasteStore implementation, so contract tests run against each."""

    if request.param == "sql":
        db = Database("sqlite+pysqlite:///:memory:").open()
        paste_store: PasteStore = PasteService.from_database(db)
    else:
        paste_store = InMemoryPasteStore()
    try:
        yield paste_store
    finally:
        paste_store.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(1_700_000_000_000)


@pytest.fixture
def app(clock: FixedClock) -> Generator[Flask, None, None]:
    flask_app = create_app("testing", clock=clock)
    try:
        yield flask_app
    finally:
        shutdown_app(flask_app)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()
