from __future__ import annotations

import logging

from flask import Flask
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Owns the SQLAlchemy engine and session factory backing one paste store.

    Opened once at process start and closed at shutdown; nothing here is
    module-global, so tests can create as many independent databases as
    they like.
    """

    def __init__(self, database_uri: str, *, echo: bool = False) -> None:
        self.database_uri = database_uri
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open. Call open() first.")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            raise RuntimeError("Database is not open. Call open() first.")
        return self._session_factory

    def open(self, *, create_schema: bool = True) -> Database:
        if self._engine is not None:
            return self

        url = make_url(self.database_uri)
        engine_kwargs: dict = {"echo": self.echo, "future": True}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise each session sees an empty database.
                engine_kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.database_uri, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )

        if create_schema:
            # Import models so that Base.metadata knows about every table.
            from app.domain import models as _models  # noqa: F401

            Base.metadata.create_all(self._engine)

        logger.info(
            "Database opened",
            extra={"event": "database_opened", "backend": url.get_backend_name()},
        )
        return self

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database closed", extra={"event": "database_closed"})


def init_db(app: Flask) -> Database:
    """
    Open the database configured on the Flask app.

    Reads the database URL from ``app.config['SQLALCHEMY_DATABASE_URI']``.
    """
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        raise RuntimeError(
            "SQLALCHEMY_DATABASE_URI is not configured on the Flask app."
        )

    database = Database(
        database_uri,
        echo=app.config.get("SQLALCHEMY_ECHO", False),
    )
    return database.open(create_schema=app.config.get("AUTO_CREATE_SCHEMA", True))
