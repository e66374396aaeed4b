from __future__ import annotations

import os
from typing import Any, Mapping

from flask import Flask
from flask_cors import CORS

from .api.pastes import api_bp
from .clock import Clock, SystemClock
from .config import get_config
from .db import init_db
from .observability import init_observability
from .services.memory_store import InMemoryPasteStore
from .services.paste_service import PasteService, PasteStore
from .worker.purge_worker import start_purge_worker


def _build_store(app: Flask) -> PasteStore:
    backend = app.config.get("PASTE_STORE", "sql")
    if backend == "memory":
        return InMemoryPasteStore()
    if backend == "sql":
        return PasteService.from_database(init_db(app))
    raise RuntimeError(f"Unknown PASTE_STORE backend {backend!r}; use 'sql' or 'memory'.")


def create_app(
    env_name: str | None = None,
    config_overrides: Mapping[str, Any] | None = None,
    *,
    clock: Clock | None = None,
) -> Flask:
    """
    Application factory for the paste service.

    The configuration is selected based on the provided ``env_name`` or,
    if not given, the ``APP_ENV`` environment variable (falling back to
    ``development``). The paste store is opened here and must be released
    with :func:`shutdown_app`.
    """
    if env_name is None:
        env_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app_config = get_config(env_name)
    app.config.from_object(app_config)
    if config_overrides:
        app.config.update(config_overrides)

    CORS(
        app
    )

    # Initialize infrastructure layers
    init_observability(app)
    app.extensions["clock"] = clock or SystemClock()
    app.extensions["paste_store"] = _build_store(app)

    app.register_blueprint(api_bp)

    # Purging uses wall-clock time, which would fight injected test instants.
    if (
        app.config.get("PURGE_ENABLED", False)
        and not app.config.get("TESTING", False)
        and not app.config.get("TEST_MODE", False)
    ):
        start_purge_worker(app)

    return app


def shutdown_app(app: Flask) -> None:
    """Stop background workers and close the paste store."""

    worker = app.extensions.pop("purge_worker", None)
    if worker is not None:
        worker.stop(timeout=5.0)

    store = app.extensions.pop("paste_store", None)
    if store is not None:
        store.close()
