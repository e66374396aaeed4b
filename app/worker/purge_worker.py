from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from flask import Flask

from app.clock import Clock
from app.services.paste_service import PasteStore, StorageFailure


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


def purge_once(store: PasteStore, clock: Clock) -> int:
    """Delete every paste that is no longer visible; returns how many went."""

    try:
        return store.purge(clock.now_ms())
    except StorageFailure:
        logger.warning(
            "Purge worker: storage not ready; skipping cycle",
            extra={
                "event": "purge_worker_storage_error",
                "correlation_id": "purge-worker",
            },
        )
        return 0


@dataclass
class PurgeWorker:
    """Background thread that periodically purges gone pastes."""

    store: PasteStore
    clock: Clock
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            purge_once(self.store, self.clock)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._loop,
            name="purge-worker",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def start_purge_worker(app: Flask) -> PurgeWorker:
    """
    Start the purge worker for ``app`` in a background thread.

    Idempotent: a second call returns the worker already attached to the app.
    """

    existing = app.extensions.get("purge_worker")
    if existing is not None:
        return existing

    worker = PurgeWorker(
        store=app.extensions["paste_store"],
        clock=app.extensions["clock"],
        interval_seconds=app.config.get("PURGE_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS),
    )
    worker.start()
    app.extensions["purge_worker"] = worker
    return worker
