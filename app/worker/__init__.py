"""Background workers: retention of pastes that are no longer visible."""

from app.worker.purge_worker import PurgeWorker, purge_once, start_purge_worker

__all__ = ["PurgeWorker", "purge_once", "start_purge_worker"]
