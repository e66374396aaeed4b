"""InMemoryPasteStore: dict-backed paste store for tests and single-process use."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from app.domain.state_machine import PasteState, evaluate_state, validate_transition
from app.observability import get_correlation_id
from app.services.helpers import generate_paste_id
from app.services.paste_service import (
    MAX_ID_ATTEMPTS,
    PasteNotFoundError,
    PasteView,
    StorageFailure,
    compute_expires_at,
    remaining_views,
    validate_create_params,
)


logger = logging.getLogger(__name__)


@dataclass
class _Record:
    content: str
    created_at: int
    expires_at: Optional[int]
    max_views: Optional[int]
    views: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def state_at(self, now: int) -> PasteState:
        return evaluate_state(
            expires_at=self.expires_at,
            max_views=self.max_views,
            views=self.views,
            now=now,
        )


class InMemoryPasteStore:
    """
    In-memory store. Data is lost on process exit.

    The record table is guarded by one lock; each record carries its own
    lock so that consuming reads of different pastes never contend.
    """

    def __init__(
        self,
        id_generator: Callable[[], str] = generate_paste_id,
        max_id_attempts: int = MAX_ID_ATTEMPTS,
    ) -> None:
        self._records: dict[str, _Record] = {}
        self._table_lock = threading.Lock()
        self._id_generator = id_generator
        self._max_id_attempts = max_id_attempts

    def create(
        self,
        content: str,
        now: int,
        max_views: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ) -> str:
        validate_create_params(content, now, max_views, ttl_seconds)
        record = _Record(
            content=content,
            created_at=now,
            expires_at=compute_expires_at(now, ttl_seconds),
            max_views=max_views,
        )

        with self._table_lock:
            for _attempt in range(self._max_id_attempts):
                paste_id = self._id_generator()
                if paste_id not in self._records:
                    self._records[paste_id] = record
                    break
                logger.warning(
                    "Paste id collision; retrying with a fresh id",
                    extra={"event": "paste_id_collision", "paste_id": paste_id},
                )
            else:
                raise StorageFailure(
                    f"Could not allocate a unique paste id after {self._max_id_attempts} attempts."
                )

        logger.info(
            "Paste created",
            extra={
                "event": "paste_created",
                "paste_id": paste_id,
                "correlation_id": get_correlation_id(),
            },
        )
        return paste_id

    def fetch_and_consume(self, paste_id: str, now: int) -> PasteView:
        if not isinstance(paste_id, str) or not paste_id:
            raise PasteNotFoundError()

        with self._table_lock:
            record = self._records.get(paste_id)
        if record is None:
            raise PasteNotFoundError()

        with record.lock:
            if record.state_at(now) is not PasteState.VISIBLE:
                logger.info(
                    "Paste access denied",
                    extra={
                        "event": "paste_access_denied",
                        "paste_id": paste_id,
                        "correlation_id": get_correlation_id(),
                    },
                )
                raise PasteNotFoundError()

            record.views += 1
            view = PasteView(
                content=record.content,
                remaining_views=remaining_views(record.max_views, record.views),
                expires_at=record.expires_at,
            )
            exhausted = record.state_at(now) is PasteState.QUOTA_EXHAUSTED

        if exhausted:
            validate_transition(PasteState.VISIBLE, PasteState.QUOTA_EXHAUSTED)
            logger.info(
                "Paste state transition",
                extra={
                    "event": "paste_state_transition",
                    "paste_id": paste_id,
                    "state_from": PasteState.VISIBLE.value,
                    "state_to": PasteState.QUOTA_EXHAUSTED.value,
                    "correlation_id": get_correlation_id(),
                },
            )
        logger.info(
            "Paste access successful",
            extra={
                "event": "paste_access_success",
                "paste_id": paste_id,
                "correlation_id": get_correlation_id(),
            },
        )
        return view

    def exists(self, paste_id: str, now: int) -> bool:
        with self._table_lock:
            record = self._records.get(paste_id)
        if record is None:
            return False
        with record.lock:
            return record.state_at(now) is PasteState.VISIBLE

    def purge(self, now: int) -> int:
        with self._table_lock:
            gone = [
                paste_id
                for paste_id, record in self._records.items()
                if record.state_at(now) is not PasteState.VISIBLE
            ]
            for paste_id in gone:
                del self._records[paste_id]

        if gone:
            logger.info(
                "Purged pastes that are no longer visible",
                extra={"event": "pastes_purged", "purged": len(gone)},
            )
        return len(gone)

    def ping(self) -> None:
        return None

    def close(self) -> None:
        with self._table_lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._records)
