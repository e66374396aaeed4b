from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.clock import MAX_INSTANT_MS, clamp_instant
from app.db import Database
from app.observability import get_correlation_id
from app.repositories.paste_repository import PasteRepository
from app.services.helpers import generate_paste_id


logger = logging.getLogger(__name__)


class PasteError(Exception):
    """Base class for paste-related errors."""


class InvalidPasteParameters(PasteError):
    """Raised when creating a paste with invalid parameters."""


class PasteNotFoundError(PasteError):
    """
    Raised when a paste cannot be served.

    Unknown, expired and quota-exhausted pastes all raise this same error
    with the same message.
    """

    def __init__(self, message: str = "Paste not found.") -> None:
        super().__init__(message)


class StorageFailure(PasteError):
    """Raised when the backing storage could not complete an operation."""


MAX_ID_ATTEMPTS = 5

# Largest value the INTEGER max_views column holds on every backend.
MAX_VIEWS_LIMIT = 2**31 - 1


@dataclass(frozen=True)
class PasteView:
    """What a successful consuming read hands back to the caller."""

    content: str
    remaining_views: Optional[int]
    expires_at: Optional[int]


class PasteStore(Protocol):
    def create(
        self,
        content: str,
        now: int,
        max_views: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ) -> str:
        ...

    def fetch_and_consume(self, paste_id: str, now: int) -> PasteView:
        ...

    def exists(self, paste_id: str, now: int) -> bool:
        ...

    def purge(self, now: int) -> int:
        ...

    def ping(self) -> None:
        ...

    def close(self) -> None:
        ...


def _reject(message: str) -> None:
    logger.warning(
        message,
        extra={
            "event": "paste_create_invalid_parameters",
            "correlation_id": get_correlation_id(),
        },
    )
    raise InvalidPasteParameters(message)


def validate_create_params(
    content: Any,
    now: int,
    max_views: Any,
    ttl_seconds: Any,
) -> None:
    """
    Enforce the creation rules shared by every store:

    - ``content`` must be a non-empty string
    - ``max_views`` (if provided) must be an integer in ``[0, MAX_VIEWS_LIMIT]``
    - ``ttl_seconds`` (if provided) must be a finite number > 0
    - ``now`` and the resulting ``expires_at`` must lie within
      ``±MAX_INSTANT_MS``
    """
    if not isinstance(content, str) or not content:
        _reject("content must be a non-empty string.")

    if max_views is not None:
        if (
            isinstance(max_views, bool)
            or not isinstance(max_views, int)
            or not 0 <= max_views <= MAX_VIEWS_LIMIT
        ):
            _reject(f"max_views must be an integer between 0 and {MAX_VIEWS_LIMIT}.")

    if not -MAX_INSTANT_MS <= now <= MAX_INSTANT_MS:
        _reject("now is outside the supported time range.")

    if ttl_seconds is not None:
        if (
            isinstance(ttl_seconds, bool)
            or not isinstance(ttl_seconds, (int, float))
            or not math.isfinite(ttl_seconds)
            or ttl_seconds <= 0
        ):
            _reject("ttl_seconds must be a positive number of seconds.")
        # Checked before multiplying so huge floats never reach inf.
        if (
            ttl_seconds > 2 * MAX_INSTANT_MS / 1000
            or compute_expires_at(now, ttl_seconds) > MAX_INSTANT_MS
        ):
            _reject("ttl_seconds reaches past the supported time range.")


def compute_expires_at(now: int, ttl_seconds: Optional[float]) -> Optional[int]:
    if ttl_seconds is None:
        return None
    return now + round(ttl_seconds * 1000)


def remaining_views(max_views: Optional[int], views_after: int) -> Optional[int]:
    if max_views is None:
        return None
    return max_views - views_after


@dataclass
class PasteService:
    """
    SQL-backed paste store.

    Owns session lifecycle: creates a session per use case, commits on success,
    rolls back on exception, and closes the session in a finally block.
    Database errors surface as ``StorageFailure``.
    """

    session_factory: Callable[[], Session]
    id_generator: Callable[[], str] = field(default=generate_paste_id)
    max_id_attempts: int = MAX_ID_ATTEMPTS
    on_close: Optional[Callable[[], None]] = None
    ping_database: Optional[Callable[[], None]] = None

    @classmethod
    def from_database(cls, database: Database, **kwargs: Any) -> PasteService:
        return cls(
            session_factory=database.session_factory,
            on_close=database.close,
            ping_database=database.ping,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------
    def create(
        self,
        content: str,
        now: int,
        max_views: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ) -> str:
        validate_create_params(content, now, max_views, ttl_seconds)
        expires_at = compute_expires_at(now, ttl_seconds)

        for _attempt in range(self.max_id_attempts):
            paste_id = self.id_generator()
            session = self.session_factory()
            try:
                PasteRepository(session=session).create_paste(
                    paste_id=paste_id,
                    content=content,
                    created_at=now,
                    expires_at=expires_at,
                    max_views=max_views,
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.warning(
                    "Paste id collision; retrying with a fresh id",
                    extra={
                        "event": "paste_id_collision",
                        "paste_id": paste_id,
                        "correlation_id": get_correlation_id(),
                    },
                )
                continue
            except SQLAlchemyError as exc:
                session.rollback()
                raise self._storage_failure("create", exc) from exc
            finally:
                session.close()

            logger.info(
                "Paste created",
                extra={
                    "event": "paste_created",
                    "paste_id": paste_id,
                    "correlation_id": get_correlation_id(),
                },
            )
            return paste_id

        raise StorageFailure(
            f"Could not allocate a unique paste id after {self.max_id_attempts} attempts."
        )

    # -------------------------------------------------------------------------
    # Retrieval / viewing
    # -------------------------------------------------------------------------
    def fetch_and_consume(self, paste_id: str, now: int) -> PasteView:
        """
        Consume one view of a paste and return its content.

        The visibility check and the view increment are one conditional
        UPDATE, so the number of successful calls for a paste never exceeds
        its ``max_views``.
        """
        if not isinstance(paste_id, str) or not paste_id:
            raise PasteNotFoundError()

        session = self.session_factory()
        try:
            row = PasteRepository(session=session).consume_view_atomic(paste_id, clamp_instant(now))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise self._storage_failure("fetch_and_consume", exc) from exc
        finally:
            session.close()

        if row is None:
            logger.info(
                "Paste access denied",
                extra={
                    "event": "paste_access_denied",
                    "paste_id": paste_id,
                    "correlation_id": get_correlation_id(),
                },
            )
            raise PasteNotFoundError()

        logger.info(
            "Paste access successful",
            extra={
                "event": "paste_access_success",
                "paste_id": paste_id,
                "correlation_id": get_correlation_id(),
            },
        )
        return PasteView(
            content=row.content,
            remaining_views=remaining_views(row.max_views, row.views),
            expires_at=row.expires_at,
        )

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------
    def exists(self, paste_id: str, now: int) -> bool:
        """Non-consuming visibility check."""
        if not isinstance(paste_id, str) or not paste_id:
            return False

        session = self.session_factory()
        try:
            return PasteRepository(session=session).is_visible(paste_id, clamp_instant(now))
        except SQLAlchemyError as exc:
            raise self._storage_failure("exists", exc) from exc
        finally:
            session.close()

    def purge(self, now: int) -> int:
        session = self.session_factory()
        try:
            deleted = PasteRepository(session=session).delete_invisible(clamp_instant(now))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise self._storage_failure("purge", exc) from exc
        finally:
            session.close()

        if deleted:
            logger.info(
                "Purged pastes that are no longer visible",
                extra={"event": "pastes_purged", "purged": deleted},
            )
        return deleted

    def ping(self) -> None:
        if self.ping_database is None:
            return
        try:
            self.ping_database()
        except SQLAlchemyError as exc:
            raise self._storage_failure("ping", exc) from exc

    def close(self) -> None:
        if self.on_close is not None:
            self.on_close()

    def _storage_failure(self, operation: str, exc: Exception) -> StorageFailure:
        logger.error(
            "Storage failure during paste operation",
            extra={
                "event": "paste_storage_failure",
                "operation": operation,
                "error_type": type(exc).__name__,
                "correlation_id": get_correlation_id(),
            },
        )
        return StorageFailure(f"Storage failure during {operation}.")
