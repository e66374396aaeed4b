from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import ColumnElement, Delete, Row, Select, Update, and_, delete, not_, or_, select, update
from sqlalchemy.orm import Session

from app.domain.models import Paste
from app.domain.state_machine import PasteState, validate_transition
from app.observability import get_correlation_id


logger = logging.getLogger(__name__)


def visible_at(now: int) -> ColumnElement[bool]:
    """SQL counterpart of ``state_machine.is_visible`` for the ``pastes`` table."""

    return and_(
        or_(Paste.expires_at.is_(None), Paste.expires_at >= now),
        or_(Paste.max_views.is_(None), Paste.views < Paste.max_views),
    )


class PasteRepository:
    """
    Repository for Paste records.

    All database interaction for Paste should go through this class.
    Callers own the session and are responsible for committing.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_paste(
        self,
        *,
        paste_id: str,
        content: str,
        created_at: int,
        expires_at: Optional[int] = None,
        max_views: Optional[int] = None,
    ) -> Paste:
        """
        Create and persist a new Paste.

        Note: Paste content is set only at creation time and is not exposed
        for updates via this repository.
        """

        paste = Paste(
            id=paste_id,
            content=content,
            created_at=created_at,
            expires_at=expires_at,
            max_views=max_views,
            views=0,
        )
        self._session.add(paste)
        # Flush so that a primary key collision surfaces here.
        self._session.flush()
        return paste

    def get_paste_by_id(self, paste_id: str) -> Optional[Paste]:
        """Return a Paste by its id, or ``None`` if not found."""

        stmt: Select[tuple[Paste]] = select(Paste).where(Paste.id == paste_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def is_visible(self, paste_id: str, now: int) -> bool:
        stmt = select(Paste.id).where(Paste.id == paste_id, visible_at(now))
        return self._session.execute(stmt).first() is not None

    def consume_view_atomic(self, paste_id: str, now: int) -> Optional[Row]:
        """
        Consume one view of a visible Paste in a single conditional UPDATE.

        The visibility check and the increment happen in the same statement,
        so concurrent callers can never push ``views`` past ``max_views``.
        Returns ``(content, expires_at, max_views, views)`` with ``views``
        after the increment, or ``None`` if the paste is missing or not
        visible at ``now``.
        """

        stmt: Update = (
            update(Paste)
            .where(Paste.id == paste_id, visible_at(now))
            .values(views=Paste.views + 1)
            .returning(Paste.content, Paste.expires_at, Paste.max_views, Paste.views)
            .execution_options(synchronize_session=False)
        )
        row = self._session.execute(stmt).one_or_none()
        if row is None:
            return None

        if row.max_views is not None and row.views >= row.max_views:
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
        return row

    def delete_invisible(self, now: int) -> int:
        """Delete every Paste that is no longer visible at ``now``."""

        stmt: Delete = (
            delete(Paste)
            .where(not_(visible_at(now)))
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        return int(result.rowcount or 0)
