from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from app.db import Database
from app.domain.models import Paste
from app.domain.state_machine import (
    InvalidPasteStateTransition,
    PasteState,
    evaluate_state,
    is_visible,
    validate_transition,
)
from app.repositories.paste_repository import PasteRepository


@pytest.fixture
def session(database: Database):
    with database.session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def paste_repo(session: Session) -> PasteRepository:
    return PasteRepository(session=session)


def _add_paste(session: Session, **overrides) -> Paste:
    fields = {
        "id": "paste-1",
        "content": "secret",
        "created_at": 0,
        "expires_at": None,
        "max_views": None,
        "views": 0,
    }
    fields.update(overrides)
    paste = Paste(**fields)
    session.add(paste)
    session.commit()
    return paste


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "current,target",
    [
        (PasteState.EXPIRED, PasteState.VISIBLE),
        (PasteState.QUOTA_EXHAUSTED, PasteState.VISIBLE),
        (PasteState.EXPIRED, PasteState.QUOTA_EXHAUSTED),
        (PasteState.QUOTA_EXHAUSTED, PasteState.EXPIRED),
    ],
)
def test_no_transition_leaves_a_terminal_state(current: PasteState, target: PasteState) -> None:
    with pytest.raises(InvalidPasteStateTransition):
        validate_transition(current, target)


def test_visible_paste_may_expire_or_run_out_of_views() -> None:
    validate_transition(PasteState.VISIBLE, PasteState.EXPIRED)
    validate_transition("VISIBLE", "QUOTA_EXHAUSTED")
    validate_transition(PasteState.EXPIRED, PasteState.EXPIRED)


def test_unknown_state_is_rejected() -> None:
    with pytest.raises(InvalidPasteStateTransition, match="Unknown paste state"):
        validate_transition("DELETED", PasteState.VISIBLE)


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


def test_expiry_instant_itself_is_still_visible() -> None:
    assert is_visible(expires_at=1000, max_views=None, views=0, now=1000)
    assert not is_visible(expires_at=1000, max_views=None, views=0, now=1001)


def test_quota_is_exhausted_once_views_reach_max_views() -> None:
    assert is_visible(expires_at=None, max_views=2, views=1, now=0)
    assert evaluate_state(expires_at=None, max_views=2, views=2, now=0) is PasteState.QUOTA_EXHAUSTED


def test_zero_max_views_is_never_visible() -> None:
    assert evaluate_state(expires_at=None, max_views=0, views=0, now=0) is PasteState.QUOTA_EXHAUSTED


def test_time_expiry_takes_precedence_over_quota() -> None:
    state = evaluate_state(expires_at=10, max_views=1, views=1, now=11)
    assert state is PasteState.EXPIRED


def test_unlimited_paste_is_visible_forever() -> None:
    assert is_visible(expires_at=None, max_views=None, views=10**9, now=2**62)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


def test_paste_content_is_immutable(session: Session) -> None:
    paste = _add_paste(session, content="immutable content")

    with pytest.raises(ValueError):
        paste.content = "new content"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


def test_consume_view_returns_views_after_increment(session: Session, paste_repo: PasteRepository) -> None:
    _add_paste(session, max_views=3)

    first = paste_repo.consume_view_atomic("paste-1", now=5)
    second = paste_repo.consume_view_atomic("paste-1", now=5)
    session.commit()

    assert first is not None and first.views == 1
    assert second is not None and second.views == 2
    assert second.content == "secret"
    assert second.max_views == 3

    refreshed = session.get(Paste, "paste-1", populate_existing=True)
    assert refreshed is not None
    assert refreshed.views == 2


def test_consume_view_refuses_exhausted_paste(session: Session, paste_repo: PasteRepository) -> None:
    _add_paste(session, max_views=1, views=1)

    assert paste_repo.consume_view_atomic("paste-1", now=0) is None
    session.commit()

    refreshed = session.get(Paste, "paste-1", populate_existing=True)
    assert refreshed is not None
    assert refreshed.views == 1


def test_consume_view_refuses_expired_paste(session: Session, paste_repo: PasteRepository) -> None:
    _add_paste(session, expires_at=100)

    assert paste_repo.consume_view_atomic("paste-1", now=101) is None
    assert paste_repo.consume_view_atomic("missing", now=0) is None


def test_repository_visibility_matches_domain_rule(session: Session, paste_repo: PasteRepository) -> None:
    cases = [
        {"id": "a", "expires_at": None, "max_views": None, "views": 0},
        {"id": "b", "expires_at": 50, "max_views": None, "views": 0},
        {"id": "c", "expires_at": 150, "max_views": 2, "views": 1},
        {"id": "d", "expires_at": None, "max_views": 2, "views": 2},
        {"id": "e", "expires_at": None, "max_views": 0, "views": 0},
    ]
    for case in cases:
        _add_paste(session, **case)

    for case in cases:
        expected = is_visible(
            expires_at=case["expires_at"],
            max_views=case["max_views"],
            views=case["views"],
            now=100,
        )
        assert paste_repo.is_visible(case["id"], now=100) is expected


def test_delete_invisible_keeps_visible_pastes(session: Session, paste_repo: PasteRepository) -> None:
    _add_paste(session, id="live", expires_at=1000)
    _add_paste(session, id="expired", expires_at=10)
    _add_paste(session, id="exhausted", max_views=1, views=1)

    assert paste_repo.delete_invisible(now=500) == 2
    session.commit()

    assert paste_repo.get_paste_by_id("live") is not None
    assert paste_repo.get_paste_by_id("expired") is None
    assert paste_repo.get_paste_by_id("exhausted") is None
