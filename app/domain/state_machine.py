from __future__ import annotations

import enum
from typing import Iterable, Optional


class PasteState(str, enum.Enum):
    VISIBLE = "VISIBLE"
    EXPIRED = "EXPIRED"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"


class InvalidPasteStateTransition(Exception):
    """Raised when an invalid state transition is requested for a Paste."""


# Both terminal states are externally indistinguishable ("gone") and final.
_ALLOWED_TRANSITIONS: set[tuple[PasteState, PasteState]] = {
    (PasteState.VISIBLE, PasteState.EXPIRED),
    (PasteState.VISIBLE, PasteState.QUOTA_EXHAUSTED),
}


def evaluate_state(
    *,
    expires_at: Optional[int],
    max_views: Optional[int],
    views: int,
    now: int,
) -> PasteState:
    """
    Classify a paste snapshot at instant ``now``.

    Time-based expiry wins over quota exhaustion when both apply.
    """
    if expires_at is not None and now > expires_at:
        return PasteState.EXPIRED
    if max_views is not None and views >= max_views:
        return PasteState.QUOTA_EXHAUSTED
    return PasteState.VISIBLE


def is_visible(
    *,
    expires_at: Optional[int],
    max_views: Optional[int],
    views: int,
    now: int,
) -> bool:
    return (
        evaluate_state(
            expires_at=expires_at,
            max_views=max_views,
            views=views,
            now=now,
        )
        is PasteState.VISIBLE
    )


def _coerce_state(value: PasteState | str) -> PasteState:
    """Normalize incoming state values to ``PasteState``."""
    if isinstance(value, PasteState):
        return value
    try:
        return PasteState(value)
    except ValueError as exc:
        valid: Iterable[str] = (s.value for s in PasteState)
        raise InvalidPasteStateTransition(
            f"Unknown paste state {value!r}. Valid states: {', '.join(valid)}"
        ) from exc


def validate_transition(
    current_state: PasteState | str,
    next_state: PasteState | str,
) -> None:
    """
    Validate a transition between two Paste states.

    - Allowed transitions: VISIBLE → EXPIRED, VISIBLE → QUOTA_EXHAUSTED.
    - Nothing leads back to VISIBLE, and terminal states never change into
      one another; such requests raise ``InvalidPasteStateTransition``.
    - A \"no-op\" transition (``current_state == next_state``) is always allowed.
    """

    current = _coerce_state(current_state)
    target = _coerce_state(next_state)

    if current is target:
        return

    if (current, target) not in _ALLOWED_TRANSITIONS:
        raise InvalidPasteStateTransition(
            f"Cannot transition Paste from {current.value} to {target.value}."
        )
