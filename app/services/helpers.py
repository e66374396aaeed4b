from __future__ import annotations

import secrets

# 9 random bytes -> 12 URL-safe characters.
PASTE_ID_BYTES = 9


def generate_paste_id() -> str:
    return secrets.token_urlsafe(PASTE_ID_BYTES)
