from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current instant, in milliseconds since the epoch."""

    def now_ms(self) -> int:
        ...


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)


@dataclass
class FixedClock:
    """
    Deterministic clock returning a manually controlled instant.

    Useful in tests and anywhere a reproducible "now" is needed.
    """

    instant_ms: int = 0

    def now_ms(self) -> int:
        return self.instant_ms

    def advance(self, ms: int) -> int:
        self.instant_ms += ms
        return self.instant_ms


# Largest instant an ECMAScript Date can hold (100,000,000 days either side of
# the epoch). Stored instants stay within it, which also keeps them in BIGINT.
MAX_INSTANT_MS = 8_640_000_000_000_000

_MS_PER_DAY = 86_400_000


def clamp_instant(instant_ms: int) -> int:
    """
    Pull ``instant_ms`` to just outside the storable range.

    Every stored instant lies within ``±MAX_INSTANT_MS``, so comparisons
    against the clamped value give the same answers as the original.
    """
    return max(-MAX_INSTANT_MS - 1, min(instant_ms, MAX_INSTANT_MS + 1))


def _civil_from_days(days: int) -> tuple[int, int, int]:
    # Proleptic Gregorian (year, month, day) for a day count since 1970-01-01.
    days += 719_468
    era = days // 146_097
    doe = days - era * 146_097
    yoe = (doe - doe // 1460 + doe // 36_524 - doe // 146_096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + 3 if mp < 10 else mp - 9
    return yoe + era * 400 + (month <= 2), month, day


def _extended_iso8601(instant_ms: int) -> str:
    days, ms_of_day = divmod(instant_ms, _MS_PER_DAY)
    year, month, day = _civil_from_days(days)
    hours, rest = divmod(ms_of_day, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    if 0 <= year <= 9999:
        year_text = f"{year:04d}"
    else:
        year_text = f"{'+' if year > 0 else '-'}{abs(year):06d}"
    return (
        f"{year_text}-{month:02d}-{day:02d}"
        f"T{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}Z"
    )


def to_iso8601(instant_ms: int) -> str:
    """
    Render an epoch-millisecond instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Years outside 0000-9999 use the signed six-digit form (``+033712-...``)
    that ECMAScript's ``toISOString`` produces.
    """
    seconds, millis = divmod(instant_ms, 1000)
    try:
        dt = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    except (OverflowError, OSError, ValueError):
        return _extended_iso8601(instant_ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
