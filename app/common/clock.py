from __future__ import annotations

from datetime import datetime, timezone


class Clock:
    """Source of "now" for every time-gated rule (UTC, timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = Clock()
