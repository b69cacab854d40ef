from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from enum import Enum

from leadwatch.ledger import Ledger
from leadwatch.utils import at_local, to_local

NOON = time(12, 0)


class WindowState(str, Enum):
    OUTSIDE_WINDOW = "outside_window"
    QUOTA_EXHAUSTED = "quota_exhausted"
    MORNING_PAUSE = "morning_pause"
    ACTIVE = "active"


@dataclass(frozen=True)
class Decision:
    state: WindowState
    sleep_until: datetime | None = None
    release_source: bool = False
    potential_today: int = 0

    @property
    def active(self) -> bool:
        return self.state is WindowState.ACTIVE

    def sleep_seconds(self, now: datetime) -> float:
        if self.sleep_until is None:
            return 0.0
        # Same-zone subtraction is wall-clock arithmetic; compare instants instead.
        delta = self.sleep_until.astimezone(timezone.utc) - now.astimezone(timezone.utc)
        return max(0.0, delta.total_seconds())


class Scheduler:
    """Decides, for a given instant, whether the watcher should scan or sleep.

    Checks run in priority order: operating window, daily quota, morning pause.
    Nothing is cached between calls; every decision is derived from ``now`` and
    the ledger passed in.
    """

    def __init__(
        self,
        window_start: time,
        window_end: time,
        daily_limit: int,
        morning_limit: int,
        tz: tzinfo | None = None,
    ) -> None:
        self.window_start = window_start
        self.window_end = window_end
        self.daily_limit = daily_limit
        self.morning_limit = morning_limit
        self.tz = tz

    @property
    def zero_window(self) -> bool:
        return self.window_start == self.window_end

    def evaluate(self, now: datetime, ledger: Ledger) -> Decision:
        local = to_local(now, self.tz)
        today = local.date()
        start = at_local(today, self.window_start, self.tz)
        end = at_local(today, self.window_end, self.tz)
        next_start = at_local(today + timedelta(days=1), self.window_start, self.tz)

        todays = ledger.potential_matched_on(today, self.tz)
        count = len(todays)

        if self.zero_window or local < start or local > end:
            sleep_until = start if local < start else next_start
            return Decision(WindowState.OUTSIDE_WINDOW, sleep_until, release_source=True, potential_today=count)

        if count >= self.daily_limit:
            return Decision(WindowState.QUOTA_EXHAUSTED, next_start, potential_today=count)

        noon = at_local(today, NOON, self.tz)
        if count and count == self.morning_limit and local < noon:
            earliest = min(lead.matched_on for lead in todays)
            if earliest < noon:
                return Decision(WindowState.MORNING_PAUSE, noon, potential_today=count)

        return Decision(WindowState.ACTIVE, potential_today=count)
