from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple
import re

from .errors import ConfigurationError


_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_DAY_MINUTES = 24 * 60


def _parse_hhmm(value: str) -> Tuple[int, int]:
    m = _HHMM_RE.match((value or "").strip())
    if not m:
        raise ConfigurationError(f"Unsupported event time: {value!r} (use 'HH:MM' in UTC)")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ConfigurationError(f"Event time out of range: {value!r}")
    return hour, minute


@dataclass(frozen=True)
class NewsEvent:
    time: str  # HH:MM, UTC
    label: str
    days: Optional[Tuple[int, ...]] = None  # 0=Mon..6=Sun, None = every day

    @property
    def minute_of_day(self) -> int:
        h, m = _parse_hhmm(self.time)
        return h * 60 + m


# High-impact US releases the desk watched by default.
DEFAULT_EVENTS: Tuple[NewsEvent, ...] = (
    NewsEvent("12:30", "US Non-Farm Payrolls"),
    NewsEvent("14:00", "FOMC rate decision"),
    NewsEvent("12:15", "Fed chair speech"),
)


class NewsWindowFilter:
    """Blacks out analysis strictly less than ``window_minutes`` from any configured event."""

    def __init__(self, events: Iterable[NewsEvent] = DEFAULT_EVENTS, window_minutes: int = 90, enabled: bool = True):
        self.events: List[NewsEvent] = list(events)
        self.window_minutes = int(window_minutes)
        self.enabled = bool(enabled)
        if self.window_minutes < 0:
            raise ConfigurationError("news window_minutes must be >= 0")
        for ev in self.events:
            _parse_hhmm(ev.time)

    def active_event(self, now: datetime) -> Optional[NewsEvent]:
        if not self.enabled or not self.events:
            return None
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        dt = now.astimezone(timezone.utc)
        current = dt.hour * 60 + dt.minute

        for ev in self.events:
            diff = abs(current - ev.minute_of_day)
            diff = min(diff, _DAY_MINUTES - diff)  # windows wrap around midnight
            if diff >= self.window_minutes:
                continue
            if ev.days is not None and not self._day_matches(dt, ev, current):
                continue
            return ev
        return None

    def blocked(self, now: datetime) -> bool:
        return self.active_event(now) is not None

    @staticmethod
    def _day_matches(dt: datetime, ev: NewsEvent, current: int) -> bool:
        # The event's own weekday decides, even when the window crosses midnight.
        offset = ev.minute_of_day - current
        if offset > _DAY_MINUTES // 2:
            day = (dt.weekday() - 1) % 7
        elif offset < -_DAY_MINUTES // 2:
            day = (dt.weekday() + 1) % 7
        else:
            day = dt.weekday()
        return day in set(ev.days)
