from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple, Union

DEFAULT_HOURS_TO_DISPLAY = 6
DEFAULT_PIXELS_PER_HOUR = 600
DEFAULT_EXTEND_HOURS = 3

# Cells narrower than this after clipping are not rendered.
MIN_CELL_WIDTH = 1.0


def window_start(reference_date: Union[date, datetime], now: datetime) -> datetime:
    """Start of the guide: the selected calendar day at the current hour.

    Mixing the viewer's day with the real hour keeps "today" starting at the
    live edge; other days start at the same clock hour.
    """

    wall = datetime(reference_date.year, reference_date.month, reference_date.day, now.hour)
    tz = now.tzinfo
    if tz is None:
        return wall
    if isinstance(tz, timezone) and now.utcoffset() == now.astimezone().utcoffset():
        # A fixed offset taken from the system zone only holds for its own date.
        return wall.astimezone()
    return wall.replace(tzinfo=tz)


def window_end(start: datetime, hours_displayed: int) -> datetime:
    return start + timedelta(hours=hours_displayed)


def time_to_pixel(t: datetime, start: datetime, pixels_per_hour: float) -> float:
    minutes = (t - start).total_seconds() / 60.0
    return minutes / (60.0 / pixels_per_hour)


def pixel_to_time(x: float, start: datetime, pixels_per_hour: float) -> datetime:
    minutes = x * (60.0 / pixels_per_hour)
    return start + timedelta(minutes=minutes)


@dataclass
class GuideWindow:
    start: datetime
    hours_displayed: int = DEFAULT_HOURS_TO_DISPLAY
    pixels_per_hour: float = DEFAULT_PIXELS_PER_HOUR

    @property
    def end(self) -> datetime:
        return window_end(self.start, self.hours_displayed)

    @property
    def width_pixels(self) -> float:
        return self.hours_displayed * self.pixels_per_hour

    def to_pixel(self, t: datetime) -> float:
        return time_to_pixel(t, self.start, self.pixels_per_hour)

    def to_time(self, x: float) -> datetime:
        return pixel_to_time(x, self.start, self.pixels_per_hour)

    def contains(self, t: datetime) -> bool:
        return self.start <= t <= self.end

    def extend(self, delta_hours: int) -> Tuple[datetime, datetime]:
        """Grow the window to the right; returns the newly exposed range."""

        if delta_hours <= 0:
            raise ValueError("window can only grow")
        old_end = self.end
        self.hours_displayed += int(delta_hours)
        return old_end, self.end

    def shrink_to(self, hours_displayed: int) -> None:
        # Only used to roll back an extension whose fetch failed.
        self.hours_displayed = min(self.hours_displayed, int(hours_displayed))

    @classmethod
    def for_day(
        cls,
        reference_date: Union[date, datetime],
        now: datetime,
        *,
        hours_displayed: int = DEFAULT_HOURS_TO_DISPLAY,
        pixels_per_hour: float = DEFAULT_PIXELS_PER_HOUR,
    ) -> "GuideWindow":
        return cls(
            start=window_start(reference_date, now),
            hours_displayed=hours_displayed,
            pixels_per_hour=pixels_per_hour,
        )


def clip_cell(
    program_start: datetime,
    program_end: datetime,
    window: GuideWindow,
    *,
    min_width: float = MIN_CELL_WIDTH,
) -> Optional[Tuple[float, float]]:
    ws, we = window.start, window.end
    if program_end <= ws or program_start > we:
        return None

    left = window.to_pixel(program_start)
    width = window.to_pixel(program_end) - left
    if left < 0:
        # The part before the window is cut off, not the tail.
        width += left
        left = 0.0

    width = min(width, window.width_pixels - left)
    if width < min_width:
        return None
    return left, width


def time_slots(window: GuideWindow, *, minutes: int = 30) -> List[Tuple[datetime, float]]:
    out: List[Tuple[datetime, float]] = []
    step = timedelta(minutes=minutes)
    t = window.start
    while t < window.end:
        out.append((t, window.to_pixel(t)))
        t += step
    return out


def format_clock(t: datetime) -> str:
    s = t.strftime("%I:%M %p")
    return s[1:] if s.startswith("0") else s
