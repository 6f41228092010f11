import time
from datetime import date, datetime, timedelta, timezone

import pytest

from livegrid.epg.timeline import GuideWindow, clip_cell, format_clock, time_slots, window_start

from fakes import at


def test_window_start_uses_reference_day_at_current_hour() -> None:
    now = datetime(2024, 1, 15, 17, 45, 12, 999, tzinfo=timezone.utc)

    assert window_start(date(2024, 1, 15), now) == at(17)
    assert window_start(date(2024, 1, 16), now) == at(17, day=16)


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_window_start_relocalises_across_dst(monkeypatch) -> None:
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    try:
        # Saturday before the spring change: EST, -05:00.
        now = datetime(2024, 3, 9, 17, 45).astimezone()
        start = window_start(date(2024, 3, 11), now)
    finally:
        monkeypatch.undo()
        time.tzset()

    assert (start.year, start.month, start.day, start.hour, start.minute) == (2024, 3, 11, 17, 0)
    assert start.utcoffset() == timedelta(hours=-4)
    assert start.astimezone(timezone.utc) == datetime(2024, 3, 11, 21, tzinfo=timezone.utc)


def test_window_geometry() -> None:
    window = GuideWindow(start=at(18), hours_displayed=6, pixels_per_hour=600)

    assert window.end == at(18) + timedelta(hours=6)
    assert window.width_pixels == 3600
    assert window.to_pixel(at(18, 30)) == pytest.approx(300)
    assert window.to_time(900) == at(19, 30)


def test_program_started_before_window_is_trimmed_on_the_left() -> None:
    window = GuideWindow(start=at(18))

    assert clip_cell(at(17, 30), at(18, 30), window) == (0.0, pytest.approx(300))


def test_program_running_past_window_is_clamped_on_the_right() -> None:
    window = GuideWindow(start=at(18), hours_displayed=6)

    left, width = clip_cell(at(23, 30), at(1, day=16), window)

    assert left == pytest.approx(3300)
    assert left + width == pytest.approx(window.width_pixels)


def test_programs_outside_the_window_are_rejected() -> None:
    window = GuideWindow(start=at(18), hours_displayed=6)

    assert clip_cell(at(17), at(18), window) is None
    assert clip_cell(at(0, 30, day=16), at(1, day=16), window) is None
    # Starts exactly on the right edge: zero width after clamping.
    assert clip_cell(at(0, day=16), at(1, day=16), window) is None


def test_extend_grows_to_the_right_only() -> None:
    window = GuideWindow(start=at(18), hours_displayed=6)

    old_end, new_end = window.extend(3)

    assert old_end == at(0, day=16)
    assert new_end == at(3, day=16)
    assert window.start == at(18)
    assert window.width_pixels == 9 * 600

    with pytest.raises(ValueError):
        window.extend(0)

    window.shrink_to(6)
    assert window.hours_displayed == 6


def test_time_slots_every_half_hour() -> None:
    window = GuideWindow(start=at(18), hours_displayed=2)

    slots = time_slots(window)

    assert [t for t, _ in slots] == [at(18), at(18, 30), at(19), at(19, 30)]
    assert [x for _, x in slots] == pytest.approx([0, 300, 600, 900])


def test_format_clock_drops_leading_zero() -> None:
    assert format_clock(at(18)) == "6:00 PM"
    assert format_clock(at(11, 5)) == "11:05 AM"
