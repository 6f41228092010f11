import asyncio

import pytest

from livegrid.epg.grid import mark_current, refresh_rows, render_rows
from livegrid.epg.store import ChannelStore
from livegrid.epg.timeline import GuideWindow

from fakes import FakeServer, at, make_channel, make_program


def _store(programs, n_channels=2):
    channels = [make_channel(i) for i in range(1, n_channels + 1)]
    store = ChannelStore(FakeServer(channels, programs))
    return store


def test_rows_follow_channel_order_and_clip_to_window() -> None:
    programs = [
        make_program("a", "ch1", at(16, 30), 90),
        make_program("b", "ch1", at(18), 30),
        make_program("c", "ch2", at(17, 15), 45),
    ]
    store = _store(programs)
    window = GuideWindow(start=at(17))
    asyncio.run(store.load_channel_batch(window))

    rows = render_rows(store, window, at(17, 45))

    assert [row.channel.id for row in rows] == ["ch1", "ch2"]
    a, b = rows[0].cells
    assert (a.left, a.width) == (0.0, pytest.approx(600))
    assert (b.left, b.width) == (pytest.approx(600), pytest.approx(300))
    assert a.current and not b.current
    assert rows[1].cells[0].left == pytest.approx(150)


def test_row_without_programs_has_no_cells() -> None:
    store = _store([make_program("a", "ch1", at(17))])
    window = GuideWindow(start=at(17))
    asyncio.run(store.load_channel_batch(window))

    rows = render_rows(store, window, at(17))

    assert rows[1].has_cells is False
    assert rows[0].cell_at(10) == 0
    assert rows[0].cell_at(700) is None
    assert rows[0].index_of("a") == 0


def test_mark_current_moves_with_the_clock() -> None:
    store = _store([make_program("a", "ch1", at(17)), make_program("b", "ch1", at(18))])
    window = GuideWindow(start=at(17))
    asyncio.run(store.load_channel_batch(window))
    rows = render_rows(store, window, at(17, 30))

    mark_current(rows, at(18))

    assert [cell.current for cell in rows[0].cells] == [False, True]


def test_refresh_rows_keeps_row_objects() -> None:
    store = _store([make_program("a", "ch1", at(22)), make_program("b", "ch1", at(23))])
    window = GuideWindow(start=at(17), hours_displayed=6)
    asyncio.run(store.load_channel_batch(window))
    rows = render_rows(store, window, at(17))
    first_row = rows[0]

    old_end, new_end = window.extend(3)
    asyncio.run(store.extend_programs(old_end, new_end))
    refresh_rows(rows, store, window, at(17))

    assert rows[0] is first_row
    assert [cell.program.id for cell in first_row.cells] == ["a", "b"]
