import asyncio
from dataclasses import replace
from io import BytesIO

from PIL import Image
from rich.text import Text

from livegrid.config import Settings
from livegrid.epg.grid import GridCell, GridRow
from livegrid.tui import (
    CHANNEL_COLUMN_WIDTH,
    LOGO_WIDTH,
    GuideScreen,
    LiveGridApp,
    ProgramDetailScreen,
    remote_key,
    render_row_lines,
)

from fakes import NOW, FakeServer, at, hourly_schedule, make_channel, make_program


def _app(server=None, **kwargs):
    channels = [make_channel(i) for i in range(1, 4)]
    server = server or FakeServer(channels, hourly_schedule(channels, at(15), 12))
    settings = Settings(server_url="http://tv.local", user_id="u1", access_token="tok")
    return server, LiveGridApp(server, settings, clock=lambda: NOW, **kwargs)


def _png(color=(200, 30, 30)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (16, 16), color).save(buf, format="PNG")
    return buf.getvalue()


async def _wait_for(predicate, pilot, attempts=50):
    for _ in range(attempts):
        if predicate():
            return True
        await pilot.pause(0.02)
    return predicate()


def test_remote_key_mapping() -> None:
    assert remote_key("enter") == "ok"
    assert remote_key("escape") == "back"
    assert remote_key("pagedown") == "channel_down"
    assert remote_key("7") == "7"
    assert remote_key("tab") is None


def test_render_row_lines_places_cells_by_column() -> None:
    row = GridRow(
        channel=make_channel(5),
        cells=[
            GridCell(program=make_program("a", "ch5", at(17), title="News"), left=0, width=200),
            GridCell(program=make_program("b", "ch5", at(17, 10), title="Weather"), left=200, width=200),
        ],
    )

    titles, times = render_row_lines(row, scroll_col=0, width=30, pixels_per_column=20, focused_column=1)

    assert len(titles.plain) == CHANNEL_COLUMN_WIDTH + 30
    body = titles.plain[CHANNEL_COLUMN_WIDTH:]
    assert body.startswith("▏News")
    assert body[10:].startswith("▏Weather")
    assert times.plain[CHANNEL_COLUMN_WIDTH:].startswith("▏5:00 PM")


def test_guide_loads_and_navigates() -> None:
    server, app = _app()

    async def run() -> None:
        async with app.run_test(size=(120, 30)) as pilot:
            assert await _wait_for(lambda: isinstance(app.screen, GuideScreen), pilot)
            screen = app.screen
            session = screen.session
            assert await _wait_for(lambda: len(session.rows) == 3, pilot)
            start = session.navigator.state.coordinate

            await pilot.press("down")
            assert session.navigator.state.coordinate.row == start.row + 1

            await pilot.press("up", "up")
            assert session.navigator.state.mode == "controls"

            await pilot.press("down", "enter")
            assert await _wait_for(lambda: isinstance(app.screen, ProgramDetailScreen), pilot)

            await pilot.press("escape")
            assert await _wait_for(lambda: isinstance(app.screen, GuideScreen), pilot)
            assert not session.navigator.detail_open
            assert session.navigator.state.coordinate == start

    asyncio.run(run())


def test_fatal_load_shows_message() -> None:
    channels = [make_channel(1)]
    server = FakeServer(channels)
    server.fail = {"get_channels"}
    _, app = _app(server)

    async def run() -> None:
        async with app.run_test(size=(120, 30)) as pilot:
            assert await _wait_for(lambda: isinstance(app.screen, GuideScreen), pilot)
            failure = app.screen.query_one("#guide_failure")
            assert await _wait_for(lambda: failure.display, pilot)
            assert not app.screen.query_one("#guide_grid").display

    asyncio.run(run())


def test_render_row_lines_draws_logo_before_the_name() -> None:
    row = GridRow(
        channel=make_channel(5),
        cells=[GridCell(program=make_program("a", "ch5", at(17), title="News"), left=0, width=200)],
    )
    logo = [Text("L" * LOGO_WIDTH), Text("ab")]

    titles, times = render_row_lines(
        row, scroll_col=0, width=30, pixels_per_column=20, focused_column=None, logo=logo
    )

    assert len(titles.plain) == CHANNEL_COLUMN_WIDTH + 30
    assert titles.plain[: CHANNEL_COLUMN_WIDTH] == "L" * LOGO_WIDTH + "    5 Channe"
    assert times.plain[: LOGO_WIDTH + 1] == "ab" + " " * (LOGO_WIDTH - 1)
    assert titles.plain[CHANNEL_COLUMN_WIDTH:].startswith("▏News")


def test_channel_logos_are_fetched_for_channels_with_a_logo() -> None:
    channels = [replace(make_channel(1), logo_tag="tag"), make_channel(2)]
    server = FakeServer(channels, hourly_schedule(channels, at(15), 12))
    requested = []

    def load_image(item_id: str) -> bytes:
        requested.append(item_id)
        return _png()

    _, app = _app(server, image_loader=load_image)

    async def run() -> None:
        async with app.run_test(size=(120, 30)) as pilot:
            assert await _wait_for(lambda: isinstance(app.screen, GuideScreen), pilot)
            grid = app.screen.grid
            assert await _wait_for(lambda: "ch1" in grid.logos, pilot)

            assert requested == ["ch1"]
            assert len(grid.logos["ch1"]) == 2
            assert all(line.cell_len == LOGO_WIDTH for line in grid.logos["ch1"])

    asyncio.run(run())


def test_overtaken_load_leaves_the_screen_to_the_latest() -> None:
    channels = [make_channel(1), make_channel(2, favorite=True), make_channel(3)]
    server = FakeServer(channels, hourly_schedule(channels, at(15), 12))
    _, app = _app(server)

    async def run() -> None:
        async with app.run_test(size=(120, 30)) as pilot:
            assert await _wait_for(lambda: isinstance(app.screen, GuideScreen), pilot)
            screen = app.screen
            session = screen.session
            assert await _wait_for(lambda: len(session.rows) == 3, pilot)

            statuses = []
            set_status = screen._set_status

            def record(text: str) -> None:
                statuses.append(text)
                set_status(text)

            screen._set_status = record
            server.gate = asyncio.Event()
            screen._start_load("next_day")
            await pilot.pause(0.05)
            screen._start_load("favorites")
            await pilot.pause(0.05)
            server.gate.set()

            assert await _wait_for(lambda: statuses and statuses[-1] == "1 channels", pilot)
            assert "0 channels" not in statuses
            assert [row.channel.id for row in session.rows] == ["ch2"]
            assert session.favorites_only

    asyncio.run(run())
