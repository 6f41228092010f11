from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from rich.style import Style
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen, Screen
from textual.widget import Widget
from textual.widgets import Button, Footer, Header, Static

from livegrid.api.server import MediaServer
from livegrid.art import image_to_rich_blocks
from livegrid.config import Settings
from livegrid.epg.actions import DetailActions
from livegrid.epg.errors import ActionFailure, FatalLoadFailure, LoadFailure
from livegrid.epg.grid import GridRow
from livegrid.epg.loader import Viewport
from livegrid.epg.navigation import NavigationResult
from livegrid.epg.session import EpgSession, local_now
from livegrid.epg.timeline import GuideWindow, format_clock, time_slots

logger = logging.getLogger(__name__)

CHANNEL_COLUMN_WIDTH = 20
ROW_LINES = 2
# Channel logos are drawn in half blocks, one line per row line.
LOGO_WIDTH = 8
NOW_MARKER_INTERVAL = 60.0

CONTROL_LABELS = {
    "prev_day": "< Prev Day",
    "next_day": "Next Day >",
    "today": "Today",
    "favorites": "Favorites",
}

# Terminal keys mapped onto the remote control.
REMOTE_KEYS = {
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
    "enter": "ok",
    "escape": "back",
    "backspace": "back",
    "pageup": "channel_up",
    "pagedown": "channel_down",
}

_CELL = Style(color="#d6d6d6", bgcolor="#1a1d1c")
_CELL_CURRENT = Style(color="#ffffff", bgcolor="#153a24")
_CELL_FOCUSED = Style(color="#ffffff", bgcolor="#16783a", bold=True)
_GAP = Style(bgcolor="#0b0d0c")
_CHANNEL = Style(color="#e6e6e6", bgcolor="#121817")
_CHANNEL_FOCUSED = Style(color="#ffffff", bgcolor="#121817", bold=True)
_HEADER = Style(color="#9aa5a0", bgcolor="#121817")
_NOW = Style(color="#28b35a", bgcolor="#121817", bold=True)


def remote_key(key: str) -> Optional[str]:
    if len(key) == 1 and key.isdigit():
        return key
    return REMOTE_KEYS.get(key)


def _column(x: float, pixels_per_column: float) -> int:
    return int(x // pixels_per_column)


def render_header_line(
    window: GuideWindow,
    *,
    scroll_col: int,
    width: int,
    pixels_per_column: float,
    now_x: Optional[float],
    tz=None,
) -> Text:
    chars = [" "] * max(0, width)
    for t, x in time_slots(window):
        col = _column(x, pixels_per_column) - scroll_col
        label = format_clock(t.astimezone(tz) if tz else t)
        for i, ch in enumerate(label):
            if 0 <= col + i < width:
                chars[col + i] = ch
    text = Text(" " * CHANNEL_COLUMN_WIDTH, style=_HEADER)
    marker = None
    if now_x is not None:
        marker = _column(now_x, pixels_per_column) - scroll_col
    for i, ch in enumerate(chars):
        if i == marker:
            text.append("▼", style=_NOW)
        else:
            text.append(ch, style=_HEADER)
    return text


def render_row_lines(
    row: GridRow,
    *,
    scroll_col: int,
    width: int,
    pixels_per_column: float,
    focused_column: Optional[int],
    tz=None,
    logo: Optional[List[Text]] = None,
) -> List[Text]:
    """Two terminal lines for a channel row: titles, then start times.

    With ``logo`` lines the channel column starts with the logo and the
    number and name take what is left.
    """

    ch = row.channel
    label_width = CHANNEL_COLUMN_WIDTH - LOGO_WIDTH - 1 if logo else CHANNEL_COLUMN_WIDTH
    name_line = f"{ch.number:>4} {ch.name}"[:label_width].ljust(label_width)
    fav_line = ("     ★" if ch.favorite else "")[:label_width].ljust(label_width)
    head_style = _CHANNEL_FOCUSED if focused_column is not None else _CHANNEL

    lines: List[Text] = []
    for line_no, head in enumerate((name_line, fav_line)):
        if logo:
            text = logo[line_no].copy() if line_no < len(logo) else Text()
            text.truncate(LOGO_WIDTH, pad=True)
            text.append(" " + head, style=head_style)
        else:
            text = Text(head, style=head_style)
        cursor = 0
        for idx, cell in enumerate(row.cells):
            start = _column(cell.left, pixels_per_column) - scroll_col
            end = max(start + 1, _column(cell.right, pixels_per_column) - scroll_col)
            start = max(start, cursor)
            end = min(end, width)
            if end <= start:
                continue
            if start > cursor:
                text.append(" " * (start - cursor), style=_GAP)
            if line_no == 0:
                label = cell.program.title
            else:
                started = cell.program.start.astimezone(tz) if tz else cell.program.start
                label = format_clock(started)
                if cell.program.episode_title:
                    label += f"  {cell.program.episode_title}"
            seg = end - start
            body = ("▏" + label)[:seg].ljust(seg)
            if idx == focused_column:
                style = _CELL_FOCUSED
            elif cell.current:
                style = _CELL_CURRENT
            else:
                style = _CELL
            text.append(body, style=style)
            cursor = end
        if cursor < width:
            text.append(" " * (width - cursor), style=_GAP)
        lines.append(text)
    return lines


class GuideGrid(Widget, can_focus=True):
    """Draws the visible part of the session's rows and keeps the focus in view."""

    DEFAULT_CSS = """
    GuideGrid {
        height: 1fr;
        width: 1fr;
        background: #0b0d0c;
    }
    """

    def __init__(self, session: EpgSession, *, pixels_per_column: float, id: Optional[str] = None) -> None:
        super().__init__(id=id)
        self.session = session
        self.pixels_per_column = float(pixels_per_column)
        self.scroll_row = 0
        self.scroll_col = 0
        self.now_x: Optional[float] = None
        self.logos: Dict[str, List[Text]] = {}

    @property
    def program_columns(self) -> int:
        return max(1, self.size.width - CHANNEL_COLUMN_WIDTH)

    @property
    def visible_rows(self) -> int:
        return max(1, (self.size.height - 1) // ROW_LINES)

    @property
    def content_columns(self) -> int:
        return max(1, _column(self.session.window.width_pixels, self.pixels_per_column))

    def reset_scroll(self) -> None:
        self.scroll_row = 0
        self.scroll_col = 0

    def ensure_focus_visible(self) -> None:
        coord = self.session.navigator.state.coordinate
        rows = self.session.rows
        if coord is None or not rows:
            return
        if coord.row < self.scroll_row:
            self.scroll_row = coord.row
        elif coord.row >= self.scroll_row + self.visible_rows:
            self.scroll_row = coord.row - self.visible_rows + 1

        cell = rows[coord.row].cells[coord.column]
        start = _column(cell.left, self.pixels_per_column)
        area = self.program_columns
        if start < self.scroll_col or start >= self.scroll_col + area:
            self.scroll_col = max(0, start - area // 3)
        self.scroll_col = max(0, min(self.scroll_col, self.content_columns - area))

    def viewport(self) -> Viewport:
        ppc = self.pixels_per_column
        return Viewport(
            scroll_x=self.scroll_col * ppc,
            scroll_y=float(self.scroll_row),
            width=self.program_columns * ppc,
            height=float(self.visible_rows),
            content_width=self.session.window.width_pixels,
            content_height=float(len(self.session.rows)),
        )

    def render(self) -> Text:
        session = self.session
        nav = session.navigator
        width = self.program_columns
        tz = session.clock().tzinfo
        out = render_header_line(
            session.window,
            scroll_col=self.scroll_col,
            width=width,
            pixels_per_column=self.pixels_per_column,
            now_x=self.now_x,
            tz=tz,
        )
        coord = nav.state.coordinate if nav.state.mode == "grid" else None
        rows = session.rows[self.scroll_row : self.scroll_row + self.visible_rows]
        for offset, row in enumerate(rows):
            r = self.scroll_row + offset
            focused_column = coord.column if coord is not None and coord.row == r else None
            for line in render_row_lines(
                row,
                scroll_col=self.scroll_col,
                width=width,
                pixels_per_column=self.pixels_per_column,
                focused_column=focused_column,
                tz=tz,
                logo=self.logos.get(row.channel.id),
            ):
                out.append("\n")
                out.append_text(line)
        return out


class ProgramDetailScreen(ModalScreen[None]):
    DEFAULT_CSS = """
    ProgramDetailScreen {
        align: center middle;
    }
    ProgramDetailScreen #detail_card {
        width: 90;
        height: auto;
        max-height: 90%;
        background: #0f1211;
        border: solid #16783a;
        padding: 1 2;
    }
    ProgramDetailScreen #detail_body {
        height: auto;
    }
    ProgramDetailScreen #detail_image {
        width: 32;
        height: auto;
        margin-right: 2;
    }
    ProgramDetailScreen #detail_text {
        width: 1fr;
        height: auto;
    }
    ProgramDetailScreen #detail_title {
        text-style: bold;
        color: #ffffff;
    }
    ProgramDetailScreen #detail_actions {
        height: auto;
        margin-top: 1;
    }
    """

    def __init__(
        self,
        actions: DetailActions,
        *,
        on_watch: Callable[[DetailActions], None],
        image_loader: Optional[Callable[[str], bytes]] = None,
    ) -> None:
        super().__init__()
        self.detail_actions = actions
        self._on_watch = on_watch
        self._image_loader = image_loader

    def compose(self) -> ComposeResult:
        detail = self.detail_actions.detail
        facts: List[str] = [detail.time_range, detail.channel.name]
        if detail.rating:
            facts.append(f"Rated {detail.rating}")
        if detail.year:
            facts.append(str(detail.year))
        if detail.genres:
            facts.append(", ".join(detail.genres))

        with Container(id="detail_card"):
            with Horizontal(id="detail_body"):
                yield Static("", id="detail_image")
                with Vertical(id="detail_text"):
                    yield Static(detail.title, id="detail_title")
                    if detail.subtitle:
                        yield Static(detail.subtitle, id="detail_subtitle")
                    yield Static("  |  ".join(facts), id="detail_facts")
                    yield Static(detail.overview, id="detail_overview")
            with Horizontal(id="detail_actions"):
                if detail.can_watch:
                    yield Button("Watch", id="watch", variant="primary")
                if self.detail_actions.record is not None:
                    yield Button(self.detail_actions.record.label, id="record")
                if self.detail_actions.favorite is not None:
                    yield Button(self.detail_actions.favorite.label, id="favorite")
                yield Button("Close", id="close")

    def on_mount(self) -> None:
        self.query(Button).first().focus()
        item_id = self.detail_actions.detail.image_item_id
        if item_id and self._image_loader is not None:
            self.run_worker(lambda: self._load_image(item_id), thread=True, exit_on_error=False)

    def _load_image(self, item_id: str) -> None:
        try:
            data = self._image_loader(item_id)
            art = image_to_rich_blocks(data, width=30)
        except Exception as exc:
            logger.debug("No artwork for %s: %s", item_id, exc)
            return

        def apply() -> None:
            self.query_one("#detail_image", Static).update(art)

        self.app.call_from_thread(apply)

    def on_key(self, event: events.Key) -> None:
        key = event.key
        if key in ("escape", "backspace"):
            event.stop()
            self.dismiss(None)
            return
        if key in ("left", "up"):
            event.stop()
            self.focus_previous()
            return
        if key in ("right", "down"):
            event.stop()
            self.focus_next()
            return

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        button = event.button
        if button.id == "close":
            self.dismiss(None)
            return
        if button.id == "watch":
            self._on_watch(self.detail_actions)
            return
        record = self.detail_actions.record
        if button.id == "record" and record is not None:
            await self._run_action(button, record, lambda: record.scheduled)
            return
        favorite = self.detail_actions.favorite
        if button.id == "favorite" and favorite is not None:
            await self._run_action(button, favorite, lambda: favorite.favorite)
            return

    async def _run_action(self, button: Button, action, state: Callable[[], bool]) -> None:
        was_on = state()
        button.disabled = True
        button.label = "Processing..."
        try:
            await action.toggle()
        except ActionFailure as exc:
            self.app.notify(str(exc), severity="error", timeout=3)
        else:
            if state() != was_on:
                self.app.notify(_action_message(button.id, state()), timeout=3)
        finally:
            button.disabled = False
            button.label = action.label


def _action_message(button_id: Optional[str], now_on: bool) -> str:
    if button_id == "record":
        return "Recording scheduled" if now_on else "Recording canceled"
    return "Added to favorites" if now_on else "Removed from favorites"


class GuideScreen(Screen[None]):
    DEFAULT_CSS = """
    GuideScreen {
        layout: vertical;
    }
    GuideScreen #guide_top {
        height: 3;
        padding: 0 1;
    }
    GuideScreen #guide_date {
        width: 1fr;
        content-align: left middle;
        text-style: bold;
    }
    GuideScreen .control {
        width: auto;
        padding: 0 2;
        margin: 0 1;
        content-align: center middle;
        background: #1f2322;
        border: solid #2d3231;
    }
    GuideScreen .control.-focused {
        background: #0f5a2a;
        border: solid #16783a;
        color: #ffffff;
    }
    GuideScreen #guide_status {
        height: 1;
        color: #9aa5a0;
        padding: 0 1;
    }
    GuideScreen #guide_failure {
        display: none;
        height: 1fr;
        content-align: center middle;
        color: #ff6b6b;
    }
    GuideScreen #number_overlay {
        display: none;
        layer: overlay;
        dock: top;
        offset: 0 6;
        width: 12;
        height: 3;
        content-align: center middle;
        border: solid #16783a;
        background: #000000;
        text-style: bold;
    }
    """

    def __init__(
        self,
        server: MediaServer,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = local_now,
        image_loader: Optional[Callable[[str], bytes]] = None,
        on_watch: Optional[Callable[[DetailActions], None]] = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self._image_loader = image_loader
        self._on_watch = on_watch
        self.session = EpgSession(
            server,
            clock=clock,
            batch_size=settings.channels_per_batch,
            hours_to_display=settings.hours_to_display,
            pixels_per_hour=settings.pixels_per_hour,
            extend_hours=settings.extend_hours,
            vertical_threshold=settings.vertical_threshold_rows,
            horizontal_threshold=settings.horizontal_threshold_pixels,
            number_delay=settings.number_debounce_seconds,
            on_navigation=self._apply_navigation,
            on_rows_appended=self._on_rows_appended,
            on_window_extended=self._on_window_extended,
            on_load_failure=self._on_load_failure,
        )
        self._load_failure_shown = False
        self._load_seq = 0
        self._logos_requested: Set[str] = set()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal(id="guide_top"):
            yield Static("", id="guide_date")
            for key in self.session.navigator.controls:
                yield Static(CONTROL_LABELS.get(key, key), id=f"control_{key}", classes="control")
        yield Static("", id="guide_status")
        yield GuideGrid(self.session, pixels_per_column=self.settings.pixels_per_column, id="guide_grid")
        yield Static("", id="guide_failure")
        yield Static("", id="number_overlay")
        yield Footer()

    def on_mount(self) -> None:
        self._update_header()
        self.query_one(GuideGrid).focus()
        self.set_interval(NOW_MARKER_INTERVAL, self._tick)
        self._start_load(None)

    def on_unmount(self) -> None:
        self.session.close()

    @property
    def grid(self) -> GuideGrid:
        return self.query_one(GuideGrid)

    def _set_status(self, text: str) -> None:
        self.query_one("#guide_status", Static).update(text)

    def _update_header(self) -> None:
        session = self.session
        self.query_one("#guide_date", Static).update(session.reference_date.strftime("%A, %B %d, %Y"))
        fav = self.query_one("#control_favorites", Static)
        fav.update("All Channels" if session.favorites_only else "Favorites")
        nav = session.navigator
        for idx, key in enumerate(nav.controls):
            ctl = self.query_one(f"#control_{key}", Static)
            ctl.set_class(nav.state.mode == "controls" and nav.state.control == idx, "-focused")

    def _redraw(self) -> None:
        self._update_header()
        grid = self.grid
        grid.ensure_focus_visible()
        grid.refresh()

    def _start_load(self, action: Optional[str]) -> None:
        self.run_worker(self._load(action), group="guide_load", exit_on_error=False)

    async def _load(self, action: Optional[str]) -> None:
        session = self.session
        self._load_seq += 1
        seq = self._load_seq
        self._set_status("Loading...")
        self._load_failure_shown = False
        self.query_one("#guide_failure", Static).display = False
        self.grid.display = True
        try:
            if action == "prev_day":
                await session.change_day(-1)
            elif action == "next_day":
                await session.change_day(1)
            elif action == "today":
                await session.go_to_today()
            elif action == "favorites":
                await session.toggle_favorites()
            else:
                await session.load()
        except FatalLoadFailure as exc:
            if seq != self._load_seq:
                return
            logger.error("Guide load failed: %s", exc)
            self.grid.display = False
            failure = self.query_one("#guide_failure", Static)
            failure.update("Failed to load TV guide. Please try again.")
            failure.display = True
            self._set_status("")
            return
        if seq != self._load_seq:
            # A later day change or favorites toggle owns the screen now.
            return
        self.grid.now_x = session.now_marker()
        self.grid.reset_scroll()
        self._set_status(f"{len(session.rows)} channels")
        self._redraw()
        self._start_logo_fetch(session.rows)

    def _tick(self) -> None:
        self.grid.now_x = self.session.tick()
        self.grid.refresh()

    def _on_rows_appended(self, rows: List[GridRow]) -> None:
        self._set_status(f"{len(self.session.rows)} channels")
        self.grid.refresh()
        self._start_logo_fetch(rows)

    def _start_logo_fetch(self, rows: List[GridRow]) -> None:
        if self._image_loader is None:
            return
        wanted = [
            row.channel.id
            for row in rows
            if row.channel.logo_tag and row.channel.id not in self._logos_requested
        ]
        if not wanted:
            return
        self._logos_requested.update(wanted)
        self.run_worker(lambda: self._load_logos(wanted), thread=True, group="logos", exit_on_error=False)

    def _load_logos(self, channel_ids: List[str]) -> None:
        logos: Dict[str, List[Text]] = {}
        for channel_id in channel_ids:
            try:
                data = self._image_loader(channel_id)
                art = image_to_rich_blocks(data, width=LOGO_WIDTH, max_rows=ROW_LINES)
            except Exception as exc:
                logger.debug("No logo for %s: %s", channel_id, exc)
                continue
            if art.plain:
                logos[channel_id] = list(art.split("\n"))
        if not logos:
            return

        def apply() -> None:
            self.grid.logos.update(logos)
            self.grid.refresh()

        self.app.call_from_thread(apply)

    def _on_window_extended(self, window: GuideWindow) -> None:
        self.grid.now_x = self.session.now_marker()
        self.grid.refresh()

    def _on_load_failure(self, exc: LoadFailure) -> None:
        if self._load_failure_shown:
            return
        self._load_failure_shown = True
        self.app.notify(str(exc), severity="warning", timeout=3)

    def _check_lazy_load(self) -> None:
        session = self.session
        viewport = self.grid.viewport()
        coordinator = session.coordinator
        if coordinator.wants_more_channels(viewport) or coordinator.wants_more_hours(viewport):
            self.run_worker(coordinator.on_scroll(viewport), group="lazy_load", exit_on_error=False)

    def _show_digits(self, digits: str) -> None:
        overlay = self.query_one("#number_overlay", Static)
        overlay.update(digits)
        overlay.display = bool(digits)

    def _apply_navigation(self, result: NavigationResult) -> None:
        if result.kind == "digits":
            self._show_digits(result.digits)
            return
        if result.kind == "focus" and result.digits:
            # A debounced channel jump landed.
            self._show_digits("")
        if result.kind in ("focus", "controls", "close"):
            self._redraw()
            self._check_lazy_load()
            return
        if result.kind == "activate" and result.control is not None:
            self._start_load(self.session.navigator.controls[result.control])
            return
        if result.kind == "open":
            self.run_worker(self._open_detail(), group="detail", exit_on_error=False)
            return
        if result.kind == "exit":
            self.app.exit()

    def on_key(self, event: events.Key) -> None:
        key = remote_key(event.key)
        if key is None:
            return
        event.stop()
        event.prevent_default()
        self._apply_navigation(self.session.navigator.handle_key(key))

    async def _open_detail(self) -> None:
        try:
            actions = await self.session.open_detail()
        except ActionFailure as exc:
            self.app.notify(str(exc), severity="error", timeout=3)
            return
        if actions is None:
            self.session.navigator.close_detail()
            return

        def closed(_result: None) -> None:
            self._apply_navigation(self.session.navigator.close_detail())

        self.app.push_screen(
            ProgramDetailScreen(
                actions,
                on_watch=self._watch,
                image_loader=self._image_loader,
            ),
            closed,
        )

    def _watch(self, actions: DetailActions) -> None:
        if self._on_watch is None:
            self.app.notify("Playback is not available", severity="warning")
            return
        self._on_watch(actions)


class LiveGridApp(App[None]):
    BINDINGS = [("Q", "quit", "Quit")]

    CSS = """
    Screen {
        background: #0b0d0c;
        color: #d6d6d6;
    }

    Button {
        background: #1f2322;
        color: #e6e6e6;
        border: solid #2d3231;
    }

    Button:focus {
        background: #0f5a2a;
        border: solid #16783a;
        color: #ffffff;
    }
    """

    def __init__(
        self,
        server: MediaServer,
        settings: Settings,
        *,
        image_loader: Optional[Callable[[str], bytes]] = None,
        stream_url: Optional[Callable[[str], str]] = None,
        clock: Callable[[], datetime] = local_now,
        debug: bool = False,
    ) -> None:
        super().__init__()
        self.server = server
        self.settings = settings
        self._image_loader = image_loader
        self._stream_url = stream_url
        self._guide_clock = clock
        self._player_debug = debug

    def on_mount(self) -> None:
        self.push_screen(
            GuideScreen(
                self.server,
                self.settings,
                clock=self._guide_clock,
                image_loader=self._image_loader,
                on_watch=self.watch_channel if self._stream_url is not None else None,
            )
        )

    def watch_channel(self, actions: DetailActions) -> None:
        from livegrid.player import watch_channel

        channel = actions.detail.channel
        url = self._stream_url(channel.id)
        self.notify(f"Starting playback: {channel.number} {channel.name}".strip())

        def work() -> None:
            try:
                watch_channel(url, preference=self.settings.player_preference, debug=self._player_debug)
            except Exception as exc:
                logger.error("Playback failed: %s", exc)
                self.call_from_thread(self.notify, f"Playback failed: {exc}", severity="error")

        self.run_worker(work, thread=True, exclusive=True)
