from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Literal, Optional, Sequence, Union

from livegrid.epg.grid import GridRow

logger = logging.getLogger(__name__)

FocusMode = Literal["controls", "grid"]

DIGITS = frozenset("0123456789")
NUMBER_DEBOUNCE_SECONDS = 2.0

# Up from the first row: focus moves to the page controls.
TOP = "top"

# Hardware channel keys step rows like the arrows.
CHANNEL_KEYS = {"channel_up": "up", "channel_down": "down"}


@dataclass(frozen=True)
class GridCoordinate:
    row: int
    column: int


@dataclass
class FocusState:
    mode: FocusMode = "grid"
    coordinate: Optional[GridCoordinate] = None
    control: int = 0


@dataclass(frozen=True)
class NavigationResult:
    kind: Literal["none", "focus", "controls", "activate", "open", "close", "exit", "digits"]
    coordinate: Optional[GridCoordinate] = None
    control: Optional[int] = None
    digits: str = ""


NOTHING = NavigationResult("none")


def _focus_in_row(row: GridRow, position: float) -> Optional[int]:
    if not row.cells:
        return None
    idx = row.cell_at(position)
    return 0 if idx is None else idx


def initial_coordinate(rows: Sequence[GridRow], now_position: float) -> Optional[GridCoordinate]:
    """First row with a cell airing at ``now_position``; else the first cell of the first non-empty row."""

    for r, row in enumerate(rows):
        idx = row.cell_at(now_position)
        if idx is not None:
            return GridCoordinate(r, idx)
    for r, row in enumerate(rows):
        if row.cells:
            return GridCoordinate(r, 0)
    return None


def vertical_target(rows: Sequence[GridRow], coordinate: GridCoordinate, step: int) -> Optional[GridCoordinate]:
    """Nearest row in ``step`` direction holding a cell under the focused cell's position.

    Rows without cells are skipped. A row with cells but none under the
    position falls back to its first cell. ``None`` when the search runs off
    the grid.
    """

    position = rows[coordinate.row].cells[coordinate.column].left
    r = coordinate.row + step
    while 0 <= r < len(rows):
        idx = _focus_in_row(rows[r], position)
        if idx is not None:
            return GridCoordinate(r, idx)
        r += step
    return None


def horizontal_target(rows: Sequence[GridRow], coordinate: GridCoordinate, step: int) -> GridCoordinate:
    column = coordinate.column + step
    if 0 <= column < len(rows[coordinate.row].cells):
        return GridCoordinate(coordinate.row, column)
    return coordinate


def next_coordinate(
    rows: Sequence[GridRow], coordinate: GridCoordinate, direction: str
) -> Union[GridCoordinate, str, None]:
    """Where ``direction`` moves the focus from ``coordinate``.

    ``None`` means the focus stays. ``TOP`` is returned only for Up from the
    first row, where focus leaves the grid for the page controls.
    """

    if direction in ("up", "down"):
        target = vertical_target(rows, coordinate, -1 if direction == "up" else 1)
        if target is None and direction == "up" and coordinate.row == 0:
            return TOP
        return target
    if direction in ("left", "right"):
        target = horizontal_target(rows, coordinate, -1 if direction == "left" else 1)
        return None if target == coordinate else target
    raise ValueError(f"unknown direction: {direction}")


Scheduler = Callable[[float, Callable[[], None]], Any]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class NumberBuffer:
    """Digits typed for a direct channel jump, committed after a quiet period."""

    def __init__(
        self,
        on_commit: Callable[[str], None],
        *,
        delay: float = NUMBER_DEBOUNCE_SECONDS,
        schedule: Optional[Scheduler] = None,
    ) -> None:
        self._on_commit = on_commit
        self._delay = delay
        self._schedule = schedule or _loop_scheduler
        self._handle: Any = None
        self.digits = ""

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, digit: str) -> str:
        if digit not in DIGITS:
            raise ValueError(f"not a digit: {digit!r}")
        self._cancel_timer()
        self.digits += digit
        self._handle = self._schedule(self._delay, self._expire)
        return self.digits

    def cancel(self) -> None:
        self._cancel_timer()
        self.digits = ""

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self) -> None:
        number = self.digits
        self._handle = None
        self.digits = ""
        if number:
            self._on_commit(number)


class Navigator:
    """Focus state machine over the rendered rows and the page controls."""

    def __init__(
        self,
        rows: List[GridRow],
        controls: Sequence[str],
        *,
        now_position: Callable[[], float],
        on_async_result: Optional[Callable[[NavigationResult], None]] = None,
        number_delay: float = NUMBER_DEBOUNCE_SECONDS,
        schedule: Optional[Scheduler] = None,
    ) -> None:
        self.rows = rows
        self.controls = list(controls)
        self.state = FocusState()
        self.detail_origin: Optional[GridCoordinate] = None
        self._now_position = now_position
        self._on_async_result = on_async_result
        self.numbers = NumberBuffer(self._commit_number, delay=number_delay, schedule=schedule)

    @property
    def detail_open(self) -> bool:
        return self.detail_origin is not None

    @property
    def focused_row(self) -> Optional[GridRow]:
        coord = self.state.coordinate
        if self.state.mode != "grid" or coord is None:
            return None
        return self.rows[coord.row]

    @property
    def focused_cell(self):
        coord = self.state.coordinate
        row = self.focused_row
        if row is None or coord is None:
            return None
        return row.cells[coord.column]

    def attach(self, rows: List[GridRow]) -> None:
        self.rows = rows
        self.reset()

    def reset(self) -> None:
        self.numbers.cancel()
        self.state = FocusState()
        self.detail_origin = None

    def close(self) -> None:
        self.numbers.cancel()

    def focus_initial(self) -> NavigationResult:
        coord = initial_coordinate(self.rows, self._now_position())
        self.state.mode = "grid"
        self.state.coordinate = coord
        if coord is None:
            return NOTHING
        return NavigationResult("focus", coordinate=coord)

    def handle_key(self, key: str) -> NavigationResult:
        if self.detail_open:
            if key == "back":
                return self.close_detail()
            return NOTHING

        if key in DIGITS:
            return NavigationResult("digits", digits=self.numbers.push(key))

        if key == "back":
            self.numbers.cancel()
            return NavigationResult("exit")

        if self.state.mode == "controls":
            return self._handle_controls(key)
        return self._handle_grid(key)

    def _handle_controls(self, key: str) -> NavigationResult:
        count = len(self.controls)
        if key == "down":
            result = self.focus_initial()
            if result.kind == "none":
                # Nothing focusable in the grid yet.
                self.state.mode = "controls"
            return result
        if key in ("left", "right") and count:
            step = -1 if key == "left" else 1
            self.state.control = (self.state.control + step) % count
            return NavigationResult("controls", control=self.state.control)
        if key == "ok" and count:
            return NavigationResult("activate", control=self.state.control)
        return NOTHING

    def _handle_grid(self, key: str) -> NavigationResult:
        coord = self.state.coordinate
        if coord is None:
            if key in ("up", "down", "left", "right", "channel_up", "channel_down"):
                return self.focus_initial()
            return NOTHING

        direction = CHANNEL_KEYS.get(key, key)
        if direction in ("up", "down", "left", "right"):
            target = next_coordinate(self.rows, coord, direction)
            if target == TOP:
                self.state.mode = "controls"
                self.state.control = 0
                return NavigationResult("controls", control=0)
            if target is None:
                return NOTHING
            self.state.coordinate = target
            return NavigationResult("focus", coordinate=target)

        if key == "ok":
            self.detail_origin = coord
            return NavigationResult("open", coordinate=coord)

        return NOTHING

    def close_detail(self) -> NavigationResult:
        origin = self.detail_origin
        self.detail_origin = None
        if origin is None:
            return NOTHING
        self.state.mode = "grid"
        self.state.coordinate = origin
        return NavigationResult("close", coordinate=origin)

    def jump_to_channel(self, number: str) -> Optional[GridCoordinate]:
        for r, row in enumerate(self.rows):
            if row.channel.number != number:
                continue
            idx = _focus_in_row(row, self._now_position())
            if idx is None:
                break
            coord = GridCoordinate(r, idx)
            self.state.mode = "grid"
            self.state.coordinate = coord
            return coord
        logger.info("Channel not found: %s", number)
        return None

    def _commit_number(self, number: str) -> None:
        if self.detail_open:
            return
        coord = self.jump_to_channel(number)
        if self._on_async_result is None:
            return
        if coord is None:
            self._on_async_result(NavigationResult("digits", digits=""))
        else:
            self._on_async_result(NavigationResult("focus", coordinate=coord, digits=number))
