from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Sequence

from livegrid.api.server import MediaServer
from livegrid.epg.actions import DetailActions, load_program_detail, open_detail_actions
from livegrid.epg.errors import ActionFailure, LoadFailure
from livegrid.epg.grid import GridRow, mark_current, render_new_rows
from livegrid.epg.loader import HORIZONTAL_THRESHOLD, VERTICAL_THRESHOLD, LazyLoadCoordinator
from livegrid.epg.navigation import NUMBER_DEBOUNCE_SECONDS, NavigationResult, Navigator, Scheduler
from livegrid.epg.store import DEFAULT_CHANNELS_PER_BATCH, ChannelStore
from livegrid.epg.timeline import (
    DEFAULT_EXTEND_HOURS,
    DEFAULT_HOURS_TO_DISPLAY,
    DEFAULT_PIXELS_PER_HOUR,
    GuideWindow,
)

logger = logging.getLogger(__name__)

CONTROLS = ("prev_day", "next_day", "today", "favorites")


def local_now() -> datetime:
    return datetime.now().astimezone()


class EpgSession:
    """All guide state for one hosting view.

    A reset (date change or favorites filter) throws away the store, the
    window, the rendered rows and the focus, and starts loading from index 0.
    """

    def __init__(
        self,
        server: MediaServer,
        *,
        clock: Callable[[], datetime] = local_now,
        batch_size: int = DEFAULT_CHANNELS_PER_BATCH,
        hours_to_display: int = DEFAULT_HOURS_TO_DISPLAY,
        pixels_per_hour: float = DEFAULT_PIXELS_PER_HOUR,
        extend_hours: int = DEFAULT_EXTEND_HOURS,
        vertical_threshold: float = VERTICAL_THRESHOLD,
        horizontal_threshold: float = HORIZONTAL_THRESHOLD,
        number_delay: float = NUMBER_DEBOUNCE_SECONDS,
        schedule: Optional[Scheduler] = None,
        controls: Sequence[str] = CONTROLS,
        on_navigation: Optional[Callable[[NavigationResult], None]] = None,
        on_rows_appended: Optional[Callable[[List[GridRow]], None]] = None,
        on_window_extended: Optional[Callable[[GuideWindow], None]] = None,
        on_load_failure: Optional[Callable[[LoadFailure], None]] = None,
    ) -> None:
        self.server = server
        self.clock = clock
        self.hours_to_display = int(hours_to_display)
        self.pixels_per_hour = pixels_per_hour
        self.extend_hours = int(extend_hours)
        self.vertical_threshold = vertical_threshold
        self.horizontal_threshold = horizontal_threshold
        self.on_rows_appended = on_rows_appended
        self.on_window_extended = on_window_extended
        self.on_load_failure = on_load_failure

        self.reference_date: date = clock().date()
        self.favorites_only = False
        self.store = ChannelStore(server, batch_size=batch_size)
        self.window = self._new_window()
        self.rows: List[GridRow] = []
        self.navigator = Navigator(
            self.rows,
            controls,
            now_position=self.now_position,
            on_async_result=on_navigation,
            number_delay=number_delay,
            schedule=schedule,
        )
        self.coordinator = self._new_coordinator()

    @property
    def generation(self) -> int:
        return self.store.generation

    def _new_window(self) -> GuideWindow:
        return GuideWindow.for_day(
            self.reference_date,
            self.clock(),
            hours_displayed=self.hours_to_display,
            pixels_per_hour=self.pixels_per_hour,
        )

    def _new_coordinator(self) -> LazyLoadCoordinator:
        return LazyLoadCoordinator(
            self.store,
            self.window,
            self.rows,
            clock=self.clock,
            extend_hours=self.extend_hours,
            vertical_threshold=self.vertical_threshold,
            horizontal_threshold=self.horizontal_threshold,
            on_rows_appended=self.on_rows_appended,
            on_window_extended=self.on_window_extended,
            on_load_failure=self.on_load_failure,
        )

    def now_position(self) -> float:
        return self.window.to_pixel(self.clock())

    def now_marker(self) -> Optional[float]:
        now = self.clock()
        if not self.window.contains(now):
            return None
        return self.window.to_pixel(now)

    def reset(self, *, reference_date: Optional[date] = None, favorites_only: Optional[bool] = None) -> None:
        if reference_date is not None:
            self.reference_date = reference_date
        if favorites_only is not None:
            self.favorites_only = favorites_only
        self.store.reset(favorites_only=self.favorites_only)
        self.window = self._new_window()
        self.rows = []
        self.navigator.attach(self.rows)
        self.coordinator = self._new_coordinator()
        logger.info(
            "Guide reset to %s (favorites_only=%s, generation %d)",
            self.reference_date.isoformat(),
            self.favorites_only,
            self.generation,
        )

    async def load(self) -> List[GridRow]:
        """Load the first batch of a freshly reset session and place the initial focus.

        Raises ``FatalLoadFailure`` when the first batch cannot be fetched.
        """

        generation = self.generation
        channels = await self.store.load_channel_batch(self.window, start_index=0)
        if generation != self.generation:
            return []
        new_rows = render_new_rows(self.store, channels, self.window, self.clock())
        self.rows.extend(new_rows)
        self.navigator.focus_initial()
        return new_rows

    async def change_day(self, days: int) -> List[GridRow]:
        self.reset(reference_date=self.reference_date + timedelta(days=days))
        return await self.load()

    async def go_to_today(self) -> List[GridRow]:
        self.reset(reference_date=self.clock().date())
        return await self.load()

    async def toggle_favorites(self) -> List[GridRow]:
        self.reset(favorites_only=not self.favorites_only)
        return await self.load()

    def tick(self) -> Optional[float]:
        mark_current(self.rows, self.clock())
        return self.now_marker()

    async def open_detail(self) -> Optional[DetailActions]:
        cell = self.navigator.focused_cell
        if cell is None:
            return None
        try:
            detail = await load_program_detail(
                self.server, self.store, cell.program.id, cell.program.channel_id, self.clock()
            )
        except ActionFailure:
            self.navigator.close_detail()
            raise
        return await open_detail_actions(self.server, self.store, detail)

    def close(self) -> None:
        self.navigator.close()
