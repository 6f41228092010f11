from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from livegrid.epg.errors import LoadFailure
from livegrid.epg.grid import GridRow, refresh_rows, render_new_rows
from livegrid.epg.store import ChannelStore
from livegrid.epg.timeline import DEFAULT_EXTEND_HOURS, GuideWindow

logger = logging.getLogger(__name__)

VERTICAL_THRESHOLD = 500.0
HORIZONTAL_THRESHOLD = 1000.0


@dataclass(frozen=True)
class Viewport:
    scroll_x: float
    scroll_y: float
    width: float
    height: float
    content_width: float
    content_height: float

    def near_bottom(self, threshold: float) -> bool:
        return self.scroll_y + self.height >= self.content_height - threshold

    def near_right(self, threshold: float) -> bool:
        return self.scroll_x + self.width >= self.content_width - threshold


class LazyLoadCoordinator:
    """Grows the grid downward (channel batches) and rightward (more hours) as the viewer scrolls."""

    def __init__(
        self,
        store: ChannelStore,
        window: GuideWindow,
        rows: List[GridRow],
        *,
        clock: Callable[[], datetime],
        extend_hours: int = DEFAULT_EXTEND_HOURS,
        vertical_threshold: float = VERTICAL_THRESHOLD,
        horizontal_threshold: float = HORIZONTAL_THRESHOLD,
        on_rows_appended: Optional[Callable[[List[GridRow]], None]] = None,
        on_window_extended: Optional[Callable[[GuideWindow], None]] = None,
        on_load_failure: Optional[Callable[[LoadFailure], None]] = None,
    ) -> None:
        self.store = store
        self.window = window
        self.rows = rows
        self._clock = clock
        self.extend_hours = int(extend_hours)
        self.vertical_threshold = vertical_threshold
        self.horizontal_threshold = horizontal_threshold
        self.on_rows_appended = on_rows_appended
        self.on_window_extended = on_window_extended
        self.on_load_failure = on_load_failure

    @property
    def loading(self) -> bool:
        return self.store.loading

    def wants_more_channels(self, viewport: Viewport) -> bool:
        return viewport.near_bottom(self.vertical_threshold) and self.store.more_available and not self.loading

    def wants_more_hours(self, viewport: Viewport) -> bool:
        return viewport.near_right(self.horizontal_threshold) and bool(self.rows) and not self.loading

    async def on_scroll(self, viewport: Viewport) -> None:
        if self.wants_more_channels(viewport):
            logger.debug("Near bottom, loading more channels")
            await self.load_more_channels()
        elif self.wants_more_hours(viewport):
            logger.debug("Near right edge, loading more hours")
            await self.extend_window()

    async def load_more_channels(self) -> List[GridRow]:
        generation = self.store.generation
        try:
            channels = await self.store.load_channel_batch(self.window)
        except LoadFailure as exc:
            if self.on_load_failure is not None:
                self.on_load_failure(exc)
            return []
        if not channels or generation != self.store.generation:
            return []
        new_rows = render_new_rows(self.store, channels, self.window, self._clock())
        self.rows.extend(new_rows)
        if self.on_rows_appended is not None:
            self.on_rows_appended(new_rows)
        return new_rows

    async def extend_window(self) -> bool:
        if self.loading or not self.store.channels:
            return False
        generation = self.store.generation
        previous_hours = self.window.hours_displayed
        old_end, new_end = self.window.extend(self.extend_hours)
        try:
            await self.store.extend_programs(old_end, new_end)
        except LoadFailure:
            if generation == self.store.generation:
                self.window.shrink_to(previous_hours)
            logger.info("Window extension to %s abandoned", new_end.isoformat())
            return False
        if generation != self.store.generation:
            return False

        logger.info("Extended guide from %d to %d hours", previous_hours, self.window.hours_displayed)
        refresh_rows(self.rows, self.store, self.window, self._clock())
        if self.on_window_extended is not None:
            self.on_window_extended(self.window)
        return True
