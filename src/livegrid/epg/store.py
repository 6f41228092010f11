from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from livegrid.api.server import MediaServer
from livegrid.epg.errors import FatalLoadFailure, LoadFailure
from livegrid.epg.models import Channel, Program
from livegrid.epg.timeline import GuideWindow

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS_PER_BATCH = 50


def group_by_channel(programs: List[Program]) -> Dict[str, List[Program]]:
    grouped: Dict[str, List[Program]] = {}
    for program in programs:
        grouped.setdefault(program.channel_id, []).append(program)
    for items in grouped.values():
        items.sort(key=lambda p: p.start)
    return grouped


class ChannelStore:
    """Channels and their programs, grown batch by batch for one guide session.

    The store is the only writer of its collections. A single ``loading`` flag
    serializes channel batches and window extensions, and every request is
    tagged with the generation it was issued in so a response that arrives
    after ``reset()`` is dropped.
    """

    def __init__(
        self,
        server: MediaServer,
        *,
        batch_size: int = DEFAULT_CHANNELS_PER_BATCH,
        favorites_only: bool = False,
    ) -> None:
        self._server = server
        self.batch_size = int(batch_size)
        self.favorites_only = favorites_only

        self.channels: List[Channel] = []
        self._programs: Dict[str, List[Program]] = {}
        self.next_index = 0
        self.more_available = True
        self.loading = False
        self.generation = 0

    def reset(self, *, favorites_only: Optional[bool] = None) -> None:
        self.generation += 1
        if favorites_only is not None:
            self.favorites_only = favorites_only
        self.channels = []
        self._programs = {}
        self.next_index = 0
        self.more_available = True
        self.loading = False
        logger.debug("Store reset (generation %d, favorites_only=%s)", self.generation, self.favorites_only)

    def __len__(self) -> int:
        return len(self.channels)

    def channel(self, channel_id: str) -> Optional[Channel]:
        for ch in self.channels:
            if ch.id == channel_id:
                return ch
        return None

    def programs_for(self, channel_id: str) -> List[Program]:
        return list(self._programs.get(channel_id, []))

    def set_favorite(self, channel_id: str, favorite: bool) -> None:
        ch = self.channel(channel_id)
        if ch is not None:
            ch.favorite = bool(favorite)

    def _is_stale(self, generation: int) -> bool:
        if generation != self.generation:
            logger.info("Dropping response from generation %d (now %d)", generation, self.generation)
            return True
        return False

    async def load_channel_batch(
        self,
        window: GuideWindow,
        start_index: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> List[Channel]:
        if self.loading:
            logger.debug("load_channel_batch: already loading, skipping")
            return []
        if not self.more_available:
            logger.debug("load_channel_batch: no more channels")
            return []

        start = self.next_index if start_index is None else int(start_index)
        size = self.batch_size if batch_size is None else int(batch_size)
        generation = self.generation
        self.loading = True
        try:
            logger.info("Loading channels starting at index %d", start)
            try:
                new_channels = await self._server.get_channels(None, start, size, self.favorites_only)
                if self._is_stale(generation):
                    return []
                programs: List[Program] = []
                if new_channels:
                    programs = await self._server.get_programs(
                        [ch.id for ch in new_channels], window.start, window.end
                    )
            except Exception as exc:
                if self._is_stale(generation):
                    return []
                self.more_available = False
                logger.error("Channel batch at %d failed: %s", start, exc)
                if start == 0:
                    raise FatalLoadFailure("Failed to load TV guide") from exc
                raise LoadFailure("Failed to load more channels") from exc

            if self._is_stale(generation):
                return []

            if not new_channels:
                self.more_available = False
                return []

            grouped = group_by_channel(programs)
            for ch in new_channels:
                self.channels.append(ch)
                self._programs[ch.id] = grouped.get(ch.id, [])
                if not self._programs[ch.id]:
                    logger.debug("No programs for channel %s", ch.name)

            self.next_index = start + len(new_channels)
            if len(new_channels) < size:
                self.more_available = False
                logger.info("Reached end of channels. Total: %d", len(self.channels))
            logger.info("Batch loaded %d programs for %d channels", len(programs), len(new_channels))
            return new_channels
        finally:
            if generation == self.generation:
                self.loading = False

    async def extend_programs(self, old_end: datetime, new_end: datetime) -> Dict[str, List[Program]]:
        if self.loading:
            logger.debug("extend_programs: already loading, skipping")
            return {}
        if not self.channels:
            return {}

        generation = self.generation
        self.loading = True
        try:
            try:
                fetched = await self._server.get_programs([ch.id for ch in self.channels], old_end, new_end)
            except Exception as exc:
                if self._is_stale(generation):
                    return {}
                logger.error("Extending programs to %s failed: %s", new_end.isoformat(), exc)
                raise LoadFailure("Failed to load more hours") from exc

            if self._is_stale(generation):
                return {}

            added: Dict[str, List[Program]] = {}
            for channel_id, programs in group_by_channel(fetched).items():
                if channel_id not in self._programs:
                    continue
                existing = {p.id for p in self._programs[channel_id]}
                unique = [p for p in programs if p.id not in existing]
                if unique:
                    self._programs[channel_id].extend(unique)
                    added[channel_id] = unique
            logger.info("Extended window to %s, %d new programs", new_end.isoformat(), sum(len(v) for v in added.values()))
            return added
        finally:
            if generation == self.generation:
                self.loading = False
