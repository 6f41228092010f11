from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from livegrid.api.server import MediaServer
from livegrid.epg.errors import ActionFailure
from livegrid.epg.models import Channel, Program, find_timer
from livegrid.epg.store import ChannelStore
from livegrid.epg.timeline import format_clock

logger = logging.getLogger(__name__)


@dataclass
class ProgramDetail:
    program: Program
    channel: Channel
    now: datetime

    @property
    def title(self) -> str:
        title = self.program.title or "Unknown"
        p = self.program
        if p.season_number and p.episode_number:
            title += f" - S{p.season_number}E{p.episode_number}"
        return title

    @property
    def subtitle(self) -> Optional[str]:
        p = self.program
        if p.series_name and p.series_name != p.title:
            return p.series_name
        return p.episode_title

    @property
    def time_range(self) -> str:
        start = self.program.start.astimezone(self.now.tzinfo)
        end = self.program.end.astimezone(self.now.tzinfo)
        return f"{format_clock(start)} - {format_clock(end)}"

    @property
    def overview(self) -> str:
        return self.program.overview or "No description available."

    @property
    def image_item_id(self) -> Optional[str]:
        if self.program.image_tag:
            return self.program.id
        if self.program.series_id:
            return self.program.series_id
        return None

    @property
    def rating(self) -> Optional[str]:
        return self.program.official_rating

    @property
    def year(self) -> Optional[int]:
        return self.program.production_year

    @property
    def genres(self) -> List[str]:
        return list(self.program.genres)

    @property
    def can_watch(self) -> bool:
        return self.program.is_airing(self.now)

    @property
    def can_record(self) -> bool:
        return self.now <= self.program.end


async def load_program_detail(
    server: MediaServer,
    store: ChannelStore,
    program_id: str,
    channel_id: str,
    now: datetime,
) -> ProgramDetail:
    try:
        program = await server.get_program(program_id)
    except Exception as exc:
        logger.error("Error loading program details for %s: %s", program_id, exc)
        raise ActionFailure("Failed to load program details") from exc
    channel = store.channel(channel_id)
    if channel is None:
        raise ActionFailure("Channel is no longer in the guide")
    return ProgramDetail(program=program, channel=channel, now=now)


@dataclass
class RecordingAction:
    server: MediaServer
    program: Program
    scheduled: bool = False
    timer_id: Optional[str] = None
    busy: bool = False

    @property
    def label(self) -> str:
        if self.busy:
            return "Processing..."
        return "Cancel Recording" if self.scheduled else "Record"

    async def refresh(self) -> None:
        try:
            timers = await self.server.get_recording_timers()
        except Exception as exc:
            logger.warning("Could not read recording timers: %s", exc)
            return
        timer = find_timer(timers, self.program)
        self.scheduled = timer is not None
        self.timer_id = timer.id if timer is not None else None

    async def toggle(self) -> bool:
        if self.busy:
            return False
        self.busy = True
        try:
            if self.scheduled and self.timer_id:
                await self._cancel()
            else:
                await self._create()
            return True
        finally:
            self.busy = False

    async def _cancel(self) -> None:
        timer_id = self.timer_id
        try:
            await self.server.cancel_recording_timer(timer_id)
        except Exception as exc:
            logger.error("Failed to cancel recording %s: %s", timer_id, exc)
            raise ActionFailure("Failed to cancel recording") from exc
        self.scheduled = False
        self.timer_id = None

    async def _create(self) -> None:
        try:
            program = await self.server.get_program(self.program.id)
        except Exception as exc:
            raise ActionFailure("Failed to get program details") from exc
        try:
            timer = await self.server.create_recording_timer(program)
        except Exception as exc:
            logger.error("Failed to schedule recording for %s: %s", program.id, exc)
            raise ActionFailure("Failed to schedule recording") from exc

        self.scheduled = True
        if timer is not None and timer.id:
            self.timer_id = timer.id
            return
        logger.debug("Timer created without an id, re-querying timers")
        await self.refresh()
        self.scheduled = True


@dataclass
class FavoriteAction:
    server: MediaServer
    store: ChannelStore
    channel: Channel
    favorite: bool = False
    busy: bool = False

    def __post_init__(self) -> None:
        self.favorite = bool(self.channel.favorite)

    @property
    def label(self) -> str:
        return "Remove channel from Favorites" if self.favorite else "Add channel to Favorites"

    async def refresh(self) -> None:
        try:
            item = await self.server.get_item(self.channel.id)
        except Exception as exc:
            logger.warning("Could not read favorite state of %s: %s", self.channel.id, exc)
            return
        self.favorite = item.favorite
        self.store.set_favorite(self.channel.id, item.favorite)

    async def toggle(self) -> bool:
        if self.busy:
            return False
        self.busy = True
        target = not self.favorite
        try:
            try:
                if target:
                    await self.server.favorite_item(self.channel.id)
                else:
                    await self.server.unfavorite_item(self.channel.id)
            except Exception as exc:
                verb = "add to" if target else "remove from"
                logger.error("Failed to %s favorites: %s", verb, exc)
                raise ActionFailure(f"Failed to {verb} favorites") from exc
            self.favorite = target
            self.store.set_favorite(self.channel.id, target)
            return True
        finally:
            self.busy = False


@dataclass
class DetailActions:
    detail: ProgramDetail
    record: Optional[RecordingAction] = None
    favorite: Optional[FavoriteAction] = None


async def open_detail_actions(
    server: MediaServer, store: ChannelStore, detail: ProgramDetail
) -> DetailActions:
    record = RecordingAction(server=server, program=detail.program) if detail.can_record else None
    favorite = FavoriteAction(server=server, store=store, channel=detail.channel)
    if record is not None:
        await record.refresh()
    await favorite.refresh()
    return DetailActions(detail=detail, record=record, favorite=favorite)
