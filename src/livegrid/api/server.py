from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from livegrid.api.client import JellyfinClient
from livegrid.epg.models import Channel, Program, RecordingTimer, format_server_datetime


@dataclass
class ItemState:
    id: str
    favorite: bool


class MediaServer(Protocol):
    """Asynchronous view of the media server used by the guide."""

    async def get_channels(
        self, filter: Optional[str], start_index: int, limit: int, favorites_only: bool
    ) -> List[Channel]: ...

    async def get_programs(self, channel_ids: Sequence[str], start: datetime, end: datetime) -> List[Program]: ...

    async def get_program(self, program_id: str) -> Program: ...

    async def get_recording_timers(self) -> List[RecordingTimer]: ...

    async def create_recording_timer(self, program: Program) -> Optional[RecordingTimer]: ...

    async def cancel_recording_timer(self, timer_id: str) -> None: ...

    async def favorite_item(self, item_id: str) -> None: ...

    async def unfavorite_item(self, item_id: str) -> None: ...

    async def get_item(self, item_id: str) -> ItemState: ...


class ThreadedMediaServer:
    """Runs the blocking ``JellyfinClient`` off the UI loop and maps payloads to models."""

    def __init__(self, client: JellyfinClient) -> None:
        self.client = client

    async def get_channels(
        self, filter: Optional[str], start_index: int, limit: int, favorites_only: bool
    ) -> List[Channel]:
        raw = await asyncio.to_thread(
            self.client.get_channels,
            start_index=start_index,
            limit=limit,
            favorites_only=favorites_only,
            user_id=filter,
        )
        out: List[Channel] = []
        for item in raw:
            ch = Channel.from_api(item)
            if ch is not None:
                out.append(ch)
        return out

    async def get_programs(self, channel_ids: Sequence[str], start: datetime, end: datetime) -> List[Program]:
        if not channel_ids:
            return []
        raw = await asyncio.to_thread(
            self.client.get_programs,
            list(channel_ids),
            min_end_date=format_server_datetime(start),
            max_start_date=format_server_datetime(end),
        )
        out: List[Program] = []
        for item in raw:
            program = Program.from_api(item)
            if program is not None:
                out.append(program)
        return out

    async def get_program(self, program_id: str) -> Program:
        raw = await asyncio.to_thread(self.client.get_program, program_id)
        program = Program.from_api(raw)
        if program is None:
            raise ValueError(f"server returned an unusable program for {program_id}")
        return program

    async def get_recording_timers(self) -> List[RecordingTimer]:
        raw = await asyncio.to_thread(self.client.get_recording_timers)
        out: List[RecordingTimer] = []
        for item in raw:
            timer = RecordingTimer.from_api(item)
            if timer is not None:
                out.append(timer)
        return out

    async def create_recording_timer(self, program: Program) -> Optional[RecordingTimer]:
        raw = await asyncio.to_thread(self.client.create_recording_timer, program.id)
        if not raw:
            return None
        return RecordingTimer.from_api(raw)

    async def cancel_recording_timer(self, timer_id: str) -> None:
        await asyncio.to_thread(self.client.cancel_recording_timer, timer_id)

    async def favorite_item(self, item_id: str) -> None:
        await asyncio.to_thread(self.client.set_favorite, item_id, True)

    async def unfavorite_item(self, item_id: str) -> None:
        await asyncio.to_thread(self.client.set_favorite, item_id, False)

    async def get_item(self, item_id: str) -> ItemState:
        raw = await asyncio.to_thread(self.client.get_item, item_id)
        user_data = raw.get("UserData") or {}
        return ItemState(id=str(raw.get("Id") or item_id), favorite=bool(user_data.get("IsFavorite")))
