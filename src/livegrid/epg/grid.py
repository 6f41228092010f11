from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from livegrid.epg.models import Channel, Program
from livegrid.epg.store import ChannelStore
from livegrid.epg.timeline import GuideWindow, clip_cell


@dataclass
class GridCell:
    program: Program
    left: float
    width: float
    current: bool = False

    @property
    def right(self) -> float:
        return self.left + self.width

    def covers(self, position: float) -> bool:
        return self.left <= position < self.right


@dataclass
class GridRow:
    channel: Channel
    cells: List[GridCell] = field(default_factory=list)

    @property
    def has_cells(self) -> bool:
        return bool(self.cells)

    def cell_at(self, position: float) -> Optional[int]:
        for idx, cell in enumerate(self.cells):
            if cell.covers(position):
                return idx
        return None

    def index_of(self, program_id: str) -> Optional[int]:
        for idx, cell in enumerate(self.cells):
            if cell.program.id == program_id:
                return idx
        return None


def project_cells(programs: Iterable[Program], window: GuideWindow, now: datetime) -> List[GridCell]:
    cells: List[GridCell] = []
    for program in programs:
        clipped = clip_cell(program.start, program.end, window)
        if clipped is None:
            continue
        left, width = clipped
        cells.append(GridCell(program=program, left=left, width=width, current=program.is_airing(now)))
    return cells


def render_row(channel: Channel, programs: Iterable[Program], window: GuideWindow, now: datetime) -> GridRow:
    return GridRow(channel=channel, cells=project_cells(programs, window, now))


def render_rows(store: ChannelStore, window: GuideWindow, now: datetime) -> List[GridRow]:
    return [render_row(ch, store.programs_for(ch.id), window, now) for ch in store.channels]


def render_new_rows(store: ChannelStore, channels: Iterable[Channel], window: GuideWindow, now: datetime) -> List[GridRow]:
    return [render_row(ch, store.programs_for(ch.id), window, now) for ch in channels]


def refresh_rows(rows: List[GridRow], store: ChannelStore, window: GuideWindow, now: datetime) -> None:
    """Recompute cells of the existing rows in place after the window grew.

    Programs are only appended at the right edge, so cell indices that were
    valid before stay valid; row objects are kept so focus survives.
    """

    for row in rows:
        row.cells[:] = project_cells(store.programs_for(row.channel.id), window, now)


def mark_current(rows: Iterable[GridRow], now: datetime) -> None:
    for row in rows:
        for cell in row.cells:
            cell.current = cell.program.is_airing(now)
