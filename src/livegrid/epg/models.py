from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_server_datetime(value: Any) -> Optional[datetime]:
    """Parse the server's ISO-8601 timestamps.

    The server emits 7-digit fractions and a trailing ``Z``; both are
    normalized before handing off to ``datetime.fromisoformat``. Naive values
    are treated as UTC.
    """

    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value or "").strip()
        if not s:
            return None
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        s = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_server_datetime(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _opt_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _primary_tag(raw: Dict[str, Any]) -> Optional[str]:
    tags = raw.get("ImageTags") or {}
    if not isinstance(tags, dict):
        return None
    return _opt_str(tags.get("Primary"))


def _is_favorite(raw: Dict[str, Any]) -> bool:
    user_data = raw.get("UserData") or {}
    if not isinstance(user_data, dict):
        return False
    return bool(user_data.get("IsFavorite"))


@dataclass
class Channel:
    id: str
    name: str
    number: str = ""
    logo_tag: Optional[str] = None
    favorite: bool = False

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> Optional["Channel"]:
        cid = _opt_str(raw.get("Id"))
        if not cid:
            return None
        return cls(
            id=cid,
            name=_opt_str(raw.get("Name")) or "Unknown Channel",
            number=_opt_str(raw.get("ChannelNumber")) or "",
            logo_tag=_primary_tag(raw),
            favorite=_is_favorite(raw),
        )


@dataclass
class Program:
    id: str
    channel_id: str
    start: datetime
    end: datetime
    title: str
    episode_title: Optional[str] = None
    series_name: Optional[str] = None
    series_id: Optional[str] = None
    image_tag: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    official_rating: Optional[str] = None
    production_year: Optional[int] = None
    overview: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    def is_airing(self, now: datetime) -> bool:
        return self.start <= now < self.end

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> Optional["Program"]:
        pid = _opt_str(raw.get("Id"))
        channel_id = _opt_str(raw.get("ChannelId"))
        start = parse_server_datetime(raw.get("StartDate"))
        end = parse_server_datetime(raw.get("EndDate"))
        if not pid or not channel_id or start is None or end is None:
            return None
        genres = raw.get("Genres") or []
        return cls(
            id=pid,
            channel_id=channel_id,
            start=start,
            end=end,
            title=_opt_str(raw.get("Name")) or "Unknown",
            episode_title=_opt_str(raw.get("EpisodeTitle")),
            series_name=_opt_str(raw.get("SeriesName")),
            series_id=_opt_str(raw.get("SeriesId")),
            image_tag=_primary_tag(raw),
            genres=[str(g) for g in genres if g] if isinstance(genres, list) else [],
            official_rating=_opt_str(raw.get("OfficialRating")),
            production_year=_opt_int(raw.get("ProductionYear")),
            overview=_opt_str(raw.get("Overview")),
            season_number=_opt_int(raw.get("ParentIndexNumber")),
            episode_number=_opt_int(raw.get("IndexNumber")),
        )


@dataclass
class RecordingTimer:
    id: str
    channel_id: str
    start: Optional[datetime]
    program_id: Optional[str] = None
    status: str = "New"

    @property
    def is_scheduled(self) -> bool:
        return self.status.lower() not in ("cancelled", "error")

    def matches(self, program: Program) -> bool:
        if self.program_id and self.program_id == program.id:
            return True
        return self.channel_id == program.channel_id and self.start is not None and self.start == program.start

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> Optional["RecordingTimer"]:
        tid = _opt_str(raw.get("Id"))
        if not tid:
            return None
        return cls(
            id=tid,
            channel_id=_opt_str(raw.get("ChannelId")) or "",
            start=parse_server_datetime(raw.get("StartDate")),
            program_id=_opt_str(raw.get("ProgramId")),
            status=_opt_str(raw.get("Status")) or "New",
        )


def find_timer(timers: List[RecordingTimer], program: Program) -> Optional[RecordingTimer]:
    timers = [t for t in timers if t.is_scheduled]
    for timer in timers:
        if timer.program_id and timer.program_id == program.id:
            return timer
    for timer in timers:
        if timer.matches(program):
            return timer
    return None
