from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, urlencode

import requests

logger = logging.getLogger(__name__)


class JellyfinClient:
    """Blocking HTTP client for the Live TV endpoints of a Jellyfin server."""

    def __init__(
        self,
        *,
        server_url: str,
        user_id: str,
        access_token: str,
        device_id: str,
        device_name: str = "livegrid",
        client_name: str = "livegrid",
        version: str = "0.3.0",
        timeout: float = 20.0,
    ) -> None:
        self.server_url = (server_url or "").rstrip("/")
        self.user_id = user_id
        self.access_token = access_token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "X-Emby-Authorization": self._auth_header(
                    client_name=client_name,
                    device_name=device_name,
                    device_id=device_id,
                    version=version,
                    token=access_token,
                ),
                "Accept": "application/json",
            }
        )

        self.last_status: Optional[int] = None

    @staticmethod
    def _auth_header(*, client_name: str, device_name: str, device_id: str, version: str, token: str) -> str:
        header = (
            f'MediaBrowser Client="{client_name}", Device="{device_name}", '
            f'DeviceId="{device_id}", Version="{version}"'
        )
        if token:
            header += f', Token="{token}"'
        return header

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.server_url}{path}"
        r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        self.last_status = r.status_code
        logger.debug("%s %s -> %s", method, path, r.status_code)
        return r

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        r = self._request("GET", path, params=params)
        r.raise_for_status()
        return r.json()

    def get_channels(
        self,
        *,
        start_index: int = 0,
        limit: int = 100,
        favorites_only: bool = False,
        user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "UserId": user_id or self.user_id,
            "StartIndex": int(start_index or 0),
            "Limit": int(limit or 100),
            "Fields": "PrimaryImageAspectRatio,ChannelInfo",
            "ImageTypeLimit": 1,
            "EnableImageTypes": "Primary",
            "SortBy": "SortName",
            "SortOrder": "Ascending",
            "EnableUserData": "true",
        }
        if favorites_only:
            params["IsFavorite"] = "true"
        data = self._get_json("/LiveTv/Channels", params) or {}
        items = data.get("Items") or []
        logger.info("Live TV channels retrieved: %d (start=%s)", len(items), start_index)
        return items

    def get_programs(self, channel_ids: Sequence[str], *, min_end_date: str, max_start_date: str) -> List[Dict[str, Any]]:
        params = {
            "UserId": self.user_id,
            "ChannelIds": ",".join(channel_ids),
            "MinEndDate": min_end_date,
            "MaxStartDate": max_start_date,
            "Fields": "Overview,ChannelInfo",
            "EnableUserData": "true",
            "EnableImageTypes": "Primary,Backdrop",
            "ImageTypeLimit": 1,
            "SortBy": "StartDate",
        }
        data = self._get_json("/LiveTv/Programs", params) or {}
        items = data.get("Items") or []
        if not items:
            logger.warning(
                "No programs for %d channel(s) in %s..%s", len(channel_ids), min_end_date, max_start_date
            )
        return items

    def get_program(self, program_id: str) -> Dict[str, Any]:
        return self._get_json(f"/Items/{quote(program_id)}", {"UserId": self.user_id}) or {}

    def get_item(self, item_id: str) -> Dict[str, Any]:
        return self._get_json(f"/Users/{quote(self.user_id)}/Items/{quote(item_id)}") or {}

    def get_recording_timers(self) -> List[Dict[str, Any]]:
        data = self._get_json("/LiveTv/Timers") or {}
        return data.get("Items") or []

    def get_default_timer(self, program_id: str) -> Dict[str, Any]:
        return self._get_json("/LiveTv/Timers/Defaults", {"programId": program_id}) or {}

    def create_recording_timer(self, program_id: str) -> Optional[Dict[str, Any]]:
        defaults = self.get_default_timer(program_id)

        # One-off recording: copy the defaults but leave out series fields.
        timer: Dict[str, Any] = {
            key: defaults.get(key)
            for key in (
                "ChannelId",
                "ProgramId",
                "StartDate",
                "EndDate",
                "PrePaddingSeconds",
                "PostPaddingSeconds",
                "IsPrePaddingRequired",
                "IsPostPaddingRequired",
                "KeepUntil",
                "Priority",
            )
        }
        for key in (
            "ChannelName",
            "ExternalChannelId",
            "ExternalProgramId",
            "Name",
            "Overview",
            "ServiceName",
            "ServerId",
        ):
            if defaults.get(key):
                timer[key] = defaults[key]

        r = self._request("POST", "/LiveTv/Timers", json=timer)
        r.raise_for_status()
        if not (r.content or b"").strip():
            return None
        try:
            body = r.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def cancel_recording_timer(self, timer_id: str) -> None:
        r = self._request("DELETE", f"/LiveTv/Timers/{quote(timer_id)}")
        r.raise_for_status()

    def set_favorite(self, item_id: str, favorite: bool) -> None:
        method = "POST" if favorite else "DELETE"
        r = self._request(method, f"/Users/{quote(self.user_id)}/FavoriteItems/{quote(item_id)}")
        r.raise_for_status()

    def image_url(self, item_id: str, image_type: str = "Primary", *, max_width: Optional[int] = None) -> str:
        if not item_id:
            return ""
        params: Dict[str, Any] = {"quality": 90}
        if max_width:
            params["maxWidth"] = int(max_width)
        return f"{self.server_url}/Items/{quote(item_id)}/Images/{image_type}?{urlencode(params)}"

    def fetch_image_bytes(self, url: str) -> bytes:
        if not url:
            return b""
        r = self.session.get(url, timeout=self.timeout, headers={"Accept": "image/*,*/*;q=0.8"})
        r.raise_for_status()
        return r.content or b""

    def live_stream_url(self, channel_id: str) -> str:
        params = {"static": "true", "api_key": self.access_token}
        return f"{self.server_url}/Videos/{quote(channel_id)}/stream?{urlencode(params)}"
