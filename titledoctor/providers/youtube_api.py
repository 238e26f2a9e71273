from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from .base import HTTPProvider, error_message


class YouTubeAPIError(RuntimeError):
    """Raised when the YouTube Data API responds with an error."""


@dataclass(frozen=True)
class ChannelRef:
    channel_id: str
    title: str


@dataclass(frozen=True)
class SearchVideo:
    video_id: str
    title: str
    channel_id: Optional[str]
    published_at: Optional[datetime]
    thumbnail: Optional[str]


def _iso_to_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    return parsed


class YouTubeAPIClient(HTTPProvider):
    API_BASE = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str, *, api_base: Optional[str] = None, **kwargs: Any) -> None:
        if not api_key:
            raise ValueError("YouTube API key is required")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.api_base = (api_base or self.API_BASE).rstrip("/")

    async def resolve_channel(self, reference: str) -> Optional[ChannelRef]:
        """``@handle`` gets an exact handle lookup; anything else the first search hit."""
        reference = reference.strip()
        if reference.startswith("@"):
            return await self.channel_by_handle(reference[1:])
        return await self.search_channel(reference)

    async def channel_by_handle(self, handle: str) -> Optional[ChannelRef]:
        data = await self._get("channels", {"part": "snippet", "forHandle": handle.lstrip("@")})
        for item in data.get("items") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            snippet = item.get("snippet") or {}
            return ChannelRef(channel_id=item["id"], title=snippet.get("title") or item["id"])
        return None

    async def search_channel(self, query: str) -> Optional[ChannelRef]:
        data = await self._get(
            "search",
            {"part": "snippet", "type": "channel", "q": query, "maxResults": 1},
        )
        for item in data.get("items") or []:
            if not isinstance(item, dict):
                continue
            channel_id = (item.get("id") or {}).get("channelId")
            if not channel_id:
                continue
            snippet = item.get("snippet") or {}
            return ChannelRef(
                channel_id=channel_id,
                title=snippet.get("title") or snippet.get("channelTitle") or channel_id,
            )
        return None

    async def recent_videos(self, channel_id: str, *, max_results: int = 10) -> List[SearchVideo]:
        """Newest uploads first, as the search endpoint reports them."""
        params = {
            "part": "snippet",
            "channelId": channel_id,
            "order": "date",
            "type": "video",
            "maxResults": max(1, min(max_results, 50)),
        }
        data = await self._get("search", params)
        return self._map_search_items(data.get("items") or [])

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params, key=self.api_key)
        response = await self._request("GET", f"{self.api_base}/{path}", params=query)
        try:
            data = response.json()
        except ValueError as exc:
            raise YouTubeAPIError(f"YouTube API returned non-JSON (HTTP {response.status_code})") from exc
        if response.status_code >= 400 or (isinstance(data, dict) and "error" in data):
            raise YouTubeAPIError(error_message(response, "YouTube API error"))
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _map_search_items(items: Iterable[Dict[str, Any]]) -> List[SearchVideo]:
        mapped: List[SearchVideo] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            video_id = (item.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbnails = snippet.get("thumbnails") or {}
            thumb = (thumbnails.get("default") or {}).get("url")
            mapped.append(
                SearchVideo(
                    video_id=video_id,
                    title=snippet.get("title") or video_id,
                    channel_id=snippet.get("channelId"),
                    published_at=_iso_to_datetime(snippet.get("publishedAt")),
                    thumbnail=thumb,
                )
            )
        return mapped


__all__ = ["ChannelRef", "SearchVideo", "YouTubeAPIClient", "YouTubeAPIError"]
