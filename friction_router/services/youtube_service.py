"""
Video catalog proxy for the YouTube Data API v3.

Keeps the API key server side and reshapes responses into the small
records the client renders.
"""
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from friction_router.core.exceptions import ConfigurationError, NotFound, UpstreamError, ValidationError
from friction_router.core.logging_config import LoggerMixin

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_IDS = 50
MAX_POOL = 50

CHANNEL_ID_RE = re.compile(r"^UC[a-zA-Z0-9_-]{20,}$")
CHANNEL_PATH_RE = re.compile(r"/channel/(UC[a-zA-Z0-9_-]{20,})")
POOL_RE = re.compile(r"\s*([+-]?\d+)")

THUMBNAIL_PREFERENCE = ("maxres", "standard", "high", "medium", "default")


def pick_best_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> str:
    if not thumbnails:
        return ""
    for size in THUMBNAIL_PREFERENCE:
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return ""


def extract_channel_id(value: str) -> str:
    """Return a channel id if `value` is one or is a /channel/ URL, else ''."""
    trimmed = (value or "").strip()
    if CHANNEL_ID_RE.match(trimmed):
        return trimmed
    match = CHANNEL_PATH_RE.search(trimmed)
    return match.group(1) if match else ""


def parse_channel_query(value: str) -> Dict[str, str]:
    """
    Classify free-form channel input.

    Returns {"handle": ...} for @handles and /@handle URLs, otherwise
    {"query": ...} with a search term derived from legacy /user/ or /c/
    paths or the raw text.
    """
    raw = value.strip()
    handle = raw[1:] if raw.startswith("@") else ""
    query = raw

    if not handle and re.match(r"^https?://", raw, re.IGNORECASE):
        path = urlparse(raw).path or ""
        if "/@" in path:
            handle = path.split("/@", 1)[1].split("/")[0]
        elif "/user/" in path:
            query = path.split("/user/", 1)[1].split("/")[0]
        elif "/c/" in path:
            query = path.split("/c/", 1)[1].split("/")[0]
        elif len(path) > 1:
            query = path.replace("/", " ").strip() or raw

    if handle:
        return {"handle": handle}
    return {"query": query.lstrip("@")}


def channel_url(channel_id: str) -> str:
    return f"https://www.youtube.com/channel/{channel_id}" if channel_id else ""


def _to_channel(item: Dict[str, Any]) -> Dict[str, str]:
    raw_id = item.get("id")
    channel_id = raw_id.get("channelId", "") if isinstance(raw_id, dict) else (raw_id or "")
    snippet = item.get("snippet") or {}
    return {
        "channelId": channel_id,
        "channelTitle": snippet.get("title") or snippet.get("channelTitle") or "",
        "channelUrl": channel_url(channel_id),
    }


class YouTubeClient(LoggerMixin):
    """
    Thin wrapper over the three Data API calls the client needs.

    Example:
        >>> client = YouTubeClient(api_key="...")
        >>> client.video_metadata("dQw4w9WgXcQ")
        {'dQw4w9WgXcQ': {'videoId': 'dQw4w9WgXcQ', 'title': ..., ...}}
    """

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 10.0,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds

    def close(self) -> None:
        self.session.close()

    def _get(self, resource: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("Server missing YOUTUBE_API_KEY.")
        try:
            response = self.session.get(
                f"{YOUTUBE_API_BASE}/{resource}",
                params={**params, "key": self.api_key},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            self.logger.error(f"YouTube {resource} request failed: {e}")
            raise UpstreamError("YouTube API error.", details=str(e)) from e
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            self.logger.warning(f"YouTube {resource} returned HTTP {response.status_code}")
            raise UpstreamError("YouTube API error.", details=f"HTTP {response.status_code}")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _items(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = data.get("items")
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    def video_metadata(self, ids_param: Optional[str]) -> Dict[str, Dict[str, str]]:
        """Map of video id to title, channel, publish time and thumbnail."""
        if not ids_param:
            raise ValidationError("Missing ids query parameter.", field="ids")
        ids = [i.strip() for i in ids_param.split(",") if i.strip()]
        if not ids:
            raise ValidationError("No valid video IDs provided.", field="ids")
        if len(ids) > MAX_IDS:
            raise ValidationError(f"Too many ids. Maximum is {MAX_IDS}.", field="ids")

        data = self._get("videos", {"part": "snippet,contentDetails", "id": ",".join(ids)})
        result = {}
        for item in self._items(data):
            video_id = item.get("id")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            result[video_id] = {
                "videoId": video_id,
                "title": snippet.get("title") or "",
                "channelTitle": snippet.get("channelTitle") or "",
                "publishedAt": snippet.get("publishedAt") or "",
                "thumbnail": pick_best_thumbnail(snippet.get("thumbnails"))
                or f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
            }
        return result

    def resolve_channel(self, q: Optional[str]) -> Dict[str, str]:
        """Resolve a channel id, URL, @handle or name to a channel record."""
        if not q or not q.strip():
            raise ValidationError("Missing q query parameter.", field="q")
        if not self.api_key:
            raise ConfigurationError("Server missing YOUTUBE_API_KEY.")

        direct = extract_channel_id(q)
        if direct:
            return {"channelId": direct, "channelTitle": "", "channelUrl": channel_url(direct)}

        parsed = parse_channel_query(q)
        if "handle" in parsed:
            items = self._items(self._get("channels", {"part": "snippet", "forHandle": parsed["handle"]}))
            if items:
                return _to_channel(items[0])

        query = parsed.get("query") or parsed.get("handle") or q
        items = self._items(
            self._get("search", {"part": "snippet", "type": "channel", "maxResults": 1, "q": query})
        )
        if not items:
            raise NotFound("Channel not found.")
        return _to_channel(items[0])

    def channel_sample(self, channel_id: Optional[str], pool_param: Optional[str] = None) -> Dict[str, Any]:
        """Channel header plus up to `pool` most recent uploads."""
        if not channel_id:
            raise ValidationError("Missing channelId query parameter.", field="channelId")
        if not self.api_key:
            raise ConfigurationError("Server missing YOUTUBE_API_KEY.")

        pool = MAX_POOL
        if pool_param:
            # Leading digits win, so "5abc" reads as 5.
            match = POOL_RE.match(pool_param)
            pool = int(match.group(1)) if match else 0
            if pool <= 0:
                raise ValidationError("Invalid pool parameter.", field="pool")
            pool = min(pool, MAX_POOL)

        channels = self._items(self._get("channels", {"part": "contentDetails,snippet", "id": channel_id}))
        if not channels:
            raise NotFound("Channel not found.")
        channel = channels[0]
        uploads_id = ((channel.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        if not uploads_id:
            raise NotFound("Uploads playlist not found.")

        playlist = self._get(
            "playlistItems", {"part": "snippet", "playlistId": uploads_id, "maxResults": pool}
        )
        videos = []
        for item in self._items(playlist):
            snippet = item.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId")
            if not video_id:
                continue
            videos.append({
                "videoId": video_id,
                "title": snippet.get("title") or "",
                "publishedAt": snippet.get("publishedAt") or "",
                "thumbnail": pick_best_thumbnail(snippet.get("thumbnails")),
                "url": f"https://www.youtube.com/watch?v={video_id}",
            })

        return {
            "channel": {
                "channelId": channel_id,
                "channelTitle": (channel.get("snippet") or {}).get("title") or "",
                "channelUrl": channel_url(channel_id),
            },
            "videos": videos,
        }


# Module-level instance (singleton pattern)
_client: Optional[YouTubeClient] = None


def get_shared_client(api_key: Optional[str]) -> YouTubeClient:
    """Get the process-wide client, rebuilding it if the key changed."""
    global _client
    if _client is None or _client.api_key != api_key:
        if _client is not None:
            _client.close()
        _client = YouTubeClient(api_key)
    return _client


def close_shared_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
