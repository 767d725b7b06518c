# providers.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from config import S
from errors import UnresolvedError, UpstreamError
from mappers import WATCH_URL, map_channel, map_video, map_ytdlp_info
from models import Channel, MediaFormat, MediaInfo, Video

log = logging.getLogger(__name__)

VIDEO_PARTS = ("snippet", "contentDetails", "statistics")
CHANNEL_PARTS = ("snippet", "statistics")


def _dbg(msg: str):
    if S.DEBUG_UPSTREAM:
        log.debug("[UPSTREAM] %s", msg)


class YouTubeDataProvider:
    """
    Thin async client around the YouTube Data API v3 list endpoints.
    Docs: https://developers.google.com/youtube/v3/docs/videos/list

    Single GET per call, never cached, never retried.
    """

    def __init__(self, client: httpx.AsyncClient, base: str = S.YOUTUBE_API_BASE):
        self.client = client
        self.base = base.rstrip("/")

    async def _list(self, resource: str, parts, resource_id: str) -> list:
        api_key = S.youtube_api_key
        if not api_key:
            raise UpstreamError("Missing YOUTUBE_DATA_API_KEY in environment")

        url = f"{self.base}/{resource}"
        params = {"part": ",".join(parts), "id": resource_id, "key": api_key}
        _dbg(f"GET {url} id={resource_id}")
        try:
            r = await self.client.get(url, params=params, headers={"Cache-Control": "no-cache"})
        except httpx.HTTPError as e:
            raise UpstreamError(f"YouTube API request failed: {e}") from e
        if not r.is_success:
            raise UpstreamError(f"YouTube API error: {r.status_code} {r.reason_phrase}")
        try:
            data = r.json()
        except ValueError as e:
            ct = r.headers.get("content-type", "")
            raise UpstreamError(f"Non-JSON from {url} ct={ct}: {r.text[:200]}") from e
        items = data.get("items") if isinstance(data, dict) else None
        return [it for it in items if isinstance(it, dict)] if isinstance(items, list) else []

    async def fetch_video(self, video_id: str) -> Optional[Video]:
        items = await self._list("videos", VIDEO_PARTS, video_id)
        return map_video(items[0]) if items else None

    async def fetch_channel(self, channel_id: str) -> Optional[Channel]:
        items = await self._list("channels", CHANNEL_PARTS, channel_id)
        return map_channel(items[0]) if items else None


class MediaProvider:
    """
    Media retrieval backed by yt-dlp (format discovery and the best-audio
    pick) and the shared httpx client (byte streams).
    """

    # yt-dlp format spec for the transcoder source: audio-only first, then any
    # format carrying audio; plain http(s) only.
    BEST_AUDIO_FORMAT = "ba[protocol=https]/ba[protocol=http]/ba*[protocol=https]/ba*[protocol=http]"

    # Substrings of yt-dlp errors meaning the video itself is gone.
    _UNAVAILABLE_SIGNALS = (
        "video unavailable",
        "private video",
        "has been removed",
        "account terminated",
        "no longer available",
        "incomplete youtube id",
    )

    def __init__(self, client: httpx.AsyncClient, chunk_size: int = S.STREAM_CHUNK_SIZE):
        self.client = client
        self.chunk_size = chunk_size

    @staticmethod
    def _ydl_opts() -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "no_color": True,
            "skip_download": True,
            "noplaylist": True,
        }
        if S.YTDLP_COOKIES_FILE:
            opts["cookiefile"] = S.YTDLP_COOKIES_FILE
        return opts

    @classmethod
    def select_best_audio(cls, ydl: yt_dlp.YoutubeDL, formats: List[Dict[str, Any]]) -> Optional[str]:
        """Run yt-dlp's own selector over ``formats`` (sorted worst to best)."""
        select = ydl.build_format_selector(cls.BEST_AUDIO_FORMAT)
        ctx = {
            "formats": list(formats),
            "has_merged_format": any("none" not in (f.get("acodec"), f.get("vcodec")) for f in formats),
            "incomplete_formats": (
                all(f.get("vcodec") == "none" for f in formats)
                or all(f.get("acodec") == "none" for f in formats)
            ),
        }
        chosen = next(iter(select(ctx)), None)
        return chosen.get("format_id") if chosen else None

    def _extract(self, video_id: str) -> Tuple[Dict[str, Any], Optional[str]]:
        with yt_dlp.YoutubeDL(self._ydl_opts()) as ydl:
            info = ydl.extract_info(WATCH_URL.format(id=video_id), download=False)
            if not isinstance(info, dict):
                raise UpstreamError(f"yt_dlp returned no info for {video_id}")
            formats = [f for f in info.get("formats") or [] if isinstance(f, dict)]
            return info, self.select_best_audio(ydl, formats)

    async def get_info(self, video_id: str) -> MediaInfo:
        """List the retrievable encodings for ``video_id``."""
        try:
            info, best_audio_id = await asyncio.to_thread(self._extract, video_id)
        except DownloadError as e:
            msg = str(e)
            if any(sig in msg.lower() for sig in self._UNAVAILABLE_SIGNALS):
                raise UnresolvedError("Unable to resolve a video from the provided input") from e
            raise UpstreamError(msg) from e
        media = map_ytdlp_info(info, video_id, best_audio_id)
        _dbg(f"yt-dlp {video_id}: {len(media.formats)} formats, best audio={best_audio_id}")
        return media

    def best_audio(self, info: MediaInfo) -> MediaFormat:
        """The format yt-dlp picked as best audio during ``get_info``."""
        for f in info.formats:
            if info.bestAudioId is not None and f.hasAudio and f.formatId == info.bestAudioId:
                return f
        raise UpstreamError(f"No audio stream available for {info.id}")

    @asynccontextmanager
    async def open_stream(self, fmt: MediaFormat) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open the byte stream for ``fmt``; the socket is released on exit."""
        try:
            async with self.client.stream("GET", fmt.url, headers=fmt.httpHeaders or None) as r:
                if not r.is_success:
                    raise UpstreamError(f"Media upstream error: {r.status_code} {r.reason_phrase}")
                _dbg(f"stream open format={fmt.formatId} ct={r.headers.get('content-type', '')}")
                yield r.aiter_bytes(self.chunk_size)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Media upstream request failed: {e}") from e
