# composer.py
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from extractor import extract_video_id
from models import Video
from providers import YouTubeDataProvider

log = logging.getLogger(__name__)

T = TypeVar("T")


async def try_enrich(fetch: Callable[[str], Awaitable[Optional[T]]], key: str) -> Optional[T]:
    """Run a secondary lookup; any failure becomes ``None`` instead of an error."""
    try:
        return await fetch(key)
    except Exception as e:
        log.warning("enrichment %s(%s) failed: %s", getattr(fetch, "__name__", "fetch"), key, e)
        return None


async def resolve(raw: str, provider: YouTubeDataProvider) -> Optional[Video]:
    """Input string -> video id -> video record -> channel enrichment.

    Returns ``None`` when nothing resolves (no id, or no such video).
    Channel lookup failures never fail the call; the video comes back
    without ``channel``.
    """
    video_id = extract_video_id(raw)
    if video_id is None:
        return None

    video = await provider.fetch_video(video_id)
    if video is None:
        return None

    if video.channelId:
        channel = await try_enrich(provider.fetch_channel, video.channelId)
        if channel is not None:
            video.channel = channel
    return video
