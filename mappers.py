# mappers.py
from typing import Any, Dict, List, Optional, Tuple
from models import Channel, MediaFormat, MediaInfo, Statistics, Thumbnail, Video

WATCH_URL = "https://www.youtube.com/watch?v={id}"

def to_count(v: Any) -> Optional[int]:
    # Data API sends counters as strings; "" / missing means unknown, not zero.
    if v is None or v == "":
        return None
    try:
        n = int(v)
    except (TypeError, ValueError):
        return None
    return n if n >= 0 else None

def map_thumbnails(raw: Any) -> Dict[str, Thumbnail]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, Thumbnail] = {}
    for key, t in raw.items():
        if not isinstance(t, dict) or not isinstance(t.get("url"), str):
            continue
        out[key] = Thumbnail(url=t["url"], width=t.get("width"), height=t.get("height"))
    return out

def map_statistics(raw: Any) -> Optional[Statistics]:
    if not isinstance(raw, dict):
        return None
    return Statistics(
        viewCount = to_count(raw.get("viewCount")),
        likeCount = to_count(raw.get("likeCount")),
        commentCount = to_count(raw.get("commentCount")),
    )

def map_video(item: Dict[str, Any]) -> Video:
    # videos.list item with snippet, contentDetails and statistics parts
    vid = item.get("id", "")
    snippet = item.get("snippet") or {}
    details = item.get("contentDetails") or {}
    tags = snippet.get("tags")
    return Video(
        id = vid,
        url = WATCH_URL.format(id=vid),
        title = snippet.get("title") or "",
        description = snippet.get("description") or "",
        publishedAt = snippet.get("publishedAt") or "",
        channelId = snippet.get("channelId") or "",
        channelTitle = snippet.get("channelTitle") or "",
        thumbnails = map_thumbnails(snippet.get("thumbnails")),
        duration = details.get("duration") or "",
        tags = [str(t) for t in tags] if isinstance(tags, list) else None,
        statistics = map_statistics(item.get("statistics")),
    )

def map_channel(item: Dict[str, Any]) -> Channel:
    # channels.list item with snippet and statistics parts
    snippet = item.get("snippet") or {}
    stats = item.get("statistics") or {}
    thumbs = snippet.get("thumbnails")
    return Channel(
        id = item.get("id", ""),
        title = snippet.get("title") or "",
        description = snippet.get("description"),
        thumbnails = map_thumbnails(thumbs) if thumbs is not None else None,
        subscriberCount = to_count(stats.get("subscriberCount")),
        videoCount = to_count(stats.get("videoCount")),
    )

# ---------- yt-dlp formats ----------

STREAMABLE_PROTOCOLS = ("http", "https")

_VIDEO_MIME = {"mkv": "video/x-matroska", "3gp": "video/3gpp"}
_AUDIO_MIME = {"m4a": "audio/mp4", "mp3": "audio/mpeg", "opus": "audio/ogg", "ogg": "audio/ogg"}

def _codec_present(codec: Any) -> bool:
    return isinstance(codec, str) and codec not in ("", "none")

def _num(v: Any) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0

def format_mime(has_video: bool, ext: Optional[str]) -> str:
    ext = (ext or "mp4").lower()
    if has_video:
        return _VIDEO_MIME.get(ext, f"video/{ext}")
    return _AUDIO_MIME.get(ext, f"audio/{ext}")

def format_rank(f: Dict[str, Any]) -> Tuple[float, ...]:
    return (_num(f.get("height")), _num(f.get("fps")), _num(f.get("tbr")))

def audio_rank(f: Dict[str, Any]) -> Tuple[float, ...]:
    return (_num(f.get("abr")), _num(f.get("tbr")))

def map_ytdlp_format(f: Dict[str, Any]) -> Optional[MediaFormat]:
    url = f.get("url")
    if not isinstance(url, str) or not url:
        return None
    # HLS/DASH urls point at playlists, not at the media bytes.
    if f.get("protocol") not in STREAMABLE_PROTOCOLS:
        return None
    # Storyboards carry neither track.
    has_audio = _codec_present(f.get("acodec"))
    has_video = _codec_present(f.get("vcodec"))
    headers = f.get("http_headers")
    return MediaFormat(
        formatId = f.get("format_id"),
        url = url,
        hasAudio = has_audio,
        hasVideo = has_video,
        mimeType = format_mime(has_video, f.get("ext")),
        quality = format_rank(f) if has_video else audio_rank(f),
        httpHeaders = {str(k): str(v) for k, v in headers.items()} if isinstance(headers, dict) else {},
    )

def map_ytdlp_info(info: Dict[str, Any], video_id: str, best_audio_id: Optional[str] = None) -> MediaInfo:
    formats: List[MediaFormat] = []
    for f in info.get("formats") or []:
        if not isinstance(f, dict):
            continue
        mf = map_ytdlp_format(f)
        if mf is not None:
            formats.append(mf)
    return MediaInfo(
        id = info.get("id") or video_id,
        title = info.get("title"),
        formats = formats,
        bestAudioId = best_audio_id,
    )
