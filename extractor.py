# extractor.py
"""Turn whatever the caller pasted into a canonical 11-character video id.

Accepted shapes, in priority order:

  - a bare id                          ``dQw4w9WgXcQ``
  - watch page with ``v`` parameter    ``https://www.youtube.com/watch?v=...``
  - shorts page                        ``https://youtube.com/shorts/...``
  - embed page                         ``https://www.youtube.com/embed/...``
  - short link                         ``https://youtu.be/...``

The bare-id check runs before any URL parsing. Each URL matcher is an
independent function returning an id or ``None``; the first hit wins.
"""
import re
from typing import Callable, List, Optional, Tuple
from urllib.parse import SplitResult, parse_qs, urlsplit

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

WATCH_HOSTS = frozenset({"youtube.com", "m.youtube.com", "music.youtube.com"})
SHORT_LINK_HOST = "youtu.be"


def is_video_id(value: Optional[str]) -> bool:
    return bool(value) and VIDEO_ID_RE.match(value) is not None


def _host(url: SplitResult) -> str:
    host = (url.hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _segments(url: SplitResult) -> List[str]:
    return [p for p in url.path.split("/") if p]


def _segment_after(url: SplitResult, marker: str) -> Optional[str]:
    parts = _segments(url)
    if marker not in parts:
        return None
    idx = parts.index(marker)
    return parts[idx + 1] if idx + 1 < len(parts) else None


# ------------------ URL matchers ------------------
def _match_watch_param(url: SplitResult) -> Optional[str]:
    if _host(url) not in WATCH_HOSTS:
        return None
    return (parse_qs(url.query).get("v") or [None])[0]


def _match_shorts(url: SplitResult) -> Optional[str]:
    if _host(url) not in WATCH_HOSTS:
        return None
    return _segment_after(url, "shorts")


def _match_embed(url: SplitResult) -> Optional[str]:
    if _host(url) not in WATCH_HOSTS:
        return None
    return _segment_after(url, "embed")


def _match_short_link(url: SplitResult) -> Optional[str]:
    if _host(url) != SHORT_LINK_HOST:
        return None
    parts = _segments(url)
    return parts[0] if parts else None


URL_MATCHERS: Tuple[Callable[[SplitResult], Optional[str]], ...] = (
    _match_watch_param,
    _match_shorts,
    _match_embed,
    _match_short_link,
)


def _parse_absolute_url(raw: str) -> Optional[SplitResult]:
    try:
        url = urlsplit(raw)
        if not url.scheme or not url.hostname:
            return None
    except ValueError:
        return None
    return url


def extract_video_id(raw: str) -> Optional[str]:
    """Return the video id carried by ``raw``, or ``None``.

    Never raises for malformed input. Candidates that do not look like a
    video id are treated as no match, so anything returned satisfies
    ``VIDEO_ID_RE``.
    """
    if not isinstance(raw, str):
        return None
    if is_video_id(raw):
        return raw

    url = _parse_absolute_url(raw)
    if url is None:
        return None

    for matcher in URL_MATCHERS:
        candidate = matcher(url)
        if is_video_id(candidate):
            return candidate
    return None
