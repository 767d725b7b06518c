# formats.py
import re
from typing import Iterable, Optional
from urllib.parse import quote

from errors import NoMatchingFormatError
from models import MediaFormat

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f]+')


def select_muxed(formats: Iterable[MediaFormat]) -> MediaFormat:
    """Best format carrying both audio and video; earliest wins on equal quality."""
    best: Optional[MediaFormat] = None
    for f in formats:
        if not (f.hasAudio and f.hasVideo):
            continue
        if best is None or f.quality > best.quality:
            best = f
    if best is None:
        raise NoMatchingFormatError("No matching muxed formats found for this video.")
    return best


def select_audio_only(formats: Iterable[MediaFormat]) -> MediaFormat:
    # Only a guard before the transcoder is spawned; the provider picks the
    # stream that is actually fetched (see MediaProvider.best_audio).
    candidates = [f for f in formats if f.hasAudio]
    if not candidates:
        raise NoMatchingFormatError("No audio formats found for this video.")
    return candidates[0]


def extension_for_mime(mime: Optional[str]) -> str:
    primary = (mime or "").split(";")[0].strip().lower()
    if "webm" in primary:
        return "webm"
    if "mp4" in primary:
        return "mp4"
    if "matroska" in primary:
        return "mkv"
    return "mp4"


def sanitize_filename(name: str) -> str:
    return _UNSAFE_FILENAME_RE.sub(" ", name).strip()


def content_disposition(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"
