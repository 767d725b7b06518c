# models.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Tuple

# ---------- public response shapes (camelCase, matches the web client) ----------

class Thumbnail(BaseModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def area(self) -> int:
        if self.width is None or self.height is None:
            return 0
        return self.width * self.height

class Statistics(BaseModel):
    # None means "unknown", which is not the same as 0
    viewCount: Optional[int] = Field(default=None, ge=0)
    likeCount: Optional[int] = Field(default=None, ge=0)
    commentCount: Optional[int] = Field(default=None, ge=0)

class Channel(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    thumbnails: Optional[Dict[str, Thumbnail]] = None
    subscriberCount: Optional[int] = None
    videoCount: Optional[int] = None

class Video(BaseModel):
    id: str
    url: str
    title: str
    description: str
    publishedAt: str
    channelId: str
    channelTitle: str
    thumbnails: Dict[str, Thumbnail] = {}
    duration: str
    tags: Optional[List[str]] = None
    statistics: Optional[Statistics] = None
    channel: Optional[Channel] = None

class VideoResponse(BaseModel):
    video: Video

class ErrorResponse(BaseModel):
    error: str

# ---------- media retrieval ----------

class MediaFormat(BaseModel):
    formatId: Optional[str] = None
    url: str = ""
    hasAudio: bool = False
    hasVideo: bool = False
    mimeType: str = "video/mp4"
    # Compared only with < / >, never combined arithmetically.
    quality: Tuple[float, ...] = ()
    httpHeaders: Dict[str, str] = {}

class MediaInfo(BaseModel):
    id: str
    title: Optional[str] = None
    formats: List[MediaFormat] = []
    # format_id yt-dlp picked as the best audio source, if any
    bestAudioId: Optional[str] = None
