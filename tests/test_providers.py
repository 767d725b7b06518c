from typing import List

import httpx
import pytest
import yt_dlp
from yt_dlp.utils import DownloadError

from errors import UnresolvedError, UpstreamError
from formats import select_muxed
from mappers import map_channel, map_video, map_ytdlp_format, map_ytdlp_info, to_count
from models import MediaFormat, MediaInfo, Thumbnail
from providers import MediaProvider, YouTubeDataProvider
from tests.fakes import CHANNEL_ID, VIDEO_ID, channel_item, video_item

BASE = "https://yt.test/youtube/v3"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ------------------ mappers ------------------
def test_to_count_distinguishes_unknown_from_zero():
    assert to_count("") is None
    assert to_count(None) is None
    assert to_count("0") == 0
    assert to_count("1234") == 1234
    assert to_count("n/a") is None
    assert to_count("-3") is None


def test_map_video_fields():
    v = map_video(video_item(viewCount="", likeCount="0", commentCount="17"))
    assert v.id == VIDEO_ID
    assert v.url == f"https://www.youtube.com/watch?v={VIDEO_ID}"
    assert v.channelId == CHANNEL_ID
    assert v.channelTitle == "Rick Astley"
    assert v.duration == "PT3M33S"
    assert v.tags == ["rick astley", "pop"]
    assert v.thumbnails["high"].width == 480
    assert v.statistics.viewCount is None
    assert v.statistics.likeCount == 0
    assert v.statistics.commentCount == 17
    assert v.channel is None

    dumped = v.model_dump(exclude_none=True)
    assert "viewCount" not in dumped["statistics"]
    assert dumped["statistics"]["likeCount"] == 0


def test_map_video_without_statistics_or_tags():
    item = video_item()
    del item["snippet"]["tags"]
    v = map_video(item)
    assert v.statistics is None
    assert v.tags is None


def test_map_channel():
    c = map_channel(channel_item())
    assert c.id == CHANNEL_ID
    assert c.subscriberCount == 4200000
    assert c.videoCount == 150
    assert c.thumbnails["default"].url.endswith("a.jpg")


def test_thumbnail_area_needs_both_dimensions():
    assert Thumbnail(url="a", width=320, height=180).area == 57600
    assert Thumbnail(url="b", width=640).area == 0
    assert Thumbnail(url="c").area == 0


def test_map_ytdlp_format_flags_and_mime():
    f = map_ytdlp_format({
        "format_id": "18", "url": "https://r.test/18", "ext": "mp4", "protocol": "https",
        "acodec": "mp4a.40.2", "vcodec": "avc1.42001E", "height": 360, "fps": 30, "tbr": 500,
        "http_headers": {"User-Agent": "ua"},
    })
    assert f.hasAudio and f.hasVideo
    assert f.mimeType == "video/mp4"
    assert f.quality == (360.0, 30.0, 500.0)
    assert f.httpHeaders == {"User-Agent": "ua"}

    a = map_ytdlp_format({"format_id": "251", "url": "https://r.test/251", "ext": "webm", "protocol": "https",
                          "acodec": "opus", "vcodec": "none", "abr": 130})
    assert a.hasAudio and not a.hasVideo
    assert a.mimeType == "audio/webm"

    assert map_ytdlp_format({"format_id": "sb0", "ext": "mhtml"}) is None


def test_map_ytdlp_info_skips_unusable_formats():
    info = map_ytdlp_info({"title": "T", "formats": [{"format_id": "x"}, "junk", {
        "format_id": "140", "url": "u", "ext": "m4a", "protocol": "https", "acodec": "mp4a", "vcodec": "none"}]}, VIDEO_ID)
    assert info.id == VIDEO_ID
    assert [f.formatId for f in info.formats] == ["140"]
    assert info.formats[0].mimeType == "audio/mp4"


def test_map_ytdlp_info_drops_playlist_protocols():
    info = map_ytdlp_info({"title": "T", "formats": [
        {"format_id": "18", "url": "https://rr.googlevideo.com/videoplayback?itag=18", "ext": "mp4",
         "protocol": "https", "acodec": "mp4a.40.2", "vcodec": "avc1.42001E", "height": 360},
        {"format_id": "96", "url": "https://manifest.googlevideo.com/api/manifest/hls_playlist/itag/96/index.m3u8",
         "ext": "mp4", "protocol": "m3u8_native", "acodec": "mp4a.40.2", "vcodec": "avc1.640028", "height": 1080},
        {"format_id": "233", "url": "https://manifest.googlevideo.com/233/index.m3u8", "ext": "mp4",
         "protocol": "m3u8_native", "acodec": "mp4a.40.5", "vcodec": "none"},
    ]}, VIDEO_ID)
    assert [f.formatId for f in info.formats] == ["18"]
    assert select_muxed(info.formats).formatId == "18"


# ------------------ Data API ------------------
@pytest.mark.asyncio
async def test_fetch_video_request_shape():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": [video_item(viewCount="10")]})

    async with make_client(handler) as client:
        video = await YouTubeDataProvider(client, base=BASE).fetch_video(VIDEO_ID)

    assert video.id == VIDEO_ID
    assert video.statistics.viewCount == 10
    req = seen[0]
    assert req.url.path == "/youtube/v3/videos"
    assert req.url.params["part"] == "snippet,contentDetails,statistics"
    assert req.url.params["id"] == VIDEO_ID
    assert req.url.params["key"] == "test-key"
    assert req.headers["cache-control"] == "no-cache"


@pytest.mark.asyncio
async def test_fetch_channel_request_shape():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"items": [channel_item()]})

    async with make_client(handler) as client:
        channel = await YouTubeDataProvider(client, base=BASE).fetch_channel(CHANNEL_ID)

    assert channel.title == "Rick Astley"
    assert seen[0].url.path == "/youtube/v3/channels"
    assert seen[0].url.params["part"] == "snippet,statistics"


@pytest.mark.asyncio
async def test_empty_items_is_not_found():
    async with make_client(lambda r: httpx.Response(200, json={"items": []})) as client:
        provider = YouTubeDataProvider(client, base=BASE)
        assert await provider.fetch_video(VIDEO_ID) is None
        assert await provider.fetch_channel(CHANNEL_ID) is None

    async with make_client(lambda r: httpx.Response(200, json={})) as client:
        assert await YouTubeDataProvider(client, base=BASE).fetch_video(VIDEO_ID) is None


@pytest.mark.asyncio
async def test_non_success_status_raises_with_status():
    async with make_client(lambda r: httpx.Response(403, json={"error": {}})) as client:
        with pytest.raises(UpstreamError) as ei:
            await YouTubeDataProvider(client, base=BASE).fetch_video(VIDEO_ID)
    assert "403" in str(ei.value)
    assert ei.value.status_code == 500


@pytest.mark.asyncio
async def test_transport_failure_raises_upstream_error():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    async with make_client(handler) as client:
        with pytest.raises(UpstreamError):
            await YouTubeDataProvider(client, base=BASE).fetch_channel(CHANNEL_ID)


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_calling_upstream(monkeypatch):
    monkeypatch.delenv("YOUTUBE_DATA_API_KEY")
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"items": []})

    async with make_client(handler) as client:
        with pytest.raises(UpstreamError, match="YOUTUBE_DATA_API_KEY"):
            await YouTubeDataProvider(client, base=BASE).fetch_video(VIDEO_ID)
    assert calls == []


# ------------------ media provider ------------------
def _fmt(fid, has_audio, has_video, q):
    return MediaFormat(formatId=fid, url=f"https://m.test/{fid}", hasAudio=has_audio, hasVideo=has_video, quality=q)


def test_best_audio_returns_ytdlp_pick():
    info = MediaInfo(id=VIDEO_ID, bestAudioId="140", formats=[
        _fmt("18", True, True, (360.0, 30.0, 500.0)),
        _fmt("140", True, False, (128.0, 130.0)),
        _fmt("251", True, False, (160.0, 150.0)),
    ])
    assert MediaProvider(client=None).best_audio(info).formatId == "140"


def test_best_audio_without_pick_is_upstream_error():
    provider = MediaProvider(client=None)
    with pytest.raises(UpstreamError):
        provider.best_audio(MediaInfo(id=VIDEO_ID, formats=[_fmt("251", True, False, (160.0,))]))
    with pytest.raises(UpstreamError):
        provider.best_audio(MediaInfo(id=VIDEO_ID, bestAudioId="96", formats=[_fmt("18", True, True, (360.0,))]))


def _raw(fid, protocol, acodec, vcodec):
    return {"format_id": fid, "protocol": protocol, "acodec": acodec, "vcodec": vcodec}


def test_select_best_audio_uses_ytdlp_selector():
    # yt-dlp lists formats worst to best
    formats = [
        _raw("18", "https", "mp4a.40.2", "avc1.42001E"),
        _raw("140", "https", "mp4a.40.2", "none"),
        _raw("251", "https", "opus", "none"),
        _raw("233", "m3u8_native", "mp4a.40.5", "none"),
    ]
    muxed_only = [
        _raw("18", "https", "mp4a.40.2", "avc1.42001E"),
        _raw("96", "m3u8_native", "mp4a.40.2", "avc1.640028"),
    ]
    with yt_dlp.YoutubeDL({"quiet": True, "no_warnings": True}) as ydl:
        assert MediaProvider.select_best_audio(ydl, formats) == "251"
        assert MediaProvider.select_best_audio(ydl, muxed_only) == "18"
        assert MediaProvider.select_best_audio(ydl, [_raw("137", "https", "none", "avc1.640028")]) is None


@pytest.mark.asyncio
async def test_get_info_maps_formats(monkeypatch):
    provider = MediaProvider(client=None)
    monkeypatch.setattr(provider, "_extract", lambda vid: ({
        "id": vid, "title": "Clip",
        "formats": [{"format_id": "18", "url": "u", "ext": "mp4", "protocol": "https",
                     "acodec": "mp4a", "vcodec": "avc1", "height": 360}],
    }, "18"))
    info = await provider.get_info(VIDEO_ID)
    assert info.title == "Clip"
    assert info.formats[0].hasAudio and info.formats[0].hasVideo
    assert info.bestAudioId == "18"
    assert provider.best_audio(info).formatId == "18"


@pytest.mark.asyncio
async def test_get_info_maps_ytdlp_errors(monkeypatch):
    provider = MediaProvider(client=None)

    def unavailable(vid):
        raise DownloadError("ERROR: [youtube] x: Video unavailable")

    def broken(vid):
        raise DownloadError("ERROR: unable to extract player response")

    monkeypatch.setattr(provider, "_extract", unavailable)
    with pytest.raises(UnresolvedError):
        await provider.get_info(VIDEO_ID)

    monkeypatch.setattr(provider, "_extract", broken)
    with pytest.raises(UpstreamError):
        await provider.get_info(VIDEO_ID)


@pytest.mark.asyncio
async def test_open_stream_forwards_bytes_and_headers():
    seen: List[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=b"x" * 10, headers={"content-type": "video/mp4"})

    fmt = MediaFormat(formatId="18", url="https://m.test/18", hasAudio=True, hasVideo=True, httpHeaders={"Referer": "r"})
    async with make_client(handler) as client:
        provider = MediaProvider(client, chunk_size=4)
        async with provider.open_stream(fmt) as chunks:
            body = b"".join([c async for c in chunks])
    assert body == b"x" * 10
    assert seen[0].headers["referer"] == "r"


@pytest.mark.asyncio
async def test_open_stream_rejects_error_status():
    fmt = MediaFormat(formatId="18", url="https://m.test/18")
    async with make_client(lambda r: httpx.Response(403)) as client:
        with pytest.raises(UpstreamError, match="403"):
            async with MediaProvider(client).open_stream(fmt):
                pass
