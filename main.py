"""
TubeProxy Backend v1.0 (FastAPI)

Goals
- Resolve a YouTube URL or video id to one normalized video record
- Enrich it with channel details, best effort (never fails the lookup)
- Stream media back: muxed file as-is, or audio transcoded to mp3
- Stateless per request: no cache, no retries
- Permissive CORS on every response, including errors
- Useful debugging headers behind DEBUG_UPSTREAM

Run locally
  YOUTUBE_DATA_API_KEY=... uvicorn main:app --host 0.0.0.0 --port 8080 --reload

Deploy (Cloud Run)
  gcloud builds submit --tag gcr.io/PROJECT/tubeproxy:v1.0
  gcloud run deploy tubeproxy \
    --image gcr.io/PROJECT/tubeproxy:v1.0 \
    --allow-unauthenticated --region=us-central1 \
    --set-env-vars=YOUTUBE_DATA_API_KEY=...
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

import httpx
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from composer import resolve
from config import S, configure_logging
from errors import BadInputError, ProxyError, UnresolvedError
from extractor import extract_video_id
from models import ErrorResponse, VideoResponse
from formats import content_disposition, extension_for_mime, sanitize_filename, select_audio_only, select_muxed
from providers import MediaProvider, YouTubeDataProvider
from streaming import open_audio_stream, open_muxed_stream

configure_logging()
log = logging.getLogger("tubeproxy")

MISSING_INPUT = "Missing input (YouTube URL or videoId)"
UNRESOLVED = "Unable to resolve a video from the provided input"

LOOKUP_PARAMS = ("input", "url", "id", "videoId")
DOWNLOAD_PARAMS = ("id", "input", "url")

LOOKUP_METHODS = "GET,POST,OPTIONS"
DOWNLOAD_METHODS = "GET,OPTIONS"

# OpenAPI docs only; handlers build their JSONResponse directly.
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 404, 422, 500)}

# ------------------ App ------------------
app = FastAPI(title="TubeProxy Backend", version="1.0")


# Shared httpx client in app.state
async def _new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=S.HTTPX_TIMEOUT_SECONDS,
        headers={"User-Agent": S.USER_AGENT, "Accept": "application/json, */*"},
        follow_redirects=True,
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )


# ------------------ Startup/Shutdown ------------------
@app.on_event("startup")
async def _on_startup():
    app.state.client = await _new_client()
    if not S.youtube_api_key:
        log.warning("YOUTUBE_DATA_API_KEY is not set; metadata lookups will fail")


@app.on_event("shutdown")
async def _on_shutdown():
    client: Optional[httpx.AsyncClient] = getattr(app.state, "client", None)
    if client is not None:
        await client.aclose()


# ------------------ Dependencies ------------------
def get_data_provider(request: Request) -> YouTubeDataProvider:
    return YouTubeDataProvider(request.app.state.client)


def get_media_provider(request: Request) -> MediaProvider:
    return MediaProvider(request.app.state.client)


# ------------------ Helpers ------------------
def _cors_headers(methods: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": S.CORS_ORIGINS or "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Access-Control-Max-Age": "86400",
    }


def _methods_for(path: str) -> str:
    return DOWNLOAD_METHODS if path.rstrip("/").endswith("/download") else LOOKUP_METHODS


def _json(request: Request, body: dict, status: int = 200, extra: Optional[Dict[str, str]] = None) -> JSONResponse:
    headers = _cors_headers(_methods_for(request.url.path))
    if extra:
        headers.update(extra)
    return JSONResponse(status_code=status, content=body, headers=headers)


def _first_param(request: Request, names: Iterable[str]) -> str:
    # First alias with a non-empty value wins, then it is trimmed.
    for name in names:
        v = request.query_params.get(name)
        if v:
            return v.strip()
    return ""


async def _lookup(request: Request, raw: str, provider: YouTubeDataProvider) -> JSONResponse:
    if not raw:
        raise BadInputError(MISSING_INPUT)

    video = await resolve(raw, provider)
    if video is None:
        raise UnresolvedError(UNRESOLVED)

    extra: Dict[str, str] = {}
    if S.DEBUG_UPSTREAM:
        extra["X-TP-Channel"] = "enriched" if video.channel is not None else "missing"
    return _json(request, {"video": video.model_dump(exclude_none=True)}, extra=extra)


# ------------------ Endpoints ------------------
@app.get("/health")
async def health():
    return {
        "ok": True,
        "apiKeyConfigured": bool(S.youtube_api_key),
        "debugUpstream": S.DEBUG_UPSTREAM,
    }


@app.get("/api/youtube", response_model=VideoResponse, responses=ERROR_RESPONSES)
async def youtube_lookup(request: Request, provider: YouTubeDataProvider = Depends(get_data_provider)):
    return await _lookup(request, _first_param(request, LOOKUP_PARAMS), provider)


@app.post("/api/youtube", response_model=VideoResponse, responses=ERROR_RESPONSES)
async def youtube_lookup_post(request: Request, provider: YouTubeDataProvider = Depends(get_data_provider)):
    try:
        body = await request.json()
    except ValueError:
        body = {}
    raw = body.get("input") if isinstance(body, dict) else None
    return await _lookup(request, "" if raw is None else str(raw).strip(), provider)


@app.options("/api/youtube")
async def youtube_options():
    return Response(status_code=204, headers=_cors_headers(LOOKUP_METHODS))


@app.get("/api/youtube/download", responses=ERROR_RESPONSES)
async def youtube_download(request: Request, media: MediaProvider = Depends(get_media_provider)):
    raw = _first_param(request, DOWNLOAD_PARAMS)
    kind = request.query_params.get("type") or "video"  # "video" | "audio"
    if not raw:
        raise BadInputError(MISSING_INPUT)

    video_id = extract_video_id(raw)
    if video_id is None:
        raise UnresolvedError(UNRESOLVED)

    info = await media.get_info(video_id)
    title = sanitize_filename(info.title or video_id) or video_id

    if kind == "audio":
        select_audio_only(info.formats)
        stream = await open_audio_stream(media, info)
        filename = f"{title}.mp3"
    else:
        fmt = select_muxed(info.formats)
        stream = await open_muxed_stream(media, fmt)
        filename = f"{title}.{extension_for_mime(fmt.mimeType)}"

    headers = _cors_headers(DOWNLOAD_METHODS)
    headers["Content-Disposition"] = content_disposition(filename)
    headers["Cache-Control"] = "no-store"
    log.info("streaming %s as %s (%s)", video_id, kind, stream.media_type)
    return StreamingResponse(
        stream.iter_bytes(),
        media_type=stream.media_type.split(";")[0],
        headers=headers,
        background=BackgroundTask(stream.aclose),
    )


@app.options("/api/youtube/download")
async def youtube_download_options():
    return Response(status_code=204, headers=_cors_headers(DOWNLOAD_METHODS))


# ------------------ Error handlers ------------------
@app.exception_handler(ProxyError)
async def proxy_errors(request: Request, exc: ProxyError):
    if exc.status_code >= 500:
        log.error("%s failed: %s", request.url.path, exc.message)
    return _json(request, {"error": exc.message}, status=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_errors(request: Request, exc: StarletteHTTPException):
    return _json(request, {"error": str(exc.detail)}, status=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exceptions(request: Request, exc: Exception):
    log.exception("unhandled error on %s", request.url.path)
    return _json(request, {"error": str(exc) or "Internal Server Error"}, status=500)


# ------------------ Entrypoint ------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=S.PORT, reload=False)
