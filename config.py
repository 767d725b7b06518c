# config.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()


# ------------ Safe env helpers (tolerate empty/invalid) ------------
def _env_str(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v in (None, "", "None", "null"):
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v in (None, "", "None", "null"):
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v in (None, ""):
        return default
    return str(v).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


class Settings:
    YOUTUBE_API_BASE = (_env_str("YOUTUBE_API_BASE", "https://www.googleapis.com/youtube/v3") or "").rstrip("/")

    CORS_ORIGINS = _env_str("CORS_ORIGINS", "*")
    DEBUG_UPSTREAM = _env_bool("DEBUG_UPSTREAM", False)
    LOG_LEVEL = (_env_str("LOG_LEVEL", "INFO") or "INFO").upper()

    USER_AGENT = _env_str(
        "USER_AGENT",
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 "
            "TubeProxy/1.0 httpx"
        ),
    )
    HTTPX_TIMEOUT_SECONDS = _env_float("HTTPX_TIMEOUT_SECONDS", 25.0)

    # Media pipeline
    STREAM_CHUNK_SIZE = _env_int("STREAM_CHUNK_SIZE", 64 * 1024)
    FFMPEG_PATH = _env_str("FFMPEG_PATH", "ffmpeg")
    FFMPEG_KILL_TIMEOUT_SECONDS = _env_float("FFMPEG_KILL_TIMEOUT_SECONDS", 5.0)
    YTDLP_COOKIES_FILE = _env_str("YTDLP_COOKIES_FILE")

    PORT = _env_int("PORT", 8080)

    @property
    def youtube_api_key(self) -> str | None:
        # Read per call so a rotated or late-provided key is picked up.
        return _env_str("YOUTUBE_DATA_API_KEY")


S = Settings()


def configure_logging() -> None:
    level = logging.DEBUG if S.DEBUG_UPSTREAM else getattr(logging, S.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
