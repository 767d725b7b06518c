# streaming.py
"""
Media pipelines handed to the HTTP layer as a single ``MediaStream``.

  muxed:  upstream bytes -> caller
  audio:  upstream bytes -> ffmpeg (mp3) -> caller

A ``MediaStream`` owns everything it was built from through an
``AsyncExitStack``; closing it (normal end, error or client disconnect)
releases the ffmpeg process and the upstream socket together.
"""
import asyncio
import enum
import logging
from contextlib import AsyncExitStack, suppress
from typing import AsyncIterator, Callable, List, Optional

import anyio

from config import S
from errors import UpstreamError
from models import MediaFormat, MediaInfo

log = logging.getLogger(__name__)

MP3_BITRATE_KBPS = 192
MP3_MIME = "audio/mpeg"
# Bytes of ffmpeg stderr kept for the error message.
STDERR_TAIL_BYTES = 4096


class TranscodeError(UpstreamError):
    pass


class StreamState(str, enum.Enum):
    OPENING = "opening"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERROR = "error"
    CANCELED = "canceled"


class MediaStream:
    def __init__(self, stack: AsyncExitStack, chunks: AsyncIterator[bytes], media_type: str):
        self._stack = stack
        self._chunks = chunks
        self._released = False
        self.media_type = media_type
        self.state = StreamState.OPENING

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield payload chunks; single use, not restartable."""
        self.state = StreamState.STREAMING
        try:
            async for chunk in self._chunks:
                yield chunk
        except (asyncio.CancelledError, GeneratorExit):
            self.state = StreamState.CANCELED
            raise
        except Exception as e:
            self.state = StreamState.ERROR
            log.warning("media stream failed: %s", e)
            raise
        else:
            self.state = StreamState.CLOSED
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        if self.state in (StreamState.OPENING, StreamState.STREAMING):
            self.state = StreamState.CANCELED
        log.debug("releasing %s stream (%s)", self.media_type, self.state.value)
        # Must finish even while the request task is being cancelled.
        with anyio.CancelScope(shield=True):
            await self._stack.aclose()


class Mp3Transcoder:
    """ffmpeg subprocess reading the source on stdin and writing mp3 to stdout."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        bitrate_kbps: int = MP3_BITRATE_KBPS,
        chunk_size: Optional[int] = None,
        kill_timeout: Optional[float] = None,
    ):
        self.ffmpeg_path = ffmpeg_path or S.FFMPEG_PATH or "ffmpeg"
        self.bitrate_kbps = bitrate_kbps
        self.chunk_size = chunk_size or S.STREAM_CHUNK_SIZE
        self.kill_timeout = kill_timeout if kill_timeout is not None else S.FFMPEG_KILL_TIMEOUT_SECONDS
        self._process: Optional[asyncio.subprocess.Process] = None
        self._feeder: Optional[asyncio.Task] = None
        self._stderr_reader: Optional[asyncio.Task] = None
        self._stderr_tail = bytearray()

    def command(self) -> List[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-vn",
            "-acodec", "libmp3lame",
            "-b:a", f"{self.bitrate_kbps}k",
            "-f", "mp3",
            "pipe:1",
        ]

    async def start(self, source: AsyncIterator[bytes]) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Unable to start ffmpeg: {e}") from e
        log.debug("ffmpeg started pid=%s", self._process.pid)
        self._feeder = asyncio.create_task(self._feed(source))
        self._stderr_reader = asyncio.create_task(self._drain_stderr())

    async def _feed(self, source: AsyncIterator[bytes]) -> None:
        stdin = self._process.stdin
        try:
            async for chunk in source:
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # ffmpeg stopped reading; its exit code is checked by iter_bytes.
            log.debug("ffmpeg closed stdin early")
        finally:
            if not stdin.is_closing():
                stdin.close()

    async def _drain_stderr(self) -> None:
        # A full stderr pipe would stall ffmpeg before stdout reaches EOF.
        stderr = self._process.stderr
        while True:
            chunk = await stderr.read(self.chunk_size)
            if not chunk:
                break
            self._stderr_tail += chunk
            del self._stderr_tail[:-STDERR_TAIL_BYTES]

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        proc = self._process
        while True:
            chunk = await proc.stdout.read(self.chunk_size)
            if not chunk:
                break
            yield chunk

        rc = await proc.wait()
        await self._stderr_reader
        if rc != 0:
            err = self._stderr_tail.decode(errors="replace").strip()
            raise TranscodeError(f"ffmpeg exited with code {rc}: {err[-500:]}")
        # A clean exit means stdin hit EOF, so the feeder is done; this
        # re-raises a source failure that cut the input short.
        await self._feeder

    async def aclose(self) -> None:
        tasks = [t for t in (self._feeder, self._stderr_reader) if t is not None]
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        log.debug("terminating ffmpeg pid=%s", proc.pid)
        with suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            log.warning("ffmpeg pid=%s did not terminate gracefully; killing", proc.pid)
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()


async def open_muxed_stream(provider, fmt: MediaFormat) -> MediaStream:
    """Forward the upstream bytes of ``fmt`` unmodified.

    Raises before any byte is produced if the upstream cannot be opened.
    """
    async with AsyncExitStack() as stack:
        source = await stack.enter_async_context(provider.open_stream(fmt))
        return MediaStream(stack.pop_all(), source, fmt.mimeType)


async def open_audio_stream(
    provider,
    info: MediaInfo,
    transcoder_factory: Callable[[], Mp3Transcoder] = Mp3Transcoder,
) -> MediaStream:
    """Best audio-only source piped through an mp3 transcoder."""
    fmt = provider.best_audio(info)
    async with AsyncExitStack() as stack:
        source = await stack.enter_async_context(provider.open_stream(fmt))
        transcoder = transcoder_factory()
        # Registered before start() so a half-started ffmpeg is reaped too.
        stack.push_async_callback(transcoder.aclose)
        await transcoder.start(source)
        return MediaStream(stack.pop_all(), transcoder.iter_bytes(), MP3_MIME)
