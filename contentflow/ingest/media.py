"""
Media download + transcription for VIDEO/AUDIO content.

Degrade-and-continue: an oversized file, a failed download or a failed
transcription yields a placeholder string instead of failing the job. The
scratch file is removed on every path.
"""
import asyncio
import logging
import os
import tempfile
from typing import Tuple
from urllib.parse import urlparse

import httpx

from contentflow.core.config import MediaConfig, RetryPolicy
from contentflow.models.jobs import ContentKind
from contentflow.providers.base import TranscriptionProvider
from contentflow.utils.retry import Sleep, with_retry

logger = logging.getLogger(__name__)

NO_SPEECH_MARKER = "[No speech detected]"

MIME_TYPES = {
    ContentKind.AUDIO: "audio/mpeg",
    ContentKind.VIDEO: "video/mp4",
}


def large_file_placeholder(kind: ContentKind) -> str:
    return f"[Large {kind.value.lower()} file - transcription skipped to preserve API quota]"


def empty_transcription_placeholder(kind: ContentKind) -> str:
    return f"[{kind.value} transcription failed - empty response]"


def no_speech_placeholder() -> str:
    return "[No speech content detected in media]"


def failed_transcription_placeholder(kind: ContentKind) -> str:
    return f"[{kind.value} transcription failed - content will be processed without transcription]"


def _suffix_for(url: str) -> str:
    ext = os.path.splitext(urlparse(url).path)[1]
    return ext if 1 < len(ext) <= 6 else ".bin"


class MediaTranscriber:
    """Fetches remote media to a scratch file and transcribes it through the retry engine.
    Why available: The TRANSCRIBING stage of the content pipeline; always returns text (real transcript or a placeholder)."""

    def __init__(
        self,
        transcriber: TranscriptionProvider,
        http: httpx.AsyncClient,
        *,
        config: MediaConfig,
        retry_policy: RetryPolicy,
        sleep: Sleep = asyncio.sleep,
    ):
        self.transcriber = transcriber
        self.http = http
        self.config = config
        self.retry_policy = retry_policy
        self.sleep = sleep

    @property
    def max_bytes(self) -> int:
        return int(self.config.max_mb * 1024 * 1024)

    async def download(self, url: str) -> Tuple[str, int]:
        """Stream url into a new scratch file. Stops reading once the size ceiling is passed (the file is then skipped anyway). Returns (path, bytes_written)."""
        os.makedirs(self.config.scratch_dir, exist_ok=True)
        fd, path = tempfile.mkstemp(suffix=_suffix_for(url), dir=self.config.scratch_dir)
        written = 0
        try:
            with os.fdopen(fd, "wb") as f:
                async with self.http.stream("GET", url, timeout=self.config.download_timeout, follow_redirects=True) as resp:
                    resp.raise_for_status()
                    async for block in resp.aiter_bytes():
                        f.write(block)
                        written += len(block)
                        if written > self.max_bytes:
                            break
        except BaseException:
            _remove_quietly(path)
            raise
        return path, written

    async def transcribe(self, url: str, kind: ContentKind) -> str:
        path = None
        try:
            path, size = await self.download(url)
            size_mb = size / (1024 * 1024)
            logger.info("media_downloaded", extra={"url": url, "size_mb": round(size_mb, 2)})

            if size > self.max_bytes:
                logger.warning("media_too_large_skipping_transcription", extra={"url": url, "max_mb": self.config.max_mb})
                return large_file_placeholder(kind)

            data = await asyncio.to_thread(_read_bytes, path)

            mime_type = MIME_TYPES.get(kind, "application/octet-stream")
            text = await with_retry(
                lambda: self.transcriber.transcribe(data, mime_type),
                policy=self.retry_policy,
                operation_name=f"transcription for {url}",
                sleep=self.sleep,
            )
            text = (text or "").strip()
            if not text:
                logger.warning("transcription_empty", extra={"url": url})
                return empty_transcription_placeholder(kind)
            if NO_SPEECH_MARKER in text:
                logger.info("transcription_no_speech", extra={"url": url})
                return no_speech_placeholder()

            logger.info("transcription_done", extra={"url": url, "chars": len(text)})
            return text
        except Exception as e:
            logger.error("transcription_failed_using_placeholder", extra={"url": url, "error": str(e)})
            return failed_transcription_placeholder(kind)
        finally:
            if path:
                _remove_quietly(path)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("scratch_cleanup_failed", extra={"path": path, "error": str(e)})
