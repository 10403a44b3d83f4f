import logging
from typing import List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from contentflow.core.openai_client import map_openai_error

logger = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/mp4": "m4a",
    "video/mp4": "mp4",
    "video/webm": "webm",
}


class OpenAIEmbeddingProvider:
    """Dense embeddings through the OpenAI embeddings endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str):
        self._client = client
        self.model = model

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            resp = await self._client.embeddings.create(model=self.model, input=list(texts))
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e
        return [d.embedding for d in resp.data]


class OpenAILanguageModel:
    """Single-turn completion: one user message in, assistant text out."""

    def __init__(self, client: AsyncOpenAI, model: str, temperature: float = 0.2):
        self._client = client
        self.model = model
        self.temperature = temperature

    async def complete(self, prompt: str) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e
        return (resp.choices[0].message.content or "").strip()


class OpenAITranscriptionProvider:
    """Speech-to-text for downloaded audio/video files."""

    def __init__(self, client: AsyncOpenAI, model: str, prompt: Optional[str] = None):
        self._client = client
        self.model = model
        self.prompt = prompt

    async def transcribe(self, file_bytes: bytes, mime_type: str) -> str:
        ext = MIME_EXTENSIONS.get(mime_type, "bin")
        kwargs = {"model": self.model, "file": (f"media.{ext}", file_bytes, mime_type)}
        if self.prompt:
            kwargs["prompt"] = self.prompt
        try:
            resp = await self._client.audio.transcriptions.create(**kwargs)
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e
        return (getattr(resp, "text", None) or "").strip()
