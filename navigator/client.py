"""
Content sources for the navigator.

GenerationClient talks to the FastAPI /generate/* endpoints over HTTP;
RelaySource calls ChunkRelay in-process (no server needed, used by the CLI).
Both expose `stream(kind, payload)` yielding raw bytes of answer text.
"""

import json
import logging
from typing import AsyncIterator, Optional

import httpx

from backend.config import load_settings
from backend.errors import UpstreamError
from backend.llm_adapter import ChunkRelay
from backend.prompts import ContentKind, build_prompt

logger = logging.getLogger("navigator.client")

ENDPOINTS = {
    ContentKind.OUTLINE: "/generate/outline",
    ContentKind.SUB_OUTLINE: "/generate/subOutline",
    ContentKind.NOTES: "/generate/notes",
    ContentKind.QUIZ: "/generate/quiz",
    ContentKind.DIVE_DEEPER: "/generate/diveDeeper",
}


def error_from_response(status_code: int, body: bytes) -> UpstreamError:
    text = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        return UpstreamError(status_code, text)
    if not isinstance(data, dict):
        return UpstreamError(status_code, text)
    details = data.get("details")
    return UpstreamError(status_code, details if isinstance(details, str) else text,
                         message=data.get("error") or "Generation request failed")


class GenerationClient:
    """HTTP client for the streaming endpoints. One httpx client per stream."""

    def __init__(self, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: Optional[float] = None):
        settings = load_settings()
        self.base_url = (base_url or settings.fastapi_url).rstrip("/")
        self.transport = transport
        self.timeout = timeout or settings.generation_timeout

    async def stream(self, kind: ContentKind, payload: dict) -> AsyncIterator[bytes]:
        path = ENDPOINTS[ContentKind(kind)]
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport,
                                         timeout=self.timeout) as client:
                async with client.stream("POST", path, json=payload) as response:
                    if response.is_error:
                        body = await response.aread()
                        logger.error(f"HTTP error calling {path}: {response.status_code} {body[:200]!r}")
                        raise error_from_response(response.status_code, body)
                    async for chunk in response.aiter_bytes():
                        yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Error calling {path}: {e}")
            raise UpstreamError(502, str(e), message=f"Could not reach {path}")


class RelaySource:
    """Streams straight from ChunkRelay without going through the HTTP layer."""

    def __init__(self, relay: Optional[ChunkRelay] = None):
        self.relay = relay or ChunkRelay()

    async def stream(self, kind: ContentKind, payload: dict) -> AsyncIterator[bytes]:
        spec = build_prompt(kind, model=self.relay.settings.model_name, **payload)
        stream = await self.relay.open(spec)
        async for chunk in stream:
            yield chunk
