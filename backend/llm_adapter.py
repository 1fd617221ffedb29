"""
Streaming relay to the chat-completion provider.

The provider answers with SSE frames (`data: {...}` lines). ChunkRelay strips
the framing and yields only the text of `choices[0].delta.content`, so the
caller receives a plain byte stream of the answer.
"""

import codecs
import json
import logging
from typing import AsyncIterator, List, Optional

import httpx

from .config import Settings, load_settings
from .errors import ConfigError, FrameParseError, UpstreamError
from .prompts import PromptSpec

logger = logging.getLogger("relay")
logger.setLevel(logging.INFO)

DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


class FrameDecoder:
    """
    Incremental SSE frame decoder.

    feed() may be called with reads split at any byte offset, including in
    the middle of a UTF-8 character or a JSON object; only complete lines are
    parsed and the rest is kept for the next call.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        out = []
        for line in lines:
            text = self._parse_line(line)
            if text:
                out.append(text)
        return out

    def close(self) -> List[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        text = self._parse_line(remaining)
        return [text] if text else []

    def _parse_line(self, line: str) -> Optional[str]:
        line = line.strip()
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_TOKEN:
            return None
        try:
            return extract_delta(payload)
        except FrameParseError as e:
            self.skipped += 1
            logger.warning(f"Skipping frame: {e}")
            return None


def extract_delta(payload: str) -> Optional[str]:
    """Return choices[0].delta.content from one JSON frame, or None."""
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(payload, str(e))
    if not isinstance(parsed, dict):
        raise FrameParseError(payload, "frame is not a JSON object")
    choices = parsed.get("choices") or []
    if not isinstance(choices, list):
        raise FrameParseError(payload, "choices is not a list")
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if content is not None and not isinstance(content, str):
        raise FrameParseError(payload, "delta content is not a string")
    return content or None


class RelayStream:
    """Async byte iterator over an open upstream response."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._decoder = FrameDecoder()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                for text in self._decoder.feed(chunk):
                    yield text.encode("utf-8")
            for text in self._decoder.close():
                yield text.encode("utf-8")
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream broke: {e}")
            raise UpstreamError(502, str(e), message="Model API stream interrupted")
        finally:
            await self.aclose()

    async def aclose(self):
        await self._response.aclose()
        await self._client.aclose()


class ChunkRelay:
    """
    One relay for all five content kinds; the prompt decides the kind.

    `transport` is handed to httpx, which lets tests plug in a MockTransport.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or load_settings()
        self.transport = transport

    def _headers(self) -> dict:
        if not self.settings.model_api_key:
            raise ConfigError("Model API key is not configured", config_key="MODEL_API_KEY")
        return {
            "Authorization": f"Bearer {self.settings.model_api_key}",
            "Content-Type": "application/json",
        }

    async def open(self, spec: PromptSpec) -> RelayStream:
        """
        Start a streaming completion.

        Raises ConfigError before any connection when the key is missing and
        UpstreamError (with the provider's status and body) on non-2xx.
        """
        headers = self._headers()
        payload = {
            "model": spec.model or self.settings.model_name,
            "messages": spec.messages(),
            "stream": True,
        }
        client = httpx.AsyncClient(timeout=self.settings.generation_timeout, transport=self.transport)
        try:
            request = client.build_request("POST", self.settings.model_api_url, json=payload, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"Could not reach model API: {e}")
            raise UpstreamError(502, str(e), message="Could not reach model API")
        except BaseException:
            await client.aclose()
            raise

        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            await client.aclose()
            logger.error(f"Model API returned {response.status_code}: {body[:200]}")
            raise UpstreamError(response.status_code, body)

        logger.info(f"Streaming completion from {spec.model}")
        return RelayStream(client, response)

    async def relay(self, spec: PromptSpec) -> AsyncIterator[bytes]:
        """open() and iterate in one call."""
        stream = await self.open(spec)
        async for chunk in stream:
            yield chunk
