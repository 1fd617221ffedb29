"""
Reassembles the relay's byte stream and hands out deltas for progressive rendering.
"""

import codecs
import re
from typing import AsyncIterable, Callable, Optional, Union

CLOSE_TAG = re.compile(r"</[A-Za-z][^<>]*>")
FENCE_OPEN = re.compile(r"^\s*```[A-Za-z]*[ \t]*\n?")
FENCE_CLOSE = re.compile(r"\n?```\s*$")


class StreamConsumer:
    """
    Buffers incoming text and releases only what is safe to render.

    In html mode the buffer is committed up to the end of the last complete
    close tag, so a tag split across chunks is never rendered half-way.
    finish() flushes whatever is left.
    """

    def __init__(self, html: bool = True):
        self.html = html
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._parts = []

    @property
    def text(self) -> str:
        """Everything committed so far."""
        return "".join(self._parts)

    def feed(self, chunk: Union[bytes, str]) -> str:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._pending += chunk
        if not self.html:
            return self._commit(len(self._pending))
        last = None
        for last in CLOSE_TAG.finditer(self._pending):
            pass
        if last is None:
            return ""
        return self._commit(last.end())

    def finish(self) -> str:
        """Flush the held-back tail and return the full assembled text."""
        self._pending += self._decoder.decode(b"", final=True)
        self._commit(len(self._pending))
        return self.text

    def _commit(self, end: int) -> str:
        delta, self._pending = self._pending[:end], self._pending[end:]
        if delta:
            self._parts.append(delta)
        return delta

    async def consume(self, stream: AsyncIterable[bytes],
                      on_delta: Optional[Callable[[str], None]] = None) -> str:
        async for chunk in stream:
            delta = self.feed(chunk)
            if delta and on_delta:
                on_delta(delta)
        before = len(self.text)
        full = self.finish()
        if on_delta and len(full) > before:
            on_delta(full[before:])
        return full


def strip_code_fences(text: str) -> str:
    """Drop a leading ```html fence and a trailing ``` the model may add anyway."""
    if text.lstrip().startswith("```"):
        text = FENCE_OPEN.sub("", text, count=1)
        text = FENCE_CLOSE.sub("", text, count=1)
    return text.strip()
