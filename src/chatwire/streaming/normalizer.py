# src/chatwire/streaming/normalizer.py
"""
Turns a chunked HTTP body into CompletionChunk objects.

Reads arrive in arbitrary slices; they are decoded incrementally, split on
newlines and each complete line is decoded according to the profile's framing:

  plain  one JSON object per line (Ollama, KoboldCpp)
  sse    "data: <json>" lines, "data: [DONE]" marks the end (OpenAI style)

Whatever the backend does at the end of a stream, the caller sees exactly one
chunk with done=True and it is the last one. In plain mode that means the
most recent chunk is held back by one record, so a trailing "done, no content"
record can be folded into it instead of being yielded on its own.

Everything is pull-driven: nothing is read from the source until the caller
asks for the next chunk.
"""
from __future__ import annotations
import codecs
import json
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, List, Optional

from chatwire.core.errors import DecodeSkip, TransportFailure
from chatwire.core.ports import CompletionChunk
from chatwire.providers import generic
from chatwire.providers.profile import ProviderProfile

log = logging.getLogger(__name__)

SSE_FIELD = "data:"
SSE_DONE = "[DONE]"


def terminal_chunk() -> CompletionChunk:
    return CompletionChunk(content="", role="assistant", done=True)


class LineSplitter:
    """Incremental bytes -> complete text lines. Keeps the unfinished tail."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[str]:
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail.strip():
            return []
        return [line.rstrip("\r") for line in tail.split("\n")]


def _as_chunk(value: Any) -> CompletionChunk:
    if isinstance(value, CompletionChunk):
        return value
    if isinstance(value, dict):
        # Accept the nested {"message": {...}, "done": ...} shape from hand-written transforms
        message = value.get("message") if isinstance(value.get("message"), dict) else value
        return CompletionChunk(
            content=generic.text_or_empty(message.get("content")),
            role=message.get("role") or "assistant",
            done=bool(value.get("done", False)),
        )
    raise TypeError(f"chunk transform returned {type(value).__name__}")


class StreamNormalizer:
    """Per-line state machine. One instance per response."""

    def __init__(self, profile: ProviderProfile):
        self.profile = profile
        self._sse = profile.is_sse
        self._transform: Callable[[Any], Any] = profile.from_wire_chunk or generic.from_wire_chunk
        self._held: Optional[CompletionChunk] = None
        self.finished = False

    def feed_line(self, line: str) -> Iterator[CompletionChunk]:
        if not line.strip():
            return
        payload = line
        if self._sse:
            if not line.startswith(SSE_FIELD):
                # event:, id:, retry: and ": comment" lines
                return
            payload = line[len(SSE_FIELD):]
            if payload.startswith(" "):
                payload = payload[1:]
            if payload.strip() == SSE_DONE:
                yield from self._terminate(terminal_chunk())
                return
        try:
            chunk = self._decode(payload)
        except DecodeSkip as exc:
            log.warning("%s: skipping stream line: %s", self.profile.name, exc)
            return
        yield from self._accept(chunk)

    def finish(self) -> Iterator[CompletionChunk]:
        """Transport ended cleanly. Make sure a terminal chunk went out."""
        if self.finished:
            return
        if self._held is not None:
            held, self._held = self._held, None
            yield from self._terminate(replace(held, done=True))
        else:
            log.debug("%s: stream ended without a completion marker", self.profile.name)
            yield from self._terminate(terminal_chunk())

    def release_held(self) -> Iterator[CompletionChunk]:
        """Transport broke: hand over any held text without claiming completion."""
        if self._held is not None:
            held, self._held = self._held, None
            yield held

    def _decode(self, payload: str) -> CompletionChunk:
        try:
            record = json.loads(payload)
        except ValueError as exc:
            raise DecodeSkip(f"invalid JSON ({exc}): {payload[:80]!r}") from exc
        try:
            return _as_chunk(self._transform(record))
        except Exception as exc:
            raise DecodeSkip(f"chunk transform failed ({exc.__class__.__name__}: {exc})") from exc

    def _accept(self, chunk: CompletionChunk) -> Iterator[CompletionChunk]:
        if self.finished:
            log.debug("%s: dropping record after end of stream", self.profile.name)
            return

        if self._sse:
            if chunk.done:
                # "[DONE]" is the terminal event; a finish_reason record only ends the text
                if not chunk.content:
                    return
                chunk = replace(chunk, done=False)
            yield chunk
            return

        if not chunk.done:
            if self._held is not None:
                yield self._held
            self._held = chunk
            return

        if not chunk.content and self._held is not None:
            # empty completion record: fold the flag into the previous chunk
            held, self._held = self._held, None
            yield from self._terminate(replace(held, done=True))
            return

        if self._held is not None:
            held, self._held = self._held, None
            yield held
        yield from self._terminate(chunk)

    def _terminate(self, chunk: CompletionChunk) -> Iterator[CompletionChunk]:
        if self.finished:
            log.debug("%s: ignoring repeated end-of-stream marker", self.profile.name)
            return
        yield from self.release_held()
        self.finished = True
        yield chunk


def iter_chunks(source: Iterable[bytes], profile: ProviderProfile) -> Iterator[CompletionChunk]:
    """
    Lazily normalize an iterable of byte slices into chunks.
    Plain framing yields each chunk only once the next record (or the end of
    the body) has arrived, so output lags the wire by one record. SSE chunks
    are yielded as soon as their line is complete.
    """
    splitter = LineSplitter()
    normalizer = StreamNormalizer(profile)
    try:
        for data in source:
            for line in splitter.feed(data):
                yield from normalizer.feed_line(line)
    except TransportFailure:
        yield from normalizer.release_held()
        raise
    for line in splitter.flush():
        yield from normalizer.feed_line(line)
    yield from normalizer.finish()


class CompletionStream:
    """
    Iterator of CompletionChunk bound to an open response.
    The response is released when the stream is exhausted, fails, is closed,
    or is used as a context manager and the block exits.
    """

    def __init__(
        self,
        source: Iterable[bytes],
        profile: ProviderProfile,
        release: Optional[Callable[[], None]] = None,
    ):
        self.profile = profile
        self._chunks = iter_chunks(source, profile)
        self._release = release
        self._closed = False

    def __iter__(self) -> "CompletionStream":
        return self

    def __next__(self) -> CompletionChunk:
        if self._closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except BaseException:
            self.close()
            raise

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._chunks.close()
        finally:
            if self._release is not None:
                self._release()
                log.debug("%s: stream released", self.profile.name)

    def __enter__(self) -> "CompletionStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self) -> None:
        # abandoned without close(); the response must not linger
        if not getattr(self, "_closed", True):
            self.close()
