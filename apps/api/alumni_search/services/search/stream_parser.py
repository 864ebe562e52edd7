"""Incremental parser for a streamed rerank completion.

Two buffers: transport frames (OpenAI SSE lines, `data: {...}` / `data: [DONE]`) and the
model's generated text. The generated text is scanned by a string-aware brace matcher;
a `{"person_id": ..., "why_relevant": ...}` object is emitted as soon as its braces
balance and it decodes as JSON with both keys present. Results are deduplicated by
person_id and never emitted for ids outside the candidate map.
"""

import json
import logging
import time
from enum import Enum
from typing import Callable, Mapping

from alumni_search.core import MalformedUpstreamPayload
from alumni_search.schemas import ErrorEvent, RankedResult, ResultEvent
from alumni_search.utils import elapsed_ms

from .enrichment import Candidate

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"
# Characters that may legally follow a closed JSON string (outside another string)
_AFTER_STRING_OK = frozenset(":,}] \t\r\n")


class ParserState(str, Enum):
    AWAITING_TOKEN = "awaiting_token"
    ACCUMULATING_CONTENT = "accumulating_content"
    SCANNING_FOR_OBJECT = "scanning_for_object"
    EMITTING_RESULT = "emitting_result"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ParserState.DONE, ParserState.FAILED})


def decode_delta(payload: str) -> str:
    """Return the generated-text delta from one SSE data payload (may be empty)."""
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise MalformedUpstreamPayload(f"Frame is not JSON: {payload[:80]!r}") from e
    if not isinstance(data, dict):
        raise MalformedUpstreamPayload("Frame JSON is not an object.")
    choices = data.get("choices")
    if not choices:
        # e.g. trailing usage chunk
        return ""
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise MalformedUpstreamPayload("Frame has unexpected choices shape.")
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        raise MalformedUpstreamPayload("Frame delta is not an object.")
    content = delta.get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        raise MalformedUpstreamPayload("Frame delta content is not a string.")
    return content


class JsonObjectScanner:
    """Rolling-buffer scanner that yields balanced `{...}` spans as they complete.

    Tracks JSON string/escape state so braces inside strings are ignored. Starts of
    enclosing objects are forgotten (set to None) once an inner object is consumed, so a
    wrapper like `{"results": [` never pins the buffer. A string followed by anything
    other than `: , } ]` is structurally invalid (e.g. a raw quote inside a value); the
    open objects are abandoned and scanning resyncs at the next `{`.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self._pos = 0
        self._in_string = False
        self._escaped = False
        self._after_string = False
        self._resync = False
        self._open: list[int | None] = []

    def feed(self, text: str) -> None:
        self.buffer += text

    def next_object(self) -> str | None:
        """Advance the scan and return the next completed object span, or None."""
        buf = self.buffer
        while self._pos < len(buf):
            i = self._pos
            ch = buf[i]
            self._pos += 1

            if self._resync:
                if ch == "{":
                    self._resync = False
                    self._open.append(i)
                continue

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
                    self._after_string = True
                continue

            if self._after_string:
                self._after_string = False
                if ch not in _AFTER_STRING_OK:
                    logger.warning(
                        "stream scan: malformed object near %r, skipping to next object",
                        buf[max(0, i - 40): i + 1],
                    )
                    self._open = [None] * len(self._open)
                    self._resync = True
                    continue
                if ch in " \t\r\n":
                    # still directly after the string; keep checking the next char
                    self._after_string = True
                    continue

            if ch == '"':
                self._in_string = True
            elif ch == "{":
                self._open.append(i)
            elif ch == "}" and self._open:
                start = self._open.pop()
                if start is not None:
                    return buf[start: i + 1]
        return None

    def consume(self) -> None:
        """Mark the last returned object as used: enclosing objects can no longer be emitted."""
        self._open = [None] * len(self._open)

    def trim(self) -> None:
        """Drop scanned text that no open object still needs."""
        known = [s for s in self._open if s is not None]
        cut = min(known) if known else self._pos
        if cut <= 0:
            return
        self.buffer = self.buffer[cut:]
        self._pos -= cut
        self._open = [s - cut if s is not None else None for s in self._open]


def decode_result_object(obj_text: str) -> tuple[str, str] | None:
    """Decode a balanced object. Returns (person_id, why_relevant), or None if it is not a result.

    json.loads reverses JSON string escaping (quotes, newlines, unicode escapes).
    Raises MalformedUpstreamPayload for an object that looks like a result but does not decode.
    """
    try:
        data = json.loads(obj_text)
    except ValueError as e:
        if '"person_id"' in obj_text:
            raise MalformedUpstreamPayload(f"Result object does not decode: {obj_text[:120]!r}") from e
        return None
    if not isinstance(data, dict) or "person_id" not in data:
        return None
    person_id = data.get("person_id")
    why = data.get("why_relevant")
    if not isinstance(person_id, str) or not person_id.strip() or not isinstance(why, str):
        raise MalformedUpstreamPayload(f"Result object missing required fields: {obj_text[:120]!r}")
    return person_id.strip(), why


class StreamingResultParser:
    """Turns raw transport text into `result` events, one per completed model object."""

    def __init__(
        self,
        candidates: Mapping[str, Candidate],
        started_at: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.candidates = candidates
        self.clock = clock
        self.started_at = started_at if started_at is not None else clock()
        self.state = ParserState.AWAITING_TOKEN
        self._frame_buffer = ""
        self._scanner = JsonObjectScanner()
        self._emitted_ids: set[str] = set()
        self.results: list[RankedResult] = []
        self.received_content = False

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def emitted_count(self) -> int:
        return len(self.results)

    @property
    def content_buffer(self) -> str:
        return self._scanner.buffer

    def elapsed_ms(self) -> int:
        return elapsed_ms(self.started_at, self.clock())

    def feed(self, raw: str) -> list[ResultEvent]:
        """Consume raw transport text; return result events completed by it."""
        if self.finished or not raw:
            return []
        self._frame_buffer += raw
        events: list[ResultEvent] = []
        while "\n" in self._frame_buffer and not self.finished:
            line, self._frame_buffer = self._frame_buffer.split("\n", 1)
            events.extend(self._handle_frame(line))
        return events

    def finish(self) -> list[ResultEvent]:
        """End of transport stream: flush an unterminated last frame, then move to DONE."""
        if self.finished:
            return []
        events: list[ResultEvent] = []
        if self._frame_buffer.strip():
            events = self._handle_frame(self._frame_buffer)
        self._frame_buffer = ""
        self.state = ParserState.DONE
        return events

    def fail(self, reason: str) -> ErrorEvent | None:
        """Transport failure: move to FAILED and return the single error event (None if already terminal)."""
        if self.finished:
            return None
        self.state = ParserState.FAILED
        logger.warning("stream parse: transport failed after %d result(s): %s", self.emitted_count, reason)
        return ErrorEvent(message=reason, timestamp_ms=self.elapsed_ms())

    def _handle_frame(self, line: str) -> list[ResultEvent]:
        line = line.strip()
        if not line or not line.startswith(SSE_DATA_PREFIX):
            # blank separator, SSE comment (": keep-alive") or event:/id: field
            return []
        payload = line[len(SSE_DATA_PREFIX):].strip()
        if payload == SSE_DONE:
            self.state = ParserState.DONE
            return []
        try:
            content = decode_delta(payload)
        except MalformedUpstreamPayload as e:
            logger.warning("stream parse: skipping malformed frame: %s", e)
            return []
        if not content:
            return []
        self.received_content = True
        self.state = ParserState.ACCUMULATING_CONTENT
        self._scanner.feed(content)
        return self._scan()

    def _scan(self) -> list[ResultEvent]:
        events: list[ResultEvent] = []
        self.state = ParserState.SCANNING_FOR_OBJECT
        while True:
            obj_text = self._scanner.next_object()
            if obj_text is None:
                break
            try:
                match = decode_result_object(obj_text)
            except MalformedUpstreamPayload as e:
                logger.warning("stream parse: skipping object: %s", e)
                self._scanner.consume()
                continue
            if match is None:
                continue
            self._scanner.consume()
            event = self._emit(*match)
            if event is not None:
                events.append(event)
        self._scanner.trim()
        self.state = ParserState.ACCUMULATING_CONTENT
        return events

    def _emit(self, person_id: str, why_relevant: str) -> ResultEvent | None:
        if person_id in self._emitted_ids:
            logger.info("stream parse: duplicate person_id=%s ignored", person_id)
            return None
        candidate = self.candidates.get(person_id)
        if candidate is None:
            logger.warning("stream parse: person_id not in candidates, skipped | person_id=%s", person_id)
            return None
        self.state = ParserState.EMITTING_RESULT
        self._emitted_ids.add(person_id)
        result = candidate.to_ranked_result(why_relevant)
        self.results.append(result)
        return ResultEvent(index=len(self.results), result=result, timestamp_ms=self.elapsed_ms())
