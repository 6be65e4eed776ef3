"""
Onboarding - Streaming Assistant Consumer.

Reads the onboarding assistant's server-sent-events response and folds it into
a StreamResult.

Framing: records are separated by a blank line, whichever of "\\r\\n\\r\\n" or
"\\n\\n" comes first in the buffer. A non-empty remainder when the body ends is
processed as a final record. Inside a record, `event:` names the event
(default "message") and one or more `data:` lines are joined with "\\n" and
JSON-decoded, falling back to the raw string.

Events:
    token      append `content` to the running reply (live progress callback)
    assistant  replace the reply with `content`
    state      replace the latest structured slot snapshot
    done       mark completion; merge `next_step` into the snapshot
    error      abort the stream as a failure

Cancellation is cooperative through a CancellationToken and is reported as
StreamAborted, never as a failure, so callers can tell "superseded by a newer
message" apart from "the assistant broke".
"""

import asyncio
import codecs
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import httpx
from pydantic import ValidationError

from .config import OnboardingSettings, get_settings
from .payload import StreamResult, StreamSnapshot

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class StreamAborted(Exception):
    """The stream was cancelled because a newer message superseded it."""


class AssistantStreamError(Exception):
    """The assistant stream failed (bad status, `error` event, broken transport)."""


# =============================================================================
# Cancellation
# =============================================================================


class CancellationToken:
    """
    Cancellation handle owned by one in-flight assistant request.

    `cancel()` flags the token and cancels the attached asyncio task, if any.
    `claim()` is the single point where a turn commits to one reply source
    (streamed text or fallback): it succeeds once, and never after cancellation.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._claimed = False
        self._task: asyncio.Future | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def claimed(self) -> bool:
        return self._claimed

    def attach(self, task: asyncio.Future) -> None:
        self._task = task
        if self._cancelled:
            task.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def claim(self) -> bool:
        if self._cancelled or self._claimed:
            return False
        self._claimed = True
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise StreamAborted()


# =============================================================================
# SSE Framing
# =============================================================================


@dataclass
class SSEEvent:
    event: str
    data: Any


def _find_boundary(buffer: str) -> tuple[int, int] | None:
    """(index, separator length) of the earliest record terminator, if any."""
    crlf = buffer.find("\r\n\r\n")
    lf = buffer.find("\n\n")
    if crlf != -1 and (lf == -1 or crlf < lf):
        return crlf, 4
    if lf != -1:
        return lf, 2
    return None


def parse_sse_record(raw: str) -> SSEEvent | None:
    """Parse one raw record. Records without data lines are dropped."""
    if not raw.strip():
        return None

    event_name = "message"
    data_lines = []
    for line in re.split(r"\r?\n", raw):
        if not line:
            continue
        if line.startswith("event:"):
            event_name = line[6:].strip()
        elif line.startswith("data:"):
            value = line[5:]
            data_lines.append(value[1:] if value.startswith(" ") else value)

    if not data_lines:
        return None

    data_str = "\n".join(data_lines)
    try:
        payload = json.loads(data_str)
    except ValueError:
        payload = data_str
    return SSEEvent(event=event_name, data=payload)


class SSEDecoder:
    """Incremental decoder: feed raw chunks, get back completed events."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[SSEEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        events = []
        boundary = _find_boundary(self._buffer)
        while boundary:
            index, length = boundary
            raw = self._buffer[:index]
            self._buffer = self._buffer[index + length:]
            event = parse_sse_record(raw)
            if event is not None:
                events.append(event)
            boundary = _find_boundary(self._buffer)
        return events

    def close(self) -> list[SSEEvent]:
        """Flush the decoder and emit the unterminated trailing record, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if not remainder.strip():
            return []
        event = parse_sse_record(remainder)
        return [event] if event is not None else []


# =============================================================================
# Event Accumulation
# =============================================================================


class StreamAccumulator:
    """Folds stream events into the final StreamResult."""

    def __init__(self, on_progress: ProgressCallback | None = None) -> None:
        self._on_progress = on_progress
        self._tokens = ""
        self._message = ""
        self._snapshot: StreamSnapshot | None = None
        self._has_content = False
        self._completed = False

    def handle(self, event: SSEEvent) -> None:
        payload = event.data

        if event.event == "token":
            content = _content_of(payload)
            if content is None:
                return
            self._tokens += content
            if content.strip():
                self._has_content = True
            self._progress(self._tokens)

        elif event.event == "assistant":
            content = _content_of(payload)
            if content is None:
                return
            self._message = content
            if content.strip():
                self._has_content = True
            self._progress(self._message)

        elif event.event == "state":
            if not isinstance(payload, dict):
                return
            try:
                self._snapshot = StreamSnapshot.model_validate(payload)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed state event: {e}")

        elif event.event == "done":
            self._completed = True
            next_step = payload.get("next_step", payload.get("nextStep")) if isinstance(payload, dict) else None
            if isinstance(next_step, str):
                if self._snapshot is None:
                    self._snapshot = StreamSnapshot(next_step=next_step)
                else:
                    self._snapshot = self._snapshot.model_copy(update={"next_step": next_step})

        elif event.event == "error":
            message = payload.get("message") if isinstance(payload, dict) else None
            raise AssistantStreamError(message or "Streaming assistant reported an error.")

    def result(self) -> StreamResult:
        return StreamResult(
            assistant_reply=(self._message or self._tokens).strip(),
            state=self._snapshot,
            has_content=self._has_content,
            completed=self._completed,
        )

    def finish(self) -> None:
        """Clean end of body counts as completion even without a `done` event."""
        self._completed = True

    def _progress(self, text: str) -> None:
        if self._on_progress is not None:
            self._on_progress(text)


def _content_of(payload: Any) -> str | None:
    if isinstance(payload, dict) and isinstance(payload.get("content"), str):
        return payload["content"]
    return None


async def consume_event_stream(
    chunks: AsyncIterator[bytes | str],
    *,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
) -> StreamResult:
    """
    Consume an SSE body chunk by chunk.

    Raises StreamAborted as soon as `token` is cancelled (no further events are
    delivered to `on_progress`), and AssistantStreamError on an `error` event.
    """
    decoder = SSEDecoder()
    accumulator = StreamAccumulator(on_progress)

    async for chunk in chunks:
        if token is not None:
            token.raise_if_cancelled()
        for event in decoder.feed(chunk):
            if token is not None:
                token.raise_if_cancelled()
            accumulator.handle(event)

    for event in decoder.close():
        if token is not None:
            token.raise_if_cancelled()
        accumulator.handle(event)

    accumulator.finish()
    return accumulator.result()


# =============================================================================
# HTTP Client
# =============================================================================


class AssistantStreamClient:
    """
    Calls the onboarding assistant and consumes its event stream.

    `stream()` returns None on any failure so the caller can fall back, and
    re-raises StreamAborted when its token was cancelled.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        settings: OnboardingSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._settings = settings or get_settings()
        self._log = logger or logging.getLogger(__name__)

    async def stream(
        self,
        message: str,
        *,
        family_id: int | None,
        user_id: str,
        history: list[dict],
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> StreamResult | None:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "x-user-id": user_id,
        }
        if family_id is not None:
            headers["x-tenant-id"] = str(family_id)

        body = {"message": message, "familyId": family_id, "userId": user_id, "history": history}
        timeout = httpx.Timeout(
            self._settings.request_timeout_seconds,
            read=self._settings.stream_read_timeout_seconds,
        )

        try:
            async with self._http.stream(
                "POST", self._settings.assistant_path, json=body, headers=headers, timeout=timeout
            ) as response:
                if response.status_code >= 400:
                    raise AssistantStreamError(f"Streaming assistant error: {response.status_code}")
                result = await consume_event_stream(
                    response.aiter_bytes(), on_progress=on_progress, token=token
                )
        except StreamAborted:
            self._log.debug("Streaming onboarding assistant request aborted")
            raise
        except asyncio.CancelledError:
            if token is not None and token.cancelled:
                self._log.debug("Streaming onboarding assistant request aborted")
                raise StreamAborted() from None
            raise
        except (AssistantStreamError, httpx.HTTPError) as e:
            self._log.error(f"Streaming onboarding assistant failed: {e}")
            return None

        self._log.debug(
            "Stream result: reply=%r has_content=%s state=%s",
            result.assistant_reply,
            result.has_content,
            result.state.model_dump() if result.state else None,
        )
        return result
