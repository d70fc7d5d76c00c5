from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from ..config import ClientConfig
from ..ids import new_id
from ..protocol import AgentEvent, ErrorEvent
from .errors import CancellationToken
from .frames import FrameKind, decode_line
from .httpx_errors import wrap_httpx_exception
from .trace import StreamTrace

MAX_WARNINGS = 200


@dataclass(frozen=True, slots=True)
class GenerateRequest:
    prompt: str
    session_id: str
    user_id: str
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"prompt": self.prompt, "session_id": self.session_id, "user_id": self.user_id}


class EventStreamClient:
    """
    Streams agent events for one request at a time.

    `stream()` cancels whatever request is still in flight before opening a
    new one. A deliberate `cancel()` ends the sequence silently; any other
    failure ends it with a single `ErrorEvent`.
    """

    def __init__(self, config: ClientConfig | None = None, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config or ClientConfig()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_s, connect=self._config.connect_timeout_s)
        )
        self._cancel: CancellationToken | None = None
        self._response: httpx.Response | None = None
        self._closing: set[asyncio.Task] = set()
        self._warnings: list[str] = []

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    @property
    def in_flight(self) -> bool:
        return self._cancel is not None and not self._cancel.cancelled

    def _warn(self, message: str) -> None:
        self._warnings.append(message)
        if len(self._warnings) > MAX_WARNINGS:
            del self._warnings[: len(self._warnings) - MAX_WARNINGS]

    def cancel(self) -> None:
        token = self._cancel
        if token is None:
            return
        token.cancel()
        response = self._response
        self._response = None
        if response is not None:
            self._close_soon(response)

    def _close_soon(self, response: httpx.Response) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(response.aclose())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def stream(self, request: GenerateRequest) -> AsyncIterator[AgentEvent]:
        self.cancel()
        cancel = CancellationToken()
        self._cancel = cancel
        request_id = request.request_id or new_id("req")
        trace = StreamTrace.maybe_create(config=self._config, session_id=request.session_id, request_id=request_id)
        try:
            async with aclosing(self._stream_events(request, cancel=cancel, trace=trace)) as events:
                async for event in events:
                    yield event
        finally:
            if self._cancel is cancel:
                self._cancel = None
                self._response = None

    async def _stream_events(
        self,
        request: GenerateRequest,
        *,
        cancel: CancellationToken,
        trace: StreamTrace | None,
    ) -> AsyncIterator[AgentEvent]:
        url = self._config.generate_url
        payload = request.to_dict()
        if trace is not None:
            trace.record_request(url=url, payload=payload, timeout_s=self._config.timeout_s)

        event_count = 0
        try:
            async with self._http.stream(
                "POST",
                url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if cancel.cancelled:
                    if trace is not None:
                        trace.record_cancelled(reason="cancelled")
                    return
                self._response = response
                if not response.is_success:
                    await response.aread()
                    if trace is not None:
                        trace.write_json(
                            "error_response.json",
                            {"status_code": response.status_code, "text": response.text[:4000]},
                        )
                    raise httpx.HTTPStatusError(
                        f"API request failed: {response.status_code}",
                        request=response.request,
                        response=response,
                    )

                async for line in response.aiter_lines():
                    if cancel.cancelled:
                        if trace is not None:
                            trace.record_cancelled(reason="cancelled")
                        return
                    frame = decode_line(line)
                    if frame.kind is FrameKind.IGNORED:
                        continue
                    if trace is not None:
                        trace.record_frame(frame.data)
                    if frame.kind is FrameKind.DONE:
                        if trace is not None:
                            trace.record_completed(event_count=event_count, saw_done=True)
                        return
                    if frame.kind is FrameKind.DROPPED:
                        self._warn(f"Dropped malformed frame ({frame.reason}): {frame.data[:200]}")
                        if trace is not None:
                            trace.record_dropped(frame.data, reason=frame.reason)
                        continue
                    event_count += 1
                    if trace is not None:
                        trace.record_event(frame.event)
                    yield frame.event
        except asyncio.CancelledError:
            cancel.cancel()
            if trace is not None:
                trace.record_cancelled(reason="task_cancelled")
            raise
        except Exception as e:
            if cancel.cancelled:
                if trace is not None:
                    trace.record_cancelled(reason="cancelled")
                return
            err = wrap_httpx_exception(e, operation="stream")
            self._warn(f"Stream failed ({err.code.value}): {err}")
            if trace is not None:
                trace.record_error(e, code=err.code.value)
            yield ErrorEvent(message=f"Connection error: {err}", code=err.code)
            return

        if trace is not None and not cancel.cancelled:
            trace.record_completed(event_count=event_count, saw_done=False)

    async def health_check(self) -> bool:
        try:
            response = await self._http.get(self._config.health_url)
        except httpx.HTTPError:
            return False
        return response.is_success

    async def aclose(self) -> None:
        self.cancel()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "EventStreamClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
