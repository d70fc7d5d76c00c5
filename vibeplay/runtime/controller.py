from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator, Iterable, Protocol

from .config import DEFAULT_USER_ID
from .error_codes import ErrorCode
from .event_bus import Update, UpdateBus, UpdateFilter, UpdateHandler, UpdateKind
from .ids import new_id, new_session_id
from .narrator import Narration, narrate
from .protocol import AgentEvent, ErrorEvent
from .reducer import begin_session, cancel_session, reduce
from .session import ChatMessage, Session
from .transcript import TranscriptBuilder
from .transport.client import GenerateRequest

INCOMPLETE_STREAM_MESSAGE = "Stream ended before the request completed."
MAX_WARNINGS = 200


class EventSource(Protocol):
    def stream(self, request: GenerateRequest) -> AsyncIterator[AgentEvent]: ...

    def cancel(self) -> None: ...


class SessionController:
    """
    Owns the conversation's single in-flight session.

    All state changes go through `handle()`, which folds one event with the
    pure reducer, finalizes the assistant message when the session reaches a
    terminal phase, and then notifies subscribers. Construct one controller
    per conversation; `session_id` stays stable across its requests.
    """

    def __init__(
        self,
        transport: EventSource | None = None,
        *,
        session_id: str | None = None,
        user_id: str = DEFAULT_USER_ID,
        bus: UpdateBus | None = None,
    ) -> None:
        self._transport = transport
        self._session_id = session_id or new_session_id()
        self._user_id = user_id
        self._bus = bus or UpdateBus()
        self._state = Session()
        self._transcript = TranscriptBuilder()
        # Bumped on start/cancel/reset; a run whose id is stale stops folding.
        self._run_id = 0
        self._task: asyncio.Task | None = None
        self._last_finalized: ChatMessage | None = None
        self._warnings: list[str] = []

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> Session:
        return self._state

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._transcript.messages

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    @property
    def last_finalized(self) -> ChatMessage | None:
        return self._last_finalized

    def narrate(self) -> Narration:
        return narrate(self._state)

    def subscribe(self, handler: UpdateHandler, kinds: Iterable[str] | None = None) -> int:
        filt = UpdateFilter(kinds={str(k) for k in kinds} if kinds is not None else None)
        return self._bus.subscribe(handler, filt)

    def unsubscribe(self, subscription_id: int) -> None:
        self._bus.unsubscribe(subscription_id)

    def _publish(self, kind: UpdateKind, payload: dict[str, Any]) -> None:
        self._bus.publish(
            Update(
                kind=kind.value,
                payload=payload,
                session_id=self._session_id,
                request_id=self._state.request_id,
            ),
            on_error=self._subscriber_failed,
        )

    def _subscriber_failed(self, update: Update, err: Exception) -> None:
        self._warnings.append(f"Subscriber failed on {update.kind}: {type(err).__name__}: {err}")
        if len(self._warnings) > MAX_WARNINGS:
            del self._warnings[: len(self._warnings) - MAX_WARNINGS]

    def start(self, prompt: str) -> bool:
        if self._state.is_active:
            self._publish(UpdateKind.START_REJECTED, {"prompt": prompt, "reason": "session_active"})
            return False
        self._run_id += 1
        self._transcript.add_user_message(prompt)
        self._state = begin_session(self._state, request_id=new_id("req"))
        self._transcript.open(self._state)
        self._publish(UpdateKind.SESSION_STARTED, {"prompt": prompt})
        return True

    def handle(self, event: AgentEvent) -> Session:
        prev = self._state
        new = reduce(prev, event)
        if new is prev:
            return prev
        message = self._transcript.observe(prev, new)
        if message is not None:
            new = replace(new, narrative=())
            self._last_finalized = message
        self._state = new
        self._publish(
            UpdateKind.STATE_CHANGED,
            {
                "event_type": getattr(getattr(event, "kind", None), "value", None),
                "operation_kind": new.operation_kind.value,
                "phase": new.phase.value,
                "is_active": new.is_active,
            },
        )
        if message is not None:
            self._publish(UpdateKind.MESSAGE_FINALIZED, {"message": message.to_dict()})
        return self._state

    def cancel(self) -> bool:
        if not self._state.is_active:
            return False
        self._run_id += 1
        self._state = cancel_session(self._state)
        self._transcript.discard()
        if self._transport is not None:
            self._transport.cancel()
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._publish(UpdateKind.SESSION_CANCELLED, {})
        return True

    def reset(self) -> None:
        if self._state.is_active:
            self.cancel()
        self._run_id += 1
        self._state = Session()
        self._transcript.discard()
        self._publish(UpdateKind.SESSION_RESET, {})

    def clear(self) -> None:
        """Reset the session and forget the conversation so far."""

        self.reset()
        self._transcript.clear()
        self._last_finalized = None

    def export_transcript(self) -> list[dict[str, Any]]:
        return self._transcript.export()

    async def run(self, prompt: str) -> ChatMessage | None:
        """
        Start a session for `prompt` and fold the transport's events until the
        stream ends. Returns the assistant message finalized by this run, or
        None when the start was rejected or the run was cancelled.
        """

        if self._transport is None:
            raise RuntimeError("SessionController.run() requires a transport.")
        if not self.start(prompt):
            return None
        run_id = self._run_id
        pending = self._transcript.pending
        request = GenerateRequest(
            prompt=prompt,
            session_id=self._session_id,
            user_id=self._user_id,
            request_id=self._state.request_id,
        )
        task = _current_task()
        self._task = task
        try:
            async with aclosing(self._transport.stream(request)) as events:
                async for event in events:
                    if run_id != self._run_id:
                        break
                    self.handle(event)
        except asyncio.CancelledError:
            if run_id == self._run_id:
                # Cancelled from outside: leave the session recoverable first.
                self.cancel()
                raise
            if task is not None:
                task.uncancel()
            return None
        finally:
            if self._task is task:
                self._task = None

        if run_id != self._run_id:
            return None
        if self._state.is_active:
            self.handle(ErrorEvent(message=INCOMPLETE_STREAM_MESSAGE, code=ErrorCode.STREAM_INCOMPLETE))
        last = self._last_finalized
        if pending is not None and last is not None and last.message_id == pending.message_id:
            return last
        return None


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
