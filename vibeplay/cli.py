from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path

from . import __version__
from .runtime.config import ClientConfig, ConfigError, load_client_config
from .runtime.controller import SessionController
from .runtime.event_bus import Update, UpdateKind
from .runtime.session import SUCCESS_PHASES, ChatMessage
from .runtime.transport import EventStreamClient

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 5

PROMPT_TEXT = "You> "
SLASH_COMMANDS = ("/cancel", "/reset", "/clear", "/exit", "/quit")


def _configure_text_io() -> None:
    """
    Best-effort I/O normalization for interactive terminals.

    Invalid byte sequences pasted into the terminal would otherwise surface as
    surrogate codepoints and crash when the prompt is encoded for the request.
    """

    try:
        if hasattr(sys.stdin, "reconfigure"):
            sys.stdin.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="backslashreplace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="backslashreplace")
    except (OSError, ValueError):
        return


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vibeplay",
        description="Terminal client for the vibe-coding game agent.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="Describe a game and watch the agent build it.")
    chat_parser.add_argument(
        "--prompt",
        dest="prompt",
        default=None,
        help="Send a single prompt and exit instead of starting the interactive loop.",
    )
    chat_parser.add_argument(
        "--base-url",
        dest="base_url",
        default=None,
        help="Agent service base URL (overrides VIBEPLAY_BASE_URL).",
    )
    chat_parser.add_argument(
        "--user-id",
        dest="user_id",
        default=None,
        help="User identifier sent with each request.",
    )
    chat_parser.add_argument(
        "--timeout",
        dest="timeout_s",
        type=float,
        default=None,
        help="Read timeout in seconds for the event stream (no default).",
    )
    chat_parser.add_argument(
        "--transcript",
        dest="transcript_path",
        default=None,
        help="Write the chat transcript as JSON to this path on exit.",
    )
    chat_parser.set_defaults(func=_cmd_chat)

    health_parser = subparsers.add_parser("health", help="Check that the agent service is reachable.")
    health_parser.add_argument(
        "--base-url",
        dest="base_url",
        default=None,
        help="Agent service base URL (overrides VIBEPLAY_BASE_URL).",
    )
    health_parser.set_defaults(func=_cmd_health)

    return parser


def _load_config(args: argparse.Namespace) -> ClientConfig:
    config = load_client_config()
    patch: dict[str, object] = {}
    if getattr(args, "base_url", None):
        patch["base_url"] = args.base_url
    if getattr(args, "user_id", None):
        patch["user_id"] = args.user_id
    if getattr(args, "timeout_s", None) is not None:
        patch["timeout_s"] = args.timeout_s
    if patch:
        config = replace(config, **patch)
        config.validate()
    return config


class _ChatPrinter:
    """Renders controller updates: live status on stderr, replies on stdout."""

    def __init__(self, controller: SessionController) -> None:
        self._controller = controller
        self._shown: set[str] = set()
        self._last_tip: str | None = None

    def on_update(self, update: Update) -> None:
        if update.kind == UpdateKind.SESSION_STARTED:
            self._shown.clear()
            self._last_tip = None
            self._print_status()
        elif update.kind == UpdateKind.STATE_CHANGED:
            state = self._controller.state
            if not state.is_active and update.payload.get("event_type") == "suggestions":
                # Suggestions that trail the final code event.
                print("Try next:")
                for item in state.suggestions:
                    print(f"  - {item}")
                return
            self._print_status()
        elif update.kind == UpdateKind.MESSAGE_FINALIZED:
            message = self._controller.last_finalized
            if message is not None:
                self._print_message(message)
        elif update.kind == UpdateKind.SESSION_CANCELLED:
            print("Cancelled.", file=sys.stderr)
        elif update.kind == UpdateKind.START_REJECTED:
            print("A request is already running; /cancel it first.", file=sys.stderr)

    def _print_status(self) -> None:
        narration = self._controller.narrate()
        for line in narration.bullets:
            if line not in self._shown:
                self._shown.add(line)
                print(f"  {line}", file=sys.stderr)
        if narration.tip and narration.tip != self._last_tip:
            self._last_tip = narration.tip
            print(f"  tip: {narration.tip}", file=sys.stderr)

    def _print_message(self, message: ChatMessage) -> None:
        if message.text:
            print()
            print(message.text)
        snapshot = message.code_snapshot
        if snapshot is not None:
            print()
            print(f"[game code: {len(snapshot.content)} chars, {snapshot.code_kind.value}]")
        if message.suggestions:
            print()
            print("Try next:")
            for item in message.suggestions:
                print(f"  - {item}")
        publish = self._controller.state.publish_result
        if publish is not None and self._controller.state.phase in SUCCESS_PHASES:
            print()
            print(f"Live at {publish.live_url}")
        print()


def _is_tty() -> bool:
    try:
        return bool(sys.stdin.isatty() and sys.stdout.isatty())
    except (AttributeError, ValueError):
        return False


def _should_use_prompt_toolkit() -> bool:
    if str(os.environ.get("VIBEPLAY_PLAIN_INPUT") or "").strip() in {"1", "true", "yes", "on"}:
        return False
    return _is_tty()


def _build_prompt_session():
    from prompt_toolkit import PromptSession
    from prompt_toolkit.completion import Completer, Completion

    class _SlashCompleter(Completer):
        def get_completions(self, document, complete_event):
            text = document.text_before_cursor
            if not text.startswith("/"):
                return
            for c in SLASH_COMMANDS:
                if c.startswith(text):
                    yield Completion(c, start_position=-len(text))

    return PromptSession(message=PROMPT_TEXT, completer=_SlashCompleter())


async def _read_line(prompt_session) -> str:
    if prompt_session is not None:
        return await prompt_session.prompt_async()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, input, PROMPT_TEXT)


async def _run_request(controller: SessionController, prompt: str) -> ChatMessage | None:
    """Run one request; Ctrl+C cancels it instead of exiting."""

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(controller.run(prompt))
    installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, controller.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        return await task
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _chat(config: ClientConfig, args: argparse.Namespace) -> int:
    exit_code = EXIT_OK
    async with EventStreamClient(config) as client:
        controller = SessionController(client, user_id=config.user_id)
        printer = _ChatPrinter(controller)
        controller.subscribe(printer.on_update)
        try:
            if args.prompt is not None:
                message = await _run_request(controller, args.prompt)
                if message is None or controller.state.phase not in SUCCESS_PHASES:
                    exit_code = EXIT_ERROR
            else:
                await _chat_loop(controller)
        finally:
            for warning in client.warnings:
                print(f"warning: {warning}", file=sys.stderr)
            if args.transcript_path:
                _write_transcript(Path(args.transcript_path), controller)
    return exit_code


async def _chat_loop(controller: SessionController) -> None:
    prompt_session = _build_prompt_session() if _should_use_prompt_toolkit() else None
    print(f"vibeplay {__version__} (session {controller.session_id}). /exit to quit.", file=sys.stderr)
    while True:
        try:
            line = await _read_line(prompt_session)
        except EOFError:
            return
        except KeyboardInterrupt:
            continue
        text = line.strip()
        if not text:
            continue
        if text in {"/exit", "/quit"}:
            return
        if text == "/cancel":
            if not controller.cancel():
                print("Nothing to cancel.", file=sys.stderr)
            continue
        if text == "/reset":
            controller.reset()
            print("Session reset.", file=sys.stderr)
            continue
        if text == "/clear":
            controller.clear()
            print("Conversation cleared.", file=sys.stderr)
            continue
        await _run_request(controller, text)


def _write_transcript(path: Path, controller: SessionController) -> None:
    payload = {"session_id": controller.session_id, "messages": controller.export_transcript()}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"Transcript written to {path}", file=sys.stderr)


def _cmd_chat(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    return asyncio.run(_chat(config, args))


async def _health(config: ClientConfig) -> bool:
    async with EventStreamClient(config) as client:
        return await client.health_check()


def _cmd_health(args: argparse.Namespace) -> int:
    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if asyncio.run(_health(config)):
        print("ok")
        return EXIT_OK
    print(f"unreachable: {config.health_url}")
    return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    _configure_text_io()
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        func = getattr(args, "func")
        return int(func(args))
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130
