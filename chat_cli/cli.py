"""Terminal front end for the chat engine.

Everything that touches the terminal lives here: argument parsing, the
prompt, the spinner, the model picker and the rendering of session events.
The conversation logic itself is in :mod:`chat_cli.core.session`.
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional, Sequence

import questionary  # type: ignore
from openai import OpenAI  # type: ignore
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .core import (
    AppError,
    ConsoleReporter,
    ErrorReporter,
    HistoryStore,
    InferenceConfig,
    ModelCatalog,
    ModelSelector,
    ModelTarget,
    Persona,
    SessionController,
    Severity,
    Turn,
)
from .core.client import OpenAIClientWrapper, with_document
from .core.config import Settings
from .core.errors import validation_error
from .core.session import (
    AssistantTurnStarted,
    FragmentReceived,
    ModelSwapped,
    RequestSent,
    SessionEnded,
    SessionEvent,
    SessionStarted,
    TurnAborted,
    TurnCompleted,
    open_store_or_warn,
)
from .utils import (
    ASSISTANT_LABEL,
    MODEL_LABEL,
    Ansi,
    Spinner,
    USER_LABEL,
    bracketed,
    console,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Helper classes
# ---------------------------------------------------------------------------


class ConsolePresenter:
    """Turns session events into terminal output."""

    def __init__(self) -> None:
        self._spinner: Optional[Spinner] = None
        self._streaming = False

    def __call__(self, event: SessionEvent) -> None:
        if isinstance(event, SessionStarted):
            if event.resumed_turns:
                console.print(
                    Ansi.style(
                        escape(f"[resumed chat {event.chat_id} with {event.resumed_turns} earlier messages]"),
                        Ansi.MUTED,
                    )
                )
            else:
                console.print(Ansi.style(escape(f"[chat id: {event.chat_id}]"), Ansi.MUTED))
        elif isinstance(event, RequestSent):
            self._spinner = Spinner(prefix=f"{ASSISTANT_LABEL}> ", waiting_on=str(event.target))
            self._spinner.start()
        elif isinstance(event, AssistantTurnStarted):
            pass
        elif isinstance(event, FragmentReceived):
            self._stop_spinner()
            self._streaming = True
            console.print(event.fragment, end="", markup=False, highlight=False)
            console.file.flush()
        elif isinstance(event, (TurnCompleted, TurnAborted)):
            self._stop_spinner()
            if self._streaming or isinstance(event, TurnCompleted):
                console.print()  # new line after stream ends
            self._streaming = False
        elif isinstance(event, ModelSwapped):
            console.print(bracketed(MODEL_LABEL) + "switched to " + escape(str(event.current)))
        elif isinstance(event, SessionEnded):
            self._stop_spinner()
            console.print("Bye!")

    def _stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None


def interactive_picker(title: str, options: Sequence[str], current: Optional[str] = None) -> Optional[str]:
    """Present *options* to the user and return the selected value."""
    if not options:
        console.print("(no items available)")
        return None
    try:
        return questionary.select(
            title,
            choices=list(options),
            default=current if current in options else None,
        ).ask()
    except (KeyboardInterrupt, EOFError):
        console.print()
        return None


def read_line() -> str:
    """Blocking read of one prompt line; the trailing newline is restored."""
    return console.input(f"{USER_LABEL}> ") + "\n"


def list_chats(store: HistoryStore, limit: int = 10) -> None:
    """Print the most recently active conversations."""
    chats = store.list(limit)
    if not chats:
        console.print("(no saved chats)")
        return

    table = Table(title="Recent chats", title_style="bold magenta", box=None)
    table.add_column("Created Date")
    table.add_column("Chat ID", style="cyan")
    table.add_column("Title")
    for chat in chats:
        created = chat.created_at.strftime("%Y-%m-%d %H:%M:%S") if chat.created_at else ""
        table.add_row(created, chat.chat_id, escape(truncate(chat.text, 40)))
    console.print(table)


def read_document(stream=None) -> str:
    """Text piped into the program; empty when stdin is a terminal."""
    stream = sys.stdin if stream is None else stream
    if stream is None or stream.isatty():
        return ""
    return stream.read()


def answer_prompt(
    wrapper: OpenAIClientWrapper,
    target: ModelTarget,
    inference: InferenceConfig,
    prompt: str,
    stream: bool = True,
) -> str:
    """Send a single *prompt* and print the bare reply; nothing is stored."""
    turns = [Turn(Persona.USER, prompt, "")]
    if not stream:
        text = wrapper.complete(turns, target, inference)
        console.print(text, markup=False, highlight=False)
        return text

    def sink(fragment: str) -> None:
        console.print(fragment, end="", markup=False, highlight=False)
        console.file.flush()

    try:
        result = wrapper.chat_completion(turns, target, inference, sink)
    finally:
        console.print()
    return result.text


def truncate(text: str, width: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= width:
        return flat
    return flat[: width - 3] + "..."


class ChatCLI:
    """High-level orchestration class for the interactive REPL."""

    def __init__(self, controller: SessionController):
        self.controller = controller

    def repl(self) -> None:
        """Run the interactive read-eval-print-loop."""
        console.print(Panel.fit("Chat CLI", style=Ansi.BANNER))
        console.print(
            Ansi.style("Type your message and press Enter.", Ansi.HINT),
            Ansi.style(f"Current model: {self.controller.selector.active}.", Ansi.HINT),
            Ansi.style('Type /models to switch model, "quit" or /quit to leave.', Ansi.HINT),
            sep="\n",
        )
        self.controller.run(read_line)


# ---------------------------------------------------------------------------
# Entrypoint helpers (keeping it separate simplifies __main__ handling)
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chat-cli",
        description="Interactive chat with OpenAI models; history is kept in a local database.",
        epilog='To quit a chat session, type "quit" or "/quit".',
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("chat", "list", "prompt"),
        default="chat",
        help="chat (default), list recent chats, or prompt for a single answer",
    )
    parser.add_argument("text", nargs="*", help="prompt text for the prompt command")
    parser.add_argument("--model-id", "-m", help="catalog model id (default: $OPENAI_DEFAULT_MODEL or gpt-4o)")
    parser.add_argument(
        "--model-ref",
        help="opaque model reference (fine-tuned model or deployment name); skips catalog validation",
    )
    parser.add_argument("--chat-id", help="resume a previous conversation")
    parser.add_argument("--temperature", type=float, help="temperature setting")
    parser.add_argument("--top-p", dest="top_p", type=float, help="top_p setting (ignored when --temperature is set)")
    parser.add_argument("--max-tokens", type=int, help="max tokens per reply (default: 500)")
    parser.add_argument("--log-level", help="debug, info, warn or error (default: info)")
    parser.add_argument("--verbose", "-v", action="store_true", help="show error codes and operations")
    parser.add_argument("--debug", action="store_true", help="show technical error details")
    parser.add_argument("--no-stream", action="store_true", help="prompt: wait for the whole reply instead of streaming it")
    args = parser.parse_intermixed_args(argv)
    if args.text and args.command != "prompt":
        parser.error(f"unexpected arguments for {args.command}: {' '.join(args.text)}")
    return args


def _fatal(reporter: ErrorReporter, err: AppError) -> None:
    """Errors before the loop starts end the program."""
    err.severity = Severity.CRITICAL
    err.recoverable = False
    reporter.report(err)


def run_cli(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    setup_logging()
    reporter = ConsoleReporter(verbose=args.verbose, debug=args.debug)

    try:
        settings = Settings.from_args(args)
        settings.validate()
    except AppError as err:
        _fatal(reporter, err)
        return
    setup_logging(settings.log_level, settings.log_file)

    store_kwargs = {"max_attempts": settings.retry_attempts, "base_delay": settings.retry_base_delay}

    if args.command == "list":
        try:
            with HistoryStore.open(settings.db_path, **store_kwargs) as store:
                list_chats(store)
        except AppError as err:
            _fatal(reporter, err)
        return

    prompt = ""
    if args.command == "prompt":
        prompt = " ".join(args.text).strip()
        if not prompt:
            _fatal(
                reporter,
                validation_error("prompt_empty", "Prompt is empty", operation="Prompt", component="cli"),
            )
            return

    # ------------------------------------------------------------------
    # Configure OpenAI SDK and resolve the model
    # ------------------------------------------------------------------
    try:
        settings.require_credentials()
    except AppError as err:
        _fatal(reporter, err)
        return

    client_kwargs = {"api_key": settings.api_key}
    if settings.base_url:
        client_kwargs["base_url"] = settings.base_url
    client = OpenAI(**client_kwargs)  # type: ignore[arg-type]

    # a --no-stream prompt can use models that only answer in one piece
    streaming = not (args.command == "prompt" and args.no_stream)
    selector = ModelSelector(ModelCatalog(client))
    try:
        target = selector.validate_and_resolve(settings.model_id, settings.model_ref, require_streaming=streaming)
    except AppError as err:
        _fatal(reporter, err)
        return
    selector.swap(target)

    if args.command == "prompt":
        try:
            answer_prompt(
                OpenAIClientWrapper(client),
                target,
                settings.inference,
                with_document(prompt, read_document()),
                stream=streaming,
            )
        except AppError as err:
            _fatal(reporter, err)
        return

    store = open_store_or_warn(settings.db_path, reporter, **store_kwargs)
    controller = SessionController(
        OpenAIClientWrapper(client),
        selector,
        store,
        reporter,
        inference=settings.inference,
        chat_id=settings.chat_id,
        listener=ConsolePresenter(),
        picker=interactive_picker,
    )
    try:
        ChatCLI(controller).repl()
    finally:
        if store is not None:
            store.close()


def main() -> None:  # pragma: no cover
    try:
        run_cli()
    except KeyboardInterrupt:
        console.print("\n[signal caught - exiting]", markup=False)
        sys.exit(130)


if __name__ == "__main__":  # pragma: no cover
    main()
