"""The conversation loop.

:class:`SessionController` owns the running transcript and drives one turn
at a time: read a line, classify it, stream the reply, persist the exchange.
It never prints. Everything the user should see is published as a
:data:`SessionEvent` to the listener, and failures go to the injected
:class:`~chat_cli.core.errors.ErrorReporter`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

from .client import OpenAIClientWrapper, StreamEvent, TurnStarted, consume_stream
from .commands import CommandKind, classify, is_blank
from .errors import AppError, ErrorReporter, Severity, render_error, validation_error
from .history import HistoryStore
from .models import InferenceConfig, ModelTarget, Persona, Turn
from .selector import ModelSelector, Picker

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    DISPATCHING = "dispatching"
    AWAITING_RESPONSE = "awaiting_response"
    PERSISTING = "persisting"
    TERMINATED = "terminated"


# ---------------------------------------------------------------------------
# Events published to the presentation layer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionStarted:
    chat_id: str
    target: ModelTarget
    resumed_turns: int = 0


@dataclass(frozen=True)
class RequestSent:
    target: ModelTarget
    text: str


@dataclass(frozen=True)
class AssistantTurnStarted:
    role: str


@dataclass(frozen=True)
class FragmentReceived:
    fragment: str


@dataclass(frozen=True)
class TurnCompleted:
    text: str


@dataclass(frozen=True)
class TurnAborted:
    error: AppError


@dataclass(frozen=True)
class TurnPersisted:
    turn: Turn


@dataclass(frozen=True)
class ModelSwapped:
    previous: ModelTarget
    current: ModelTarget


@dataclass(frozen=True)
class SessionEnded:
    reason: str


SessionEvent = Union[
    SessionStarted,
    RequestSent,
    AssistantTurnStarted,
    FragmentReceived,
    TurnCompleted,
    TurnAborted,
    TurnPersisted,
    ModelSwapped,
    SessionEnded,
]

Listener = Callable[[SessionEvent], None]
LineReader = Callable[[], str]


def _ignore(event: SessionEvent) -> None:
    pass


def open_store_or_warn(path: Union[str, Path], reporter: ErrorReporter, **kwargs) -> Optional[HistoryStore]:
    """Open the history store, or report one warning and carry on without it."""
    try:
        return HistoryStore.open(path, **kwargs)
    except AppError as err:
        err.severity = Severity.MEDIUM
        err.recoverable = True
        reporter.report(err)
        return None


class SessionController:
    """Turn-based chat loop over a single conversation."""

    def __init__(
        self,
        client: OpenAIClientWrapper,
        selector: ModelSelector,
        store: Optional[HistoryStore],
        reporter: ErrorReporter,
        *,
        inference: Optional[InferenceConfig] = None,
        chat_id: Optional[str] = None,
        listener: Optional[Listener] = None,
        picker: Optional[Picker] = None,
    ) -> None:
        self.client = client
        self.selector = selector
        self.store = store
        self.reporter = reporter
        self.inference = inference or InferenceConfig()
        self.resuming = bool(chat_id)
        self.chat_id = chat_id or str(uuid.uuid4())
        self.listener = listener or _ignore
        self.picker = picker
        self.transcript: List[Turn] = []
        self.state = SessionState.IDLE

        if self.inference.has_sampling_conflict:
            self.reporter.report(
                validation_error(
                    "sampling_conflict",
                    "temperature and top_p both set; sending temperature only",
                    operation="ResolveInferenceConfig",
                    component="session",
                    chat_id=self.chat_id,
                    severity=Severity.LOW,
                    metadata={"temperature": self.inference.temperature, "top_p": self.inference.top_p},
                )
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Replay stored turns when resuming, then wait for input."""
        if self.resuming and self.store is not None:
            try:
                self.transcript.extend(self.store.get_turns(self.chat_id))
            except AppError as err:
                self.reporter.report(err)
        self.state = SessionState.AWAITING_INPUT
        self.listener(SessionStarted(self.chat_id, self.selector.active, len(self.transcript)))

    def run(self, read_line: LineReader) -> None:
        """Loop until a terminate directive or end of input."""
        self.start()
        while self.state is not SessionState.TERMINATED:
            line = self._next_line(read_line)
            if line is None:
                self.terminate("end of input")
                break
            self.dispatch(line)

    def terminate(self, reason: str = "quit") -> None:
        self.state = SessionState.TERMINATED
        self.listener(SessionEnded(reason))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, line: str) -> None:
        command = classify(line)
        if command.kind is CommandKind.TERMINATE:
            self.terminate("quit")
        elif command.kind is CommandKind.BROWSE_MODELS:
            self.browse_models()
        else:
            self.send_turn(command.text)

    def browse_models(self) -> Optional[ModelTarget]:
        if self.picker is None:
            logger.info("no model picker configured; ignoring /models")
            return None

        self.state = SessionState.DISPATCHING
        previous = self.selector.active
        try:
            chosen = self.selector.browse(self.picker)
        except AppError as err:
            err.chat_id = err.chat_id or self.chat_id
            self.reporter.report(err)
            chosen = None
        finally:
            self.state = SessionState.AWAITING_INPUT

        if chosen is not None:
            self.listener(ModelSwapped(previous, chosen))
        return chosen

    def send_turn(self, text: str) -> Optional[str]:
        """Stream a reply to *text*; returns the assistant text or ``None``.

        A failed request leaves the transcript and the store untouched so the
        user can simply resend.
        """
        self.state = SessionState.DISPATCHING
        user_turn = Turn(Persona.USER, text, self.chat_id)
        target = self.selector.active

        try:
            self._notify(RequestSent(target, text))
            self.state = SessionState.AWAITING_RESPONSE
            events = self.client.stream_events(self.transcript + [user_turn], target, self.inference)
            result = consume_stream(self._observe(events), self._render)
        except AppError as err:
            err.chat_id = err.chat_id or self.chat_id
            self.listener(TurnAborted(err))
            self.reporter.report(err)
            self.state = SessionState.AWAITING_INPUT
            return None

        assistant_turn = Turn(Persona.ASSISTANT, result.text, self.chat_id)
        self.listener(TurnCompleted(result.text))
        self.transcript.extend([user_turn, assistant_turn])

        self.state = SessionState.PERSISTING
        self._persist(user_turn, assistant_turn)
        self.state = SessionState.AWAITING_INPUT
        return result.text

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_line(self, read_line: LineReader) -> Optional[str]:
        while True:
            try:
                line = read_line()
            except (EOFError, KeyboardInterrupt):
                return None
            if not is_blank(line):
                return line

    def _observe(self, events: Iterable[StreamEvent]) -> Iterator[StreamEvent]:
        for event in events:
            if isinstance(event, TurnStarted):
                self._notify(AssistantTurnStarted(event.role))
            yield event

    def _render(self, fragment: str) -> None:
        self.listener(FragmentReceived(fragment))

    def _notify(self, event: SessionEvent) -> None:
        """Publish *event*; a failing listener aborts the turn like a failing sink."""
        try:
            self.listener(event)
        except AppError:
            raise
        except Exception as exc:  # noqa: BLE001 - any presenter failure aborts the turn
            raise render_error(
                f"Listener failed on {type(event).__name__}",
                exc,
                operation="SendTurn",
                component="session",
            ) from exc

    def _persist(self, *turns: Turn) -> None:
        if self.store is None:
            return
        for turn in turns:
            try:
                surrogate_id = self.store.append(turn)
            except AppError as err:
                self.reporter.report(err)
                if turn.persona is Persona.USER:
                    # an orphan assistant row would break the User/Assistant alternation
                    logger.warning(
                        "skipping assistant row after failed user row",
                        extra={"extra": {"chat_id": self.chat_id}},
                    )
                return
            self.listener(TurnPersisted(replace(turn, surrogate_id=surrogate_id)))
