"""OpenAI client wrapper: streaming chat completions turned into turn text.

The wrapper has two halves:

1. :meth:`OpenAIClientWrapper.stream_events` sends one request and adapts the
   SDK's chunk objects into the small closed set of :data:`StreamEvent`
   variants below.
2. :func:`consume_stream` pumps those events once, forwarding every text
   fragment to a caller supplied sink and returning the assembled text.

:meth:`OpenAIClientWrapper.complete` is the non-streaming path used by
one-shot prompts that ask for the whole reply at once.

Nothing in here prints; presentation lives in :mod:`chat_cli.cli`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Union

import openai
from openai import OpenAI  # type: ignore

from .errors import render_error, wrap_openai_error
from .models import InferenceConfig, ModelTarget, Persona, Turn

logger = logging.getLogger(__name__)

# A single, persistent system message ensures the model is aware that it is
# interacting in a terminal context and should optimise readability for that
# form factor. It is sent with every request but never stored as a turn.
SYSTEM_PROMPT = (
    "You are an AI assistant running in a terminal (CLI) environment. "
    "Optimise all answers for 80-column readability, prefer plain text, "
    "ASCII art or concise bullet lists over heavy markup, and wrap code "
    "snippets in fenced blocks when helpful. Do not emit trailing spaces or "
    "control characters."
)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TurnStarted:
    role: str


@dataclass(frozen=True)
class TextDelta:
    fragment: str


@dataclass(frozen=True)
class UnknownEvent:
    tag: str


StreamEvent = Union[TurnStarted, TextDelta, UnknownEvent]

RenderSink = Callable[[str], None]


@dataclass
class StreamResult:
    text: str
    role: Optional[str] = None
    fragments: int = 0


def consume_stream(events: Iterable[StreamEvent], sink: RenderSink) -> StreamResult:
    """Single forward pass over *events*.

    Fragments reach *sink* before they are added to the result, so whatever
    was rendered stays rendered even if the transport dies afterwards. A
    failing sink aborts the turn with a recoverable render error; transport
    errors propagate to the caller unchanged.
    """
    parts: List[str] = []
    result = StreamResult(text="")

    for event in events:
        if isinstance(event, TurnStarted):
            result.role = event.role
            if event.role != Persona.ASSISTANT.role:
                logger.debug("turn started with unexpected role %s", event.role)
        elif isinstance(event, TextDelta):
            try:
                sink(event.fragment)
            except Exception as exc:  # noqa: BLE001 - any sink failure aborts the turn
                raise render_error(
                    "Render sink failed while streaming",
                    exc,
                    operation="ConsumeStream",
                    component="stream-consumer",
                ) from exc
            parts.append(event.fragment)
            result.fragments += 1
        elif isinstance(event, UnknownEvent):
            logger.debug("skipping unknown stream event %s", event.tag)
        else:
            logger.debug("skipping unrecognised stream object %r", type(event).__name__)

    result.text = "".join(parts)
    return result


def events_from_chunks(chunks: Iterable[Any]) -> Iterator[StreamEvent]:
    """Translate Chat Completions stream chunks into :data:`StreamEvent` values."""
    for chunk in chunks:
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            # usage-only chunk (stream_options.include_usage) or similar
            yield UnknownEvent(getattr(chunk, "object", None) or "chunk.no_choices")
            continue

        choice = choices[0]
        delta = getattr(choice, "delta", None)
        emitted = False

        role = getattr(delta, "role", None)
        if isinstance(role, str) and role:
            yield TurnStarted(role)
            emitted = True

        content = getattr(delta, "content", None)
        if isinstance(content, str) and content:
            yield TextDelta(content)
            emitted = True

        if emitted:
            continue

        if getattr(delta, "tool_calls", None):
            yield UnknownEvent("delta.tool_calls")
        elif getattr(delta, "refusal", None):
            yield UnknownEvent("delta.refusal")
        elif getattr(choice, "finish_reason", None):
            yield UnknownEvent(f"finish.{choice.finish_reason}")
        else:
            yield UnknownEvent("delta.empty")


# ---------------------------------------------------------------------------
# Client wrapper
# ---------------------------------------------------------------------------


class OpenAIClientWrapper:
    """Thin wrapper around the OpenAI Python SDK hiding streaming details."""

    def __init__(self, client: OpenAI, system_prompt: Optional[str] = SYSTEM_PROMPT):
        self.client = client
        self.system_prompt = system_prompt

    def build_messages(self, turns: Sequence[Turn]) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(turn.as_message() for turn in turns)
        return messages

    def build_request(
        self, turns: Sequence[Turn], target: ModelTarget, inference: InferenceConfig, stream: bool = True
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": target.value,
            "messages": self.build_messages(turns),
            "stream": stream,
        }
        params.update(inference.request_params())
        return params

    def stream_events(
        self, turns: Sequence[Turn], target: ModelTarget, inference: InferenceConfig
    ) -> Iterator[StreamEvent]:
        """Send the request and yield events as chunks arrive.

        SDK failures, whether raised when the request is created or halfway
        through the stream, surface as :class:`AppError`.
        """
        params = self.build_request(turns, target, inference)
        try:
            response = self.client.chat.completions.create(**params)  # type: ignore[arg-type]
            yield from events_from_chunks(response)
        except openai.OpenAIError as exc:
            raise wrap_openai_error(exc, "StreamCompletion", metadata={"model": target.value}) from exc

    def chat_completion(
        self,
        turns: Sequence[Turn],
        target: ModelTarget,
        inference: InferenceConfig,
        sink: RenderSink,
    ) -> StreamResult:
        """Stream one assistant turn, forwarding fragments to *sink*."""
        return consume_stream(self.stream_events(turns, target, inference), sink)

    def complete(self, turns: Sequence[Turn], target: ModelTarget, inference: InferenceConfig) -> str:
        """Fetch one assistant turn in a single, non-streaming response."""
        params = self.build_request(turns, target, inference, stream=False)
        try:
            response = self.client.chat.completions.create(**params)  # type: ignore[arg-type]
        except openai.OpenAIError as exc:
            raise wrap_openai_error(exc, "Completion", metadata={"model": target.value}) from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def with_document(prompt: str, document: str = "") -> str:
    """Prefix *prompt* with *document* wrapped in ``<document>`` tags."""
    if not document:
        return prompt
    return "<document>\n\n" + document + "\n\n</document>\n\n" + prompt


__all__ = [
    "SYSTEM_PROMPT",
    "TurnStarted",
    "TextDelta",
    "UnknownEvent",
    "StreamEvent",
    "StreamResult",
    "consume_stream",
    "events_from_chunks",
    "OpenAIClientWrapper",
    "with_document",
]
