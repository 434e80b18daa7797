"""Classification of raw input lines.

Only three directives exist and they must match exactly, so a message like
"quit smoking tips" is still sent to the model.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(Enum):
    TERMINATE = "terminate"
    BROWSE_MODELS = "browse_models"
    ORDINARY_TURN = "ordinary_turn"


TERMINATE_WORDS = frozenset({"quit", "/quit"})
BROWSE_MODELS_WORD = "/models"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str = ""


def strip_terminator(line: str) -> str:
    """Drop one trailing line terminator, nothing else."""
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n") or line.endswith("\r"):
        return line[:-1]
    return line


def is_blank(line: str) -> bool:
    return not line.strip()


def classify(line: str) -> Command:
    """Classify *line* (trailing newline allowed).

    Blank lines are not commands; the input layer must re-prompt instead of
    passing them here.
    """
    if is_blank(line):
        raise ValueError("blank input must be re-read, not classified")

    body = strip_terminator(line)
    if body in TERMINATE_WORDS:
        return Command(CommandKind.TERMINATE)
    if body == BROWSE_MODELS_WORD:
        return Command(CommandKind.BROWSE_MODELS)
    return Command(CommandKind.ORDINARY_TURN, body)
