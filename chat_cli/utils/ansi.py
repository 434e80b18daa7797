"""Terminal styling shared by the prompt, the event presenter and the error reporter.

Styles are named by role in :data:`THEME` so the markup scattered through
the code never hard-codes a colour.
"""

import os

from rich.console import Console
from rich.theme import Theme

THEME = Theme(
    {
        "label.user": "bold cyan",
        "label.assistant": "bold green",
        "label.error": "bold red",
        "label.warning": "bold yellow",
        "label.model": "bold magenta",
        "hint": "yellow",
        "muted": "dim",
        "banner": "bold magenta",
    }
)

console = Console(theme=THEME, highlight=False)


def colour_enabled() -> bool:
    return os.getenv("NO_COLOR") is None


class Ansi:
    """Theme style names used throughout the app."""

    USER = "label.user"
    ASSISTANT = "label.assistant"
    ERROR = "label.error"
    WARNING = "label.warning"
    MODEL = "label.model"
    HINT = "hint"
    MUTED = "muted"
    BANNER = "banner"

    @staticmethod
    def style(text: str, *styles: str) -> str:
        """Return *text* wrapped in rich markup unless ``NO_COLOR`` is set."""
        if not colour_enabled():
            return text
        return f"[{' '.join(styles)}]{text}[/]"


def bracketed(label: str) -> str:
    """``[label] `` prefix; the outer brackets are printed literally."""
    return f"\\[{label}] "


USER_LABEL = Ansi.style("you", Ansi.USER)
ASSISTANT_LABEL = Ansi.style("assistant", Ansi.ASSISTANT)
ERROR_LABEL = Ansi.style("error", Ansi.ERROR)
WARNING_LABEL = Ansi.style("warning", Ansi.WARNING)
MODEL_LABEL = Ansi.style("model", Ansi.MODEL)
