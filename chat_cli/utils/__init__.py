from .ansi import (
    Ansi,
    USER_LABEL,
    ASSISTANT_LABEL,
    ERROR_LABEL,
    WARNING_LABEL,
    MODEL_LABEL,
    THEME,
    bracketed,
    console,
)
from .log import setup_logging
from .spinner import Spinner

__all__ = [
    "Ansi",
    "USER_LABEL",
    "ASSISTANT_LABEL",
    "ERROR_LABEL",
    "WARNING_LABEL",
    "MODEL_LABEL",
    "THEME",
    "bracketed",
    "console",
    "setup_logging",
    "Spinner",
]
