from .models import Persona, Turn, InferenceConfig, ModelTarget, CatalogEntry
from .errors import AppError, ErrorKind, Severity, ErrorReporter, ConsoleReporter
from .commands import Command, CommandKind, classify
from .history import HistoryStore
from .selector import ModelCatalog, ModelSelector
from .session import SessionController, SessionState

__all__ = [
    "Persona",
    "Turn",
    "InferenceConfig",
    "ModelTarget",
    "CatalogEntry",
    "AppError",
    "ErrorKind",
    "Severity",
    "ErrorReporter",
    "ConsoleReporter",
    "Command",
    "CommandKind",
    "classify",
    "HistoryStore",
    "ModelCatalog",
    "ModelSelector",
    "SessionController",
    "SessionState",
]
