"""Structured application errors and the reporter that surfaces them.

Every failure the engine knows how to describe is raised as an
:class:`AppError`. It carries a machine readable ``code``, a technical
``message`` for the log file and a ``user_message`` for the terminal, plus
enough context (operation, component, chat id, metadata) to make the log
line useful on its own.

Whether an error ends the process is decided by the :class:`ErrorReporter`
handed to the caller, never by the code raising it.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

import openai
from rich.console import Console
from rich.markup import escape

from ..utils.ansi import ERROR_LABEL, THEME, WARNING_LABEL, bracketed

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    REMOTE = "Remote"
    DATABASE = "Database"
    CONFIGURATION = "Configuration"
    VALIDATION = "Validation"
    NETWORK = "Network"
    MODEL = "Model"
    RENDER = "Render"
    UNKNOWN = "Unknown"


class Severity(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

USER_MESSAGES: Dict[ErrorKind, Dict[str, str]] = {
    ErrorKind.REMOTE: {
        "credentials_invalid": "The API key was rejected. Check OPENAI_API_KEY.",
        "permissions_denied": "Your API key is not allowed to use this model.",
        "rate_limited": "API rate limit exceeded. Please wait a moment and try again.",
        "service_unavailable": "The completion service is currently unavailable. Please try again later.",
        "request_failed": "The completion request failed. You can resend your message.",
    },
    ErrorKind.NETWORK: {
        "connection_timeout": "Connection timeout. Please check your internet connection and try again.",
        "connection_failed": "Failed to reach the completion service. Please check your connection.",
    },
    ErrorKind.MODEL: {
        "model_not_found": "Model '{model}' not found. Use /models to see available models.",
        "model_access_denied": "Access denied for model '{model}'.",
        "model_not_text": "Model '{model}' doesn't support text generation. Please choose a text-capable model.",
        "model_no_streaming": "Model '{model}' doesn't support streaming. Please choose a streaming-capable model.",
        "model_validation_failed": "Unable to validate model '{model}'. Please check the model id.",
    },
    ErrorKind.DATABASE: {
        "connection_failed": "Failed to open the history database. Chat history will not be saved.",
        "migration_failed": "History database migration failed. Chat history will not be saved.",
        "query_failed": "History query failed. This operation could not be completed.",
        "save_failed": "Failed to save chat message. Your conversation may not be preserved.",
        "max_retries_exceeded": "The history database stayed busy. This message was not saved.",
        "store_unavailable": "Chat history is not available in this session.",
    },
    ErrorKind.CONFIGURATION: {
        "credentials_not_found": "OPENAI_API_KEY is not set. Export it and start again.",
        "value_invalid": "Invalid configuration value for '{setting}'.",
    },
    ErrorKind.VALIDATION: {
        "model_id_empty": "Model id cannot be empty. Please specify a model id.",
        "chat_id_empty": "Chat id cannot be empty.",
        "prompt_empty": "Prompt cannot be empty. Pass the prompt text as arguments.",
        "temperature_range": "Temperature must be between 0.0 and 2.0.",
        "top_p_range": "Top P must be between 0.0 and 1.0.",
        "max_tokens_range": "Max tokens must be greater than 0.",
        "log_level_invalid": "Invalid log level. Valid options are: debug, info, warn, error.",
        "sampling_conflict": "Both temperature and top-p were given; only temperature will be sent.",
    },
    ErrorKind.RENDER: {
        "sink_failed": "Output could not be displayed. The reply was discarded; please resend.",
    },
}

SUGGESTIONS: Dict[ErrorKind, Dict[str, str]] = {
    ErrorKind.MODEL: {
        "model_not_found": "Run /models to pick from the models your key can use.",
        "model_not_text": "Choose a chat model from the /models list.",
        "model_no_streaming": "Select a model that supports streaming responses.",
    },
    ErrorKind.DATABASE: {
        "connection_failed": "Check that the data directory is writable and the database file is not corrupted.",
    },
    ErrorKind.CONFIGURATION: {
        "credentials_not_found": "export OPENAI_API_KEY=sk-...",
    },
    ErrorKind.REMOTE: {
        "credentials_invalid": "Create a new key in the OpenAI dashboard and export it again.",
    },
}


def user_message_for(kind: ErrorKind, code: str, **fmt: Any) -> str:
    template = USER_MESSAGES.get(kind, {}).get(code)
    if template is None:
        return f"An error occurred in {kind.value}: {code}"
    try:
        return template.format(**fmt)
    except KeyError:
        return template


# ---------------------------------------------------------------------------
# AppError
# ---------------------------------------------------------------------------


class AppError(Exception):
    """A classified failure with user-facing text and logging context."""

    def __init__(
        self,
        kind: ErrorKind,
        code: str,
        message: str,
        user_message: str = "",
        *,
        operation: str = "",
        component: str = "",
        chat_id: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        severity: Severity = Severity.MEDIUM,
        recoverable: bool = True,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.kind = kind
        self.code = code
        self.message = message
        self.user_message = user_message or user_message_for(kind, code)
        self.operation = operation
        self.component = component
        self.chat_id = chat_id
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.severity = severity
        self.recoverable = recoverable
        self.cause = cause
        suggestion = SUGGESTIONS.get(kind, {}).get(code)
        if suggestion and "suggestion" not in self.metadata:
            self.metadata["suggestion"] = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        text = f"[{self.kind.value}:{self.code}] {self.message}"
        if self.cause is not None:
            text += f": {self.cause}"
        return text

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def with_metadata(self, key: str, value: Any) -> "AppError":
        self.metadata[key] = value
        return self

    def display_message(self) -> str:
        suggestion = self.metadata.get("suggestion")
        if isinstance(suggestion, str) and suggestion:
            return f"{self.user_message}\nSuggestion: {suggestion}"
        return self.user_message

    def log_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "kind": self.kind.value,
            "code": self.code,
            "severity": self.severity.name,
            "recoverable": self.recoverable,
        }
        for key in ("operation", "component", "chat_id"):
            value = getattr(self, key)
            if value:
                fields[key] = value
        fields.update(self.metadata)
        return fields


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def database_error(code: str, message: str, cause: Optional[BaseException] = None, **kwargs: Any) -> AppError:
    return AppError(ErrorKind.DATABASE, code, message, cause=cause, **kwargs)


def validation_error(code: str, message: str, user_message: str = "", **kwargs: Any) -> AppError:
    return AppError(ErrorKind.VALIDATION, code, message, user_message, **kwargs)


def model_error(code: str, model: str, message: str, cause: Optional[BaseException] = None, **kwargs: Any) -> AppError:
    kwargs.setdefault("metadata", {})["model_id"] = model
    return AppError(
        ErrorKind.MODEL,
        code,
        message,
        user_message_for(ErrorKind.MODEL, code, model=model),
        cause=cause,
        **kwargs,
    )


def network_error(code: str, message: str, cause: Optional[BaseException] = None, **kwargs: Any) -> AppError:
    return AppError(ErrorKind.NETWORK, code, message, cause=cause, **kwargs)


def remote_error(code: str, message: str, cause: Optional[BaseException] = None, **kwargs: Any) -> AppError:
    return AppError(ErrorKind.REMOTE, code, message, cause=cause, **kwargs)


def render_error(message: str, cause: Optional[BaseException] = None, **kwargs: Any) -> AppError:
    return AppError(ErrorKind.RENDER, "sink_failed", message, cause=cause, **kwargs)


def configuration_error(code: str, message: str, user_message: str = "", **kwargs: Any) -> AppError:
    kwargs.setdefault("severity", Severity.HIGH)
    return AppError(ErrorKind.CONFIGURATION, code, message, user_message, **kwargs)


def critical_error(kind: ErrorKind, code: str, message: str, user_message: str = "", **kwargs: Any) -> AppError:
    """Errors that must stop the program. Only raised before the chat loop starts."""
    kwargs["severity"] = Severity.CRITICAL
    kwargs["recoverable"] = False
    return AppError(kind, code, message, user_message, **kwargs)


def wrap_openai_error(exc: Exception, operation: str, **kwargs: Any) -> AppError:
    """Classify an exception raised by the ``openai`` SDK."""
    kwargs.setdefault("operation", operation)
    kwargs.setdefault("component", "completion-client")
    message = f"{operation} failed: {exc}"

    if isinstance(exc, openai.APITimeoutError):
        return network_error("connection_timeout", message, exc, **kwargs)
    if isinstance(exc, openai.APIConnectionError):
        return network_error("connection_failed", message, exc, **kwargs)
    if isinstance(exc, openai.AuthenticationError):
        return remote_error("credentials_invalid", message, exc, **kwargs)
    if isinstance(exc, openai.PermissionDeniedError):
        return remote_error("permissions_denied", message, exc, **kwargs)
    if isinstance(exc, openai.RateLimitError):
        return remote_error("rate_limited", message, exc, **kwargs)
    if isinstance(exc, openai.InternalServerError):
        return remote_error("service_unavailable", message, exc, **kwargs)
    return remote_error("request_failed", message, exc, **kwargs)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


class ErrorReporter:
    """Capability the engine uses to surface failures.

    Implementations decide how an error is shown and whether the process
    should stop.
    """

    def report(self, err: AppError) -> None:  # pragma: no cover - interface
        raise NotImplementedError


_LOG_LEVELS = {
    Severity.CRITICAL: logging.ERROR,
    Severity.HIGH: logging.ERROR,
    Severity.MEDIUM: logging.WARNING,
    Severity.LOW: logging.INFO,
}


class ConsoleReporter(ErrorReporter):
    """Log the error, print a friendly line to stderr, exit on critical errors."""

    def __init__(self, console: Optional[Console] = None, *, verbose: bool = False, debug: bool = False):
        self.console = console or Console(stderr=True, theme=THEME)
        self.verbose = verbose
        self.debug = debug

    def report(self, err: AppError) -> None:
        fields = err.log_fields()
        if self.debug and err.cause is not None:
            fields["cause"] = repr(err.cause)
        logger.log(_LOG_LEVELS[err.severity], err.message, extra={"extra": fields})

        label = WARNING_LABEL if err.severity <= Severity.LOW else ERROR_LABEL
        if self.verbose or self.debug:
            self.console.print(bracketed(label) + escape(f"[{err.kind.value}:{err.code}] {err.display_message()}"))
            if err.operation:
                self.console.print(f"  operation: {err.operation}")
            if self.debug and err.cause is not None:
                self.console.print(f"  technical details: {err.cause}", markup=False)
        else:
            self.console.print(bracketed(label) + escape(err.display_message()))

        if err.is_critical:
            sys.exit(1)
