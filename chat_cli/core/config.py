"""Runtime settings resolved from environment variables and CLI flags."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import ErrorKind, critical_error, validation_error
from .models import InferenceConfig
from .retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS

APP_NAME = "chat-cli"
DEFAULT_MODEL = "gpt-4o"
DB_FILENAME = "data.db"
LOG_FILENAME = "chat-cli.log"
LOG_LEVELS = ("debug", "info", "warn", "warning", "error")


def default_data_dir(env: Mapping[str, str] = os.environ) -> Path:
    """``$CHAT_CLI_DATA_DIR``, else the XDG data directory for the app."""
    explicit = env.get("CHAT_CLI_DATA_DIR")
    if explicit:
        return Path(explicit).expanduser()
    xdg = env.get("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / APP_NAME


@dataclass
class Settings:
    api_key: str = ""
    base_url: Optional[str] = None
    model_id: str = DEFAULT_MODEL
    model_ref: str = ""
    chat_id: Optional[str] = None
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    data_dir: Path = field(default_factory=default_data_dir)
    log_level: str = "info"
    verbose: bool = False
    debug: bool = False
    retry_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_ms: int = int(DEFAULT_BASE_DELAY * 1000)

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @property
    def log_file(self) -> Path:
        return self.data_dir / LOG_FILENAME

    @property
    def retry_base_delay(self) -> float:
        return self.retry_delay_ms / 1000.0

    @classmethod
    def from_args(cls, args: argparse.Namespace, env: Mapping[str, str] = os.environ) -> "Settings":
        """Merge flags over environment variables, field by field."""
        max_tokens = getattr(args, "max_tokens", None)
        if max_tokens is None:
            max_tokens = InferenceConfig.max_tokens
        return cls(
            api_key=env.get("OPENAI_API_KEY", ""),
            base_url=env.get("OPENAI_BASE_URL") or None,
            model_id=getattr(args, "model_id", None) or env.get("OPENAI_DEFAULT_MODEL") or DEFAULT_MODEL,
            model_ref=getattr(args, "model_ref", None) or env.get("CHAT_CLI_MODEL_REF", ""),
            chat_id=getattr(args, "chat_id", None) or None,
            inference=InferenceConfig(
                max_tokens=max_tokens,
                temperature=getattr(args, "temperature", None),
                top_p=getattr(args, "top_p", None),
            ),
            data_dir=default_data_dir(env),
            log_level=(getattr(args, "log_level", None) or env.get("CHAT_CLI_LOG_LEVEL") or "info").lower(),
            verbose=bool(getattr(args, "verbose", False)),
            debug=bool(getattr(args, "debug", False)),
            retry_attempts=_int_env(env, "CHAT_CLI_RETRY_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            retry_delay_ms=_int_env(env, "CHAT_CLI_RETRY_DELAY_MS", int(DEFAULT_BASE_DELAY * 1000)),
        )

    def validate(self) -> None:
        """Raise a validation error for the first out-of-range value."""
        inference = self.inference
        if inference.max_tokens <= 0:
            raise validation_error(
                "max_tokens_range",
                f"max_tokens must be positive, got {inference.max_tokens}",
                operation="ValidateSettings",
                component="config",
            )
        if inference.temperature is not None and not 0.0 <= inference.temperature <= 2.0:
            raise validation_error(
                "temperature_range",
                f"temperature out of range: {inference.temperature}",
                operation="ValidateSettings",
                component="config",
            )
        if inference.top_p is not None and not 0.0 <= inference.top_p <= 1.0:
            raise validation_error(
                "top_p_range",
                f"top_p out of range: {inference.top_p}",
                operation="ValidateSettings",
                component="config",
            )
        if self.log_level not in LOG_LEVELS:
            raise validation_error(
                "log_level_invalid",
                f"unknown log level {self.log_level!r}",
                operation="ValidateSettings",
                component="config",
                metadata={"provided_log_level": self.log_level},
            )
        if self.retry_attempts < 1 or self.retry_delay_ms < 0:
            raise validation_error(
                "value_invalid",
                "retry settings must be positive",
                user_message="CHAT_CLI_RETRY_ATTEMPTS must be >= 1 and CHAT_CLI_RETRY_DELAY_MS >= 0.",
                operation="ValidateSettings",
                component="config",
            )

    def require_credentials(self) -> None:
        if not self.api_key:
            raise critical_error(
                ErrorKind.CONFIGURATION,
                "credentials_not_found",
                "OPENAI_API_KEY environment variable is not set",
                operation="LoadCredentials",
                component="config",
            )


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise validation_error(
            "value_invalid",
            f"{name} is not an integer: {raw!r}",
            user_message=f"{name} must be an integer.",
            operation="LoadSettings",
            component="config",
        ) from exc
