"""Plain data types shared by the conversation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Persona(str, Enum):
    """Who authored a turn. The value is what gets stored in the database."""

    USER = "User"
    ASSISTANT = "Assistant"

    @property
    def role(self) -> str:
        """Role name understood by the completion service."""
        return self.value.lower()

    @classmethod
    def from_role(cls, role: str) -> "Persona":
        for persona in cls:
            if persona.role == role.lower() or persona.value == role:
                return persona
        raise ValueError(f"Unknown persona/role: {role!r}")


@dataclass(frozen=True)
class Turn:
    """One message of a conversation.

    ``surrogate_id`` and ``created_at`` are assigned by the history store and
    stay ``None`` for turns that only exist in memory.
    """

    persona: Persona
    text: str
    chat_id: str
    surrogate_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def as_message(self) -> Dict[str, str]:
        return {"role": self.persona.role, "content": self.text}


@dataclass
class InferenceConfig:
    """Sampling options sent with every completion request.

    ``temperature`` and ``top_p`` are ``None`` unless the caller supplied
    them. Some models reject requests carrying both, so at most one of them
    is ever sent and ``temperature`` wins a conflict.
    """

    max_tokens: int = 500
    temperature: Optional[float] = None
    top_p: Optional[float] = None

    @property
    def has_sampling_conflict(self) -> bool:
        return self.temperature is not None and self.top_p is not None

    def request_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"max_completion_tokens": self.max_tokens}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        elif self.top_p is not None:
            params["top_p"] = self.top_p
        return params


@dataclass(frozen=True)
class ModelTarget:
    """The model requests are addressed to.

    ``model_ref`` is an opaque reference (fine-tuned model name, deployment
    name, ...) accepted without any catalog check. When set it is always the
    value sent over the wire.
    """

    model_id: str = ""
    model_ref: str = ""

    @property
    def is_opaque(self) -> bool:
        return bool(self.model_ref)

    @property
    def value(self) -> str:
        return self.model_ref or self.model_id

    def __str__(self) -> str:
        return self.value


@dataclass
class CatalogEntry:
    """A model as described by the remote catalog, annotated with capabilities."""

    model_id: str
    owned_by: str = ""
    output_modalities: tuple = ("TEXT",)
    supports_streaming: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)
