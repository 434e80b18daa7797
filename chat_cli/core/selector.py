"""Model validation and mid-session model switching."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import openai
from openai import OpenAI  # type: ignore

from .errors import model_error, validation_error
from .models import CatalogEntry, ModelTarget

logger = logging.getLogger(__name__)

# The models endpoint does not describe what a model can do, so capabilities
# are inferred from the model family.
NON_TEXT_PREFIXES = {
    "dall-e": ("IMAGE",),
    "gpt-image": ("IMAGE",),
    "tts-": ("AUDIO",),
    "whisper": ("TEXT_TRANSCRIPTION",),
    "text-embedding": ("EMBEDDING",),
    "omni-moderation": ("MODERATION",),
    "text-moderation": ("MODERATION",),
    "sora": ("VIDEO",),
}

NON_STREAMING_PREFIXES = (
    "o1-pro",
    "o3-pro",
    "codex-mini",
    "computer-use",
)


def annotate(model_id: str, owned_by: str = "") -> CatalogEntry:
    """Build a :class:`CatalogEntry` for *model_id* with inferred capabilities."""
    lowered = model_id.lower()
    # fine-tuned ids look like ft:<base>:<org>::<suffix>
    base = lowered.split(":", 2)[1] if lowered.startswith("ft:") else lowered

    modalities = ("TEXT",)
    for prefix, outputs in NON_TEXT_PREFIXES.items():
        if base.startswith(prefix):
            modalities = outputs
            break

    streaming = not any(base.startswith(prefix) for prefix in NON_STREAMING_PREFIXES)
    return CatalogEntry(
        model_id=model_id,
        owned_by=owned_by,
        output_modalities=modalities,
        supports_streaming=streaming,
    )


class ModelCatalog:
    """Read access to the remote model list."""

    def __init__(self, client: OpenAI):
        self.client = client

    def get(self, model_id: str) -> CatalogEntry:
        try:
            model = self.client.models.retrieve(model_id)
        except openai.NotFoundError as exc:
            raise model_error(
                "model_not_found",
                model_id,
                f"Model not found: {model_id}",
                exc,
                operation="ValidateModelAvailability",
                component="model-selector",
            ) from exc
        except openai.PermissionDeniedError as exc:
            raise model_error(
                "model_access_denied",
                model_id,
                f"Access denied for model: {model_id}",
                exc,
                operation="ValidateModelAvailability",
                component="model-selector",
            ) from exc
        except openai.OpenAIError as exc:
            raise model_error(
                "model_validation_failed",
                model_id,
                f"Model validation failed: {exc}",
                exc,
                operation="ValidateModelAvailability",
                component="model-selector",
            ) from exc
        return annotate(getattr(model, "id", model_id), getattr(model, "owned_by", "") or "")

    def list(self) -> List[CatalogEntry]:
        try:
            models = list(self.client.models.list())
        except openai.OpenAIError as exc:
            raise model_error(
                "model_validation_failed",
                "*",
                f"Listing models failed: {exc}",
                exc,
                operation="ListModels",
                component="model-selector",
            ) from exc
        return [annotate(m.id, getattr(m, "owned_by", "") or "") for m in models]


def check_capabilities(entry: CatalogEntry, require_streaming: bool = True) -> None:
    """Raise a model error naming the first unmet requirement."""
    if "TEXT" not in entry.output_modalities:
        raise model_error(
            "model_not_text",
            entry.model_id,
            f"Model {entry.model_id} is not a text model",
            operation="ValidateModelCapabilities",
            component="model-selector",
            metadata={"output_modalities": list(entry.output_modalities), "requirement": "text_output"},
        )
    if require_streaming and not entry.supports_streaming:
        raise model_error(
            "model_no_streaming",
            entry.model_id,
            f"Model {entry.model_id} does not support streaming",
            operation="ValidateModelCapabilities",
            component="model-selector",
            metadata={"requirement": "streaming"},
        )


def is_chat_capable(entry: CatalogEntry) -> bool:
    return "TEXT" in entry.output_modalities and entry.supports_streaming


Picker = Callable[[str, Sequence[str], Optional[str]], Optional[str]]


class ModelSelector:
    """Holds the active :class:`ModelTarget` and validates replacements."""

    def __init__(self, catalog: ModelCatalog, target: Optional[ModelTarget] = None):
        self.catalog = catalog
        self._active = target or ModelTarget()

    @property
    def active(self) -> ModelTarget:
        return self._active

    def validate_and_resolve(
        self, catalog_id: str = "", opaque_ref: str = "", require_streaming: bool = True
    ) -> ModelTarget:
        """Return a usable target or raise an :class:`~chat_cli.core.errors.AppError`.

        An opaque reference is trusted as-is and wins over *catalog_id*.
        Otherwise the id is looked up remotely and must advertise text output
        and, unless *require_streaming* is off, streaming.
        """
        if opaque_ref:
            return ModelTarget(model_id=catalog_id, model_ref=opaque_ref)

        if not catalog_id:
            raise validation_error(
                "model_id_empty",
                "Model ID is empty",
                operation="ValidateModelID",
                component="model-selector",
            )

        entry = self.catalog.get(catalog_id)
        check_capabilities(entry, require_streaming)
        return ModelTarget(model_id=entry.model_id)

    def swap(self, new_target: ModelTarget) -> ModelTarget:
        """Make *new_target* active for subsequent requests; returns the old one."""
        previous, self._active = self._active, new_target
        logger.info("model target swapped", extra={"extra": {"from": str(previous), "to": str(new_target)}})
        return previous

    def browse(self, picker: Picker) -> Optional[ModelTarget]:
        """Let the user pick a chat-capable model; ``None`` when cancelled.

        The chosen model is validated before the swap happens.
        """
        entries = sorted(
            (e for e in self.catalog.list() if is_chat_capable(e)),
            key=lambda e: e.model_id,
        )
        options = [e.model_id for e in entries]
        current = self._active.model_id if not self._active.is_opaque else None
        selection = picker("Select a model:", options, current)
        if not selection:
            return None

        target = self.validate_and_resolve(selection)
        self.swap(target)
        return target
