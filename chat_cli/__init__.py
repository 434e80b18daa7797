"""Interactive terminal chat with OpenAI models, with the history kept locally.

Features
--------
1. Streaming replies: text is printed as it arrives from the model.
2. History: every exchange is stored in a local sqlite database; resume a
   conversation with `--chat-id` and list recent ones with `chat-cli list`.
3. Model switching: pick another model mid-conversation with `/models`.
   Type `quit` or `/quit` to leave.

Run `python -m chat_cli` or the `chat-cli` console script.
"""
# Re-export useful symbols for convenience
from .core import (
    AppError,
    HistoryStore,
    InferenceConfig,
    ModelSelector,
    ModelTarget,
    SessionController,
    Turn,
)
from .core.client import SYSTEM_PROMPT, OpenAIClientWrapper
from .cli import ChatCLI, run_cli

__all__ = [
    "AppError",
    "HistoryStore",
    "InferenceConfig",
    "ModelSelector",
    "ModelTarget",
    "SessionController",
    "Turn",
    "SYSTEM_PROMPT",
    "OpenAIClientWrapper",
    "ChatCLI",
    "run_cli",
]
