"""Upstream chat client module."""

from chatgpt_web_service.chatgpt.client import (
    AccessTokenMode,
    ChatGPTClient,
    KeyMode,
    resolve_mode,
)
from chatgpt_web_service.chatgpt.errors import (
    ChatGPTError,
    MissingCredentialsError,
    StreamAborted,
)
from chatgpt_web_service.chatgpt.models import (
    ChatContext,
    ChatMessage,
    ModelConfig,
    ResponseEnvelope,
)

__all__ = [
    "AccessTokenMode",
    "ChatContext",
    "ChatGPTClient",
    "ChatGPTError",
    "ChatMessage",
    "KeyMode",
    "MissingCredentialsError",
    "ModelConfig",
    "ResponseEnvelope",
    "StreamAborted",
    "resolve_mode",
]
