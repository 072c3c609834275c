from autoreply.services.llm.base import (
    ChatInvoker,
    ChatMessageEntry,
    ChatRequest,
    ChatResult,
    Credential,
    FailureKind,
)
from autoreply.services.llm.openai_provider import OpenAIChatInvoker, classify_upstream_error
from autoreply.services.llm.pool import (
    CredentialPool,
    EmptyCredentialPoolError,
    EmptyModelListError,
    ModelPreferenceList,
)
from autoreply.services.llm.router import (
    FailoverRouter,
    ModelFallbackDisabledError,
    RotationPolicy,
    RouterState,
)

__all__ = [
    "ChatInvoker",
    "ChatMessageEntry",
    "ChatRequest",
    "ChatResult",
    "Credential",
    "CredentialPool",
    "EmptyCredentialPoolError",
    "EmptyModelListError",
    "FailoverRouter",
    "FailureKind",
    "ModelFallbackDisabledError",
    "ModelPreferenceList",
    "OpenAIChatInvoker",
    "RotationPolicy",
    "RouterState",
    "classify_upstream_error",
]
