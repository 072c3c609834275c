from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from autoreply.logging_config import mask_secret


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    ACCESS_DENIED = "access_denied"
    OTHER = "other"
    POOL_EXHAUSTED = "pool_exhausted"


@dataclass(frozen=True)
class Credential:
    index: int
    secret: str = field(repr=False)

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    def __repr__(self) -> str:
        return f"Credential(index={self.index}, secret={self.masked})"


@dataclass(frozen=True)
class ChatMessageEntry:
    role: str  # system, user, assistant
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    messages: tuple

    @staticmethod
    def from_dicts(messages: Sequence[dict]) -> "ChatRequest":
        return ChatRequest(
            messages=tuple(ChatMessageEntry(role=m["role"], content=m["content"]) for m in messages)
        )

    def as_payload(self) -> List[dict]:
        return [message.as_dict() for message in self.messages]


@dataclass
class ChatResult:
    ok: bool
    reply: Optional[str] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    model: Optional[str] = None
    credential_index: Optional[int] = None
    usage: Optional[dict] = None
    attempts: int = 1
    # Classification of the last attempt when the router gives up.
    last_failure: Optional[FailureKind] = None

    @staticmethod
    def success(reply: str, model: str | None = None, usage: dict | None = None) -> "ChatResult":
        return ChatResult(ok=True, reply=reply, model=model, usage=usage)

    @staticmethod
    def fail(kind: FailureKind, error: str) -> "ChatResult":
        return ChatResult(ok=False, failure=kind, error=error)

    def unwrap_or(self, default: str) -> str:
        return self.reply if self.ok else default


class ChatInvoker(ABC):
    """One outbound chat-completion call. Implementations never retry."""

    @abstractmethod
    def complete(self, credential: Credential, model: str, request: ChatRequest) -> ChatResult:
        """Call the upstream endpoint once and classify the outcome."""
        pass
