"""Credential/model failover for chat-completion calls.

The router owns two cursors (credential, model). Each call starts from the
current pair and, on a classified failure, moves the cursors:

* ``RATE_LIMITED`` / ``OTHER``: next credential, model cursor back to 0.
* ``ACCESS_DENIED``: next model on the same credential; from the last model
  it moves on to the next credential instead.

Cursors are sticky: a success leaves them where they are, so the next request
starts from the pair that last worked. Failure timestamps are kept for
``current_stats()``; only the ``SKIP_RECENTLY_FAILED`` policy reads them back.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from autoreply.logging_config import get_logger
from autoreply.services.llm.base import ChatInvoker, ChatRequest, ChatResult, Credential, FailureKind
from autoreply.services.llm.pool import CredentialPool, ModelPreferenceList

logger = get_logger("llm.router")

DEFAULT_COOLDOWN_SECONDS = 60.0


class RotationPolicy(str, Enum):
    ROUND_ROBIN = "round_robin"
    SKIP_RECENTLY_FAILED = "skip_recently_failed"


class ModelFallbackDisabledError(RuntimeError):
    def __init__(self):
        super().__init__("Model fallback is disabled: only one model is configured")


@dataclass
class RouterState:
    credential_index: int = 0
    model_index: int = 0


class FailoverRouter:
    def __init__(
        self,
        pool: CredentialPool,
        invoker: ChatInvoker,
        model: Optional[str] = None,
        models: Optional[ModelPreferenceList] = None,
        policy: RotationPolicy = RotationPolicy.ROUND_ROBIN,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if models is None and not model:
            raise ValueError("FailoverRouter needs a fixed model or a model preference list")
        self.pool = pool
        self.invoker = invoker
        self.models = models
        self.fixed_model = model if models is None else None
        self.policy = RotationPolicy(policy)
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

        self.state = RouterState()
        self.failure_log: Dict[int, float] = {}
        self.model_failure_log: Dict[Tuple[int, int], float] = {}
        self._lock = threading.Lock()

    @property
    def model_fallback_enabled(self) -> bool:
        return self.models is not None

    @property
    def attempt_budget(self) -> int:
        model_count = self.models.size() if self.models is not None else 1
        return self.pool.size() * max(1, model_count)

    def _model_at(self, index: int) -> str:
        if self.models is None:
            return self.fixed_model
        return self.models.get(index)

    def current(self) -> Tuple[Credential, str]:
        with self._lock:
            credential_index, model_index = self.state.credential_index, self.state.model_index
        return self.pool.get(credential_index), self._model_at(model_index)

    def invoke(self, request: ChatRequest) -> ChatResult:
        """Try (credential, model) pairs until one answers or the budget runs out."""
        budget = self.attempt_budget
        last: Optional[ChatResult] = None

        for attempt in range(1, budget + 1):
            with self._lock:
                credential_index, model_index = self.state.credential_index, self.state.model_index
            credential = self.pool.get(credential_index)
            model = self._model_at(model_index)

            try:
                result = self.invoker.complete(credential, model, request)
            except Exception as exc:
                logger.warning(f"Invoker raised {type(exc).__name__}: {exc}")
                result = ChatResult.fail(FailureKind.OTHER, f"{type(exc).__name__}: {exc}")

            result.attempts = attempt
            result.credential_index = credential_index
            result.model = result.model or model

            if result.ok:
                logger.info(
                    "LLM reply generated",
                    extra={
                        "context": {
                            "attempts": attempt,
                            "credential_index": credential_index,
                            "model": model,
                        }
                    },
                )
                return result

            last = result
            self._on_failure(credential_index, model_index, result.failure or FailureKind.OTHER)

        logger.error(
            "LLM pool exhausted",
            extra={
                "context": {
                    "attempts": budget,
                    "last_failure": last.failure.value if last and last.failure else None,
                    "error": last.error if last else None,
                }
            },
        )
        return ChatResult(
            ok=False,
            failure=FailureKind.POOL_EXHAUSTED,
            error=last.error if last else "no attempts made",
            model=last.model if last else None,
            credential_index=last.credential_index if last else None,
            attempts=budget,
            last_failure=last.failure if last else None,
        )

    def _on_failure(self, credential_index: int, model_index: int, kind: FailureKind) -> None:
        with self._lock:
            now = self.clock()
            if kind == FailureKind.ACCESS_DENIED and self.models is not None:
                self.model_failure_log[(credential_index, model_index)] = now
                if self.state.model_index < self.models.size() - 1:
                    self.state.model_index += 1
                    action = "next_model"
                else:
                    self._advance_credential_locked(now, apply_policy=True)
                    action = "next_credential"
            else:
                self.failure_log[credential_index] = now
                self._advance_credential_locked(now, apply_policy=True)
                action = "next_credential"
            new_credential, new_model = self.state.credential_index, self.state.model_index

        logger.warning(
            "LLM attempt failed",
            extra={
                "context": {
                    "failure": kind.value,
                    "credential": self.pool.get(credential_index).masked,
                    "credential_index": credential_index,
                    "model": self._model_at(model_index),
                    "action": action,
                    "next_credential_index": new_credential,
                    "next_model": self._model_at(new_model),
                }
            },
        )

    def _advance_credential_locked(self, now: float, apply_policy: bool) -> None:
        size = self.pool.size()
        start = self.state.credential_index
        next_index = (start + 1) % size

        if apply_policy and self.policy == RotationPolicy.SKIP_RECENTLY_FAILED:
            for step in range(1, size):
                candidate = (start + step) % size
                failed_at = self.failure_log.get(candidate)
                if failed_at is None or now - failed_at >= self.cooldown_seconds:
                    next_index = candidate
                    break

        self.state.credential_index = next_index
        if self.models is not None:
            self.state.model_index = 0

    def rotate_credential(self) -> Credential:
        """Move to the next credential by exactly one position."""
        with self._lock:
            previous = self.state.credential_index
            self._advance_credential_locked(self.clock(), apply_policy=False)
            current = self.state.credential_index
        credential = self.pool.get(current)
        logger.info(
            "Credential rotated",
            extra={"context": {"from_index": previous, "to_index": current, "credential": credential.masked}},
        )
        return credential

    def rotate_model(self) -> str:
        if self.models is None:
            raise ModelFallbackDisabledError()
        with self._lock:
            previous = self.state.model_index
            self.state.model_index = (previous + 1) % self.models.size()
            current = self.state.model_index
        model = self.models.get(current)
        logger.info(
            "Model rotated",
            extra={"context": {"from_index": previous, "to_index": current, "model": model}},
        )
        return model

    def current_stats(self) -> dict:
        with self._lock:
            credential_index = self.state.credential_index
            model_index = self.state.model_index
            failures = {index: self.failure_log.get(index) for index in range(self.pool.size())}
            model_failures = {
                f"{c}:{self._model_at(m)}": failed_at for (c, m), failed_at in self.model_failure_log.items()
            }
        return {
            "pool_size": self.pool.size(),
            "current_credential_index": credential_index,
            "current_model": self._model_at(model_index),
            "current_model_index": model_index if self.models is not None else None,
            "model_fallback": self.models is not None,
            "models": list(self.models) if self.models is not None else [self.fixed_model],
            "rotation_policy": self.policy.value,
            "failures": failures,
            "model_failures": model_failures,
        }
