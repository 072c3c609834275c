from typing import Optional

import httpx

from autoreply.logging_config import get_logger
from autoreply.services.llm.base import ChatInvoker, ChatRequest, ChatResult, Credential, FailureKind

logger = get_logger("llm.openai")

RATE_LIMIT_MARKERS = ("ratelimit", "rate limit", "rate_limit", "too many requests", "quota")
ACCESS_DENIED_CODES = {"no_access", "unknown_model", "model_not_found", "unavailable_model", "forbidden"}


def _error_details(body: object) -> tuple[str, str]:
    """Pull ``(code, message)`` out of an OpenAI-style error body."""
    if not isinstance(body, dict):
        return "", ""
    error = body.get("error", body)
    if isinstance(error, str):
        return "", error
    if not isinstance(error, dict):
        return "", ""
    code = str(error.get("code") or error.get("type") or "")
    message = str(error.get("message") or "")
    return code, message


def classify_upstream_error(status_code: int, body: object = None) -> FailureKind:
    """Map an upstream HTTP error onto the closed failure taxonomy."""
    code, message = _error_details(body)
    haystack = f"{code} {message}".lower()

    if status_code == 429 or any(marker in haystack for marker in RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if status_code == 403 or code.lower() in ACCESS_DENIED_CODES:
        return FailureKind.ACCESS_DENIED
    return FailureKind.OTHER


class OpenAIChatInvoker(ChatInvoker):
    """OpenAI-compatible chat-completions endpoint (GitHub Models by default)."""

    def __init__(
        self,
        endpoint: str,
        temperature: float = 1.0,
        top_p: float = 1.0,
        max_tokens: int = 600,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = f"{endpoint.rstrip('/')}/chat/completions"
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def complete(
        self,
        credential: Credential,
        model: str,
        request: ChatRequest,
        timeout_seconds: Optional[float] = None,
    ) -> ChatResult:
        """Issue one chat-completion request and classify the outcome."""
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        payload = {
            "model": model,
            "messages": request.as_payload(),
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
        }
        logger.debug(
            f"LLM request: model={model}, credential={credential.masked}, messages_count={len(payload['messages'])}"
        )

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {credential.secret}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            logger.warning(f"LLM transport error: {type(exc).__name__}: {exc}")
            return ChatResult.fail(FailureKind.OTHER, f"{type(exc).__name__}: {exc}")

        logger.debug(f"LLM response status: {response.status_code}")

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = None
            kind = classify_upstream_error(response.status_code, body)
            logger.warning(
                "LLM upstream error",
                extra={
                    "context": {
                        "status_code": response.status_code,
                        "failure": kind.value,
                        "model": model,
                        "credential": credential.masked,
                        "body": response.text[:300],
                    }
                },
            )
            return ChatResult.fail(kind, f"LLM API error: {response.status_code} - {response.text[:300]}")

        try:
            data = response.json()
        except ValueError:
            return ChatResult.fail(FailureKind.OTHER, "LLM API returned malformed JSON")

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return ChatResult.fail(FailureKind.OTHER, "LLM API returned no choices")

        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            return ChatResult.fail(FailureKind.OTHER, "LLM API returned a choice without content")

        logger.debug(f"LLM content: {content[:100] if content else 'EMPTY'}")
        return ChatResult.success(content, model=data.get("model", model), usage=data.get("usage"))
