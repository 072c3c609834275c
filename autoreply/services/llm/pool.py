from typing import Iterable, List, Optional

from autoreply.services.llm.base import Credential


class EmptyCredentialPoolError(RuntimeError):
    """Raised at startup when no usable credential is configured."""

    def __init__(self):
        super().__init__(
            "No LLM credentials configured: set GITHUB_TOKEN, GITHUB_TOKEN_2..N or LLM_API_KEYS"
        )


class EmptyModelListError(ValueError):
    def __init__(self):
        super().__init__("Model preference list is empty: set LLM_MODELS")


def _dedupe(values: Iterable[Optional[str]]) -> List[str]:
    seen: set[str] = set()
    kept: List[str] = []
    for value in values:
        if value is None:
            continue
        cleaned = value.strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        kept.append(cleaned)
    return kept


class CredentialPool:
    """Ordered, immutable set of upstream credentials."""

    def __init__(self, secrets: Iterable[Optional[str]]):
        kept = _dedupe(secrets)
        if not kept:
            raise EmptyCredentialPoolError()
        self._credentials = tuple(Credential(index=i, secret=secret) for i, secret in enumerate(kept))

    def size(self) -> int:
        return len(self._credentials)

    def get(self, index: int) -> Credential:
        return self._credentials[index]

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"CredentialPool(size={self.size()})"


class ModelPreferenceList:
    """Model identifiers ordered most-preferred first."""

    def __init__(self, models: Iterable[Optional[str]]):
        kept = _dedupe(models)
        if not kept:
            raise EmptyModelListError()
        self._models = tuple(kept)

    def size(self) -> int:
        return len(self._models)

    def get(self, index: int) -> str:
        return self._models[index]

    def __len__(self) -> int:
        return self.size()

    def __iter__(self):
        return iter(self._models)

    def __repr__(self) -> str:
        return f"ModelPreferenceList({list(self._models)!r})"
