import os
import re
from typing import List

from pydantic_settings import BaseSettings

DEFAULT_ENDPOINT = "https://models.github.ai/inference"
DEFAULT_MODEL = "openai/gpt-4.1"

_NUMBERED_TOKEN_RE = re.compile(r"^GITHUB_TOKEN_(\d+)$")


class Settings(BaseSettings):
    database_url: str = "sqlite:///./autoreply.db"
    debug: bool = False
    log_level: str = "INFO"

    github_token: str = ""
    llm_api_keys: str = ""
    llm_endpoint: str = DEFAULT_ENDPOINT
    llm_models: str = DEFAULT_MODEL
    llm_temperature: float = 1.0
    llm_top_p: float = 1.0
    llm_max_tokens: int = 600
    llm_timeout_seconds: float = 30.0

    rotation_policy: str = "round_robin"
    rotation_cooldown_seconds: float = 60.0

    history_enabled: bool = True
    products_enabled: bool = False

    class Config:
        env_file = ".env"
        extra = "allow"

    def model_list(self) -> List[str]:
        return split_csv(self.llm_models)

    def credential_secrets(self) -> List[str]:
        """Credentials in pool order: GITHUB_TOKEN, GITHUB_TOKEN_2..N, then LLM_API_KEYS."""
        secrets = [self.github_token]
        # .env keys land in model_extra; the process environment wins over them.
        sources = {key.upper(): value for key, value in (self.model_extra or {}).items()}
        sources.update(os.environ)
        secrets.extend(numbered_tokens(sources))
        secrets.extend(split_csv(self.llm_api_keys))
        return secrets


def split_csv(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def numbered_tokens(environ) -> List[str]:
    numbered = []
    for key, value in environ.items():
        match = _NUMBERED_TOKEN_RE.match(key)
        if match:
            numbered.append((int(match.group(1)), value))
    return [value for _, value in sorted(numbered)]


settings = Settings()
