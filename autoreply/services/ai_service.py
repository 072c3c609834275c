import os
import time
from typing import List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autoreply.config import Settings, settings
from autoreply.logging_config import get_logger
from autoreply.models import Prompt
from autoreply.services.catalog_service import format_product_catalog, get_active_products
from autoreply.services.llm import (
    ChatRequest,
    ChatResult,
    CredentialPool,
    FailoverRouter,
    ModelPreferenceList,
    OpenAIChatInvoker,
    RotationPolicy,
)
from autoreply.services.message_service import conversation_key, get_conversation_history, save_message

logger = get_logger("ai_service")

PROMPT_URL = os.environ.get("PROMPT_URL", "")
PROMPT_TIMEOUT_SECONDS = float(os.environ.get("PROMPT_TIMEOUT_SECONDS", "5"))
MAX_HISTORY_MESSAGES = int(os.environ.get("LLM_HISTORY_MESSAGES", "10"))
MAX_PRODUCTS = int(os.environ.get("LLM_MAX_PRODUCTS", "50"))

DEFAULT_SYSTEM_PROMPT = (
    "Você é um assistente útil e amigável. Responda de forma natural, concisa e em português."
)
FALLBACK_MESSAGE = (
    "Desculpe, estou tendo problemas para processar sua mensagem no momento. "
    "Poderia tentar novamente?"
)

# Global failover router instance
_failover_router: Optional[FailoverRouter] = None


def build_failover_router(config: Settings) -> FailoverRouter:
    """Build the router from configuration. Raises EmptyCredentialPoolError with no credentials."""
    pool = CredentialPool(config.credential_secrets())
    model_ids = config.model_list()
    invoker = OpenAIChatInvoker(
        endpoint=config.llm_endpoint,
        temperature=config.llm_temperature,
        top_p=config.llm_top_p,
        max_tokens=config.llm_max_tokens,
        timeout_seconds=config.llm_timeout_seconds,
    )

    if len(model_ids) > 1:
        router = FailoverRouter(
            pool,
            invoker,
            models=ModelPreferenceList(model_ids),
            policy=RotationPolicy(config.rotation_policy),
            cooldown_seconds=config.rotation_cooldown_seconds,
        )
    else:
        router = FailoverRouter(
            pool,
            invoker,
            model=ModelPreferenceList(model_ids).get(0),
            policy=RotationPolicy(config.rotation_policy),
            cooldown_seconds=config.rotation_cooldown_seconds,
        )

    logger.info(
        "Failover router ready",
        extra={
            "context": {
                "pool_size": pool.size(),
                "models": model_ids,
                "rotation_policy": router.policy.value,
                "endpoint": config.llm_endpoint,
            }
        },
    )
    return router


def get_failover_router() -> FailoverRouter:
    """Get or create the process-wide failover router."""
    global _failover_router
    if _failover_router is None:
        _failover_router = build_failover_router(settings)
    return _failover_router


def fetch_remote_prompt(url: str, timeout_seconds: float = PROMPT_TIMEOUT_SECONDS) -> Optional[str]:
    """Fetch the system prompt from a remote endpoint. Returns None on any failure."""
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            response = client.get(url)
    except httpx.HTTPError as exc:
        logger.warning(f"Remote prompt fetch failed: {exc}")
        return None

    if response.status_code != 200:
        logger.warning(f"Remote prompt error: {response.status_code} - {response.text[:200]}")
        return None

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        prompt = data.get("prompt") or data.get("system_prompt")
    elif isinstance(data, str):
        prompt = data
    elif data is None:
        prompt = response.text
    else:
        prompt = None

    if not isinstance(prompt, str) or not prompt.strip():
        logger.warning("Remote prompt response had no prompt text")
        return None
    return prompt.strip()


def get_system_prompt(db: Optional[Session], prompt_url: Optional[str] = None) -> str:
    """Remote prompt, then the active ``system`` prompt row, then the built-in default."""
    url = PROMPT_URL if prompt_url is None else prompt_url
    if url:
        remote = fetch_remote_prompt(url)
        if remote:
            return remote

    if db is not None:
        try:
            prompt = (
                db.query(Prompt)
                .filter(Prompt.name == "system", Prompt.is_active == True)  # noqa: E712
                .order_by(Prompt.created_at.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            logger.warning(f"Prompt lookup failed: {exc}")
            db.rollback()
            prompt = None
        if prompt and prompt.text:
            return prompt.text

    return DEFAULT_SYSTEM_PROMPT


def build_chat_messages(
    system_prompt: str,
    history: List[dict],
    sender_name: str,
    sender_message: str,
    group_name: Optional[str] = None,
    catalog: str = "",
) -> List[dict]:
    full_system = system_prompt
    if group_name:
        full_system += f'\n\nVocê está respondendo em um grupo chamado "{group_name}". Mensagem enviada por {sender_name}.'
    elif sender_name:
        full_system += f"\n\nVocê está conversando com {sender_name}."
    if catalog:
        full_system += f"\n\n{catalog}"

    user_content = f"{sender_name}: {sender_message}" if group_name else sender_message

    messages = [{"role": "system", "content": full_system}]
    messages.extend(history)
    messages.append({"role": "user", "content": user_content})
    return messages


def generate_reply(
    db: Optional[Session],
    router: FailoverRouter,
    sender_name: str,
    sender_message: str,
    group_name: Optional[str] = None,
    history_enabled: Optional[bool] = None,
    products_enabled: Optional[bool] = None,
) -> ChatResult:
    """Compose the prompt, call the router, persist the exchange on success."""
    history_enabled = settings.history_enabled if history_enabled is None else history_enabled
    products_enabled = settings.products_enabled if products_enabled is None else products_enabled
    key = conversation_key(sender_name, group_name)

    system_prompt = get_system_prompt(db)

    history: List[dict] = []
    if history_enabled and db is not None:
        try:
            history = get_conversation_history(db, key, limit=MAX_HISTORY_MESSAGES)
        except SQLAlchemyError as exc:
            logger.warning(f"History read failed, continuing without it: {exc}")
            db.rollback()

    catalog = ""
    if products_enabled and db is not None:
        try:
            catalog = format_product_catalog(get_active_products(db, limit=MAX_PRODUCTS))
        except SQLAlchemyError as exc:
            logger.warning(f"Product lookup failed, continuing without catalogue: {exc}")
            db.rollback()

    messages = build_chat_messages(system_prompt, history, sender_name, sender_message, group_name, catalog)

    llm_start = time.monotonic()
    result = router.invoke(ChatRequest.from_dicts(messages))
    logger.info(
        "Timing",
        extra={
            "context": {
                "stage": "llm_ms",
                "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                "attempts": result.attempts,
                "ok": result.ok,
                "history_messages": len(history),
            }
        },
    )

    if result.ok and history_enabled and db is not None:
        try:
            save_message(db, key, sender_name, "user", sender_message, group_name=group_name)
            save_message(db, key, sender_name, "assistant", result.reply, group_name=group_name, model=result.model)
            db.commit()
        except SQLAlchemyError as exc:
            logger.error(f"Saving conversation failed: {exc}", exc_info=True)
            db.rollback()

    return result
