from autoreply.services.ai_service import (
    FALLBACK_MESSAGE,
    build_failover_router,
    generate_reply,
    get_failover_router,
    get_system_prompt,
)
from autoreply.services.message_service import (
    conversation_key,
    get_conversation_history,
    save_message,
)
