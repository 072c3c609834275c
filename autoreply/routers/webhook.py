from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from autoreply.database import get_db
from autoreply.logging_config import get_logger
from autoreply.schemas.webhook import AutoReplyRequest, AutoReplyResponse
from autoreply.services.ai_service import FALLBACK_MESSAGE, generate_reply, get_failover_router
from autoreply.services.alert_service import alert_error
from autoreply.services.llm import FailoverRouter

logger = get_logger("webhook")

router = APIRouter()


@router.post("/webhook", response_model=AutoReplyResponse)
def handle_webhook(
    request: AutoReplyRequest,
    db: Session = Depends(get_db),
    chat_router: FailoverRouter = Depends(get_failover_router),
):
    """Answer one AutoReply message. Always returns the reply envelope."""
    group_name = request.effective_group
    logger.info(
        "Message received",
        extra={
            "context": {
                "sender": request.senderName,
                "group": group_name,
                "from_group": request.isMessageFromGroup,
                "message_len": len(request.senderMessage),
            }
        },
    )

    try:
        result = generate_reply(db, chat_router, request.senderName, request.senderMessage, group_name)
    except Exception as exc:
        logger.error(f"Reply generation crashed: {exc}", exc_info=True)
        alert_error("Webhook reply generation crashed", {"sender": request.senderName, "error": str(exc)})
        return AutoReplyResponse.of(FALLBACK_MESSAGE)

    if not result.ok or not result.reply:
        logger.error(
            "No reply from LLM",
            extra={
                "context": {
                    "failure": result.failure.value if result.failure else None,
                    "last_failure": result.last_failure.value if result.last_failure else None,
                    "attempts": result.attempts,
                    "error": result.error,
                }
            },
        )
        alert_error(
            "LLM credentials/models exhausted",
            {"attempts": result.attempts, "error": (result.error or "")[:200]},
        )
        return AutoReplyResponse.of(FALLBACK_MESSAGE)

    return AutoReplyResponse.of(result.reply)


@router.get("/ping", response_class=PlainTextResponse)
def ping():
    return "OK"


@router.get("/")
def root():
    return {
        "service": "AutoReply Webhook",
        "status": "Online",
        "usage": "POST /webhook com payload do AutoReply",
    }
