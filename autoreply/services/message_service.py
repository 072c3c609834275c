from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from autoreply.models import ChatMessage


def conversation_key(sender_name: str, group_name: Optional[str] = None) -> str:
    """Group chats share one history; direct chats are keyed by sender."""
    if group_name:
        return f"group:{group_name.strip()}"
    return f"user:{(sender_name or '').strip()}"


def save_message(
    db: Session,
    key: str,
    sender_name: str,
    role: str,
    content: str,
    group_name: Optional[str] = None,
    model: Optional[str] = None,
) -> ChatMessage:
    """Save message to database."""
    message = ChatMessage(
        conversation_key=key,
        sender_name=sender_name,
        group_name=group_name,
        role=role,
        content=content,
        model=model,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


def get_conversation_history(db: Session, key: str, limit: int = 10) -> List[dict]:
    """Get recent conversation history in chronological order."""
    if limit <= 0:
        return []

    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_key == key)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
        .all()
    )

    history = []
    for msg in reversed(messages):
        if msg.role not in ("user", "assistant"):
            continue
        content = msg.content
        if msg.role == "user" and msg.group_name:
            content = f"{msg.sender_name}: {content}"
        history.append({"role": msg.role, "content": content})

    return history
