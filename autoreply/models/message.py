import uuid

from sqlalchemy import Column, DateTime, String, Text

from autoreply.database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_key = Column(Text, nullable=False, index=True)  # group name or sender name
    sender_name = Column(Text, nullable=False)
    group_name = Column(Text)
    role = Column(Text, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    model = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
