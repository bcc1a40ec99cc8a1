from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # append-only: one row per message, ordered by insertion
    messages = relationship(
        "ConversationMessage",
        order_by="ConversationMessage.id",
        cascade="all, delete-orphan",
    )

    def turns(self) -> List[Dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in self.messages]


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), index=True, nullable=False)
    role = Column(String, nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Memory(Base):
    __tablename__ = "memory"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)  # "user", "assistant" or "system"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)


# Process-wide registry, filled once at import time.
MODELS: Dict[str, type] = {
    "Conversation": Conversation,
    "ConversationMessage": ConversationMessage,
    "Memory": Memory,
}


def get_model(name: str) -> type:
    try:
        return MODELS[name]
    except KeyError:
        raise KeyError(f"Unknown model: {name}") from None
