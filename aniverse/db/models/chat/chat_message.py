# aniverse/db/models/chat/chat_message.py
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
import uuid

from aniverse.db.session import Base
from aniverse.storage.base import MessageRole, utcnow


class Message(Base):
    __tablename__ = "messages"

    # insert order, used to break timestamp ties
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(
            MessageRole,
            name="message_role",
            native_enum=False,
            length=10,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)

    session = relationship("ChatSession", back_populates="messages")
