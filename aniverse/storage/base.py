# aniverse/storage/base.py
from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from aniverse.core.errors import DataIntegrityError


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def coerce(cls, value: Any) -> "MessageRole":
        """Accept a MessageRole or its string value; anything else is rejected."""
        try:
            return cls(value)
        except ValueError:
            raise DataIntegrityError(f"Invalid message role: {value!r}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Records returned by every backend
# =========================

@dataclass(frozen=True)
class UserRecord:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChatSessionRecord:
    id: str
    user_id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None


# Fields of a user that upsert_user may change after creation
USER_MUTABLE_FIELDS = ("email", "first_name", "last_name", "profile_image_url")


class Storage(ABC):
    """
    Persistence contract for users, chat sessions and messages.

    Implementations raise StorageError when the backing store fails and
    ValidationError when create_chat_session references an unknown user.
    """

    name = "storage"

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def upsert_user(self, fields: Dict[str, Any]) -> UserRecord: ...

    @abstractmethod
    def create_chat_session(self, title: Optional[str], user_id: str) -> ChatSessionRecord: ...

    @abstractmethod
    def get_chat_session(self, session_id: str) -> Optional[ChatSessionRecord]: ...

    @abstractmethod
    def get_all_chat_sessions(self, user_id: str) -> List[ChatSessionRecord]:
        """Sessions owned by user_id, most recently updated first."""

    @abstractmethod
    def update_chat_session_title(self, session_id: str, title: str) -> Optional[ChatSessionRecord]: ...

    @abstractmethod
    def get_messages_by_session_id(self, session_id: str) -> List[MessageRecord]:
        """Messages of a session, oldest first. Unknown sessions yield []."""

    @abstractmethod
    def create_message(self, session_id: str, role: MessageRole | str, content: str) -> MessageRecord: ...

    @abstractmethod
    def seed_greeting_if_empty(self, session_id: str, content: str) -> List[MessageRecord]:
        """
        Store `content` as an assistant message if the session has none yet,
        then return the session's messages. Check and insert are atomic, so
        concurrent callers seed at most one message. Unknown sessions yield [].
        """

    @abstractmethod
    def delete_chat_session(self, session_id: str) -> None: ...

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
