# aniverse/storage/memory.py
import threading
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Optional

from aniverse.core.errors import ValidationError
from aniverse.storage.base import (
    USER_MUTABLE_FIELDS,
    ChatSessionRecord,
    MessageRecord,
    MessageRole,
    Storage,
    UserRecord,
    utcnow,
)


class MemoryStorage(Storage):
    """
    Process-local store for the serverless deployment.

    Nothing survives a restart. All mutations go through one re-entrant lock;
    records are immutable so readers can share them without copying.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, UserRecord] = {}
        self._sessions: Dict[str, ChatSessionRecord] = {}
        self._messages: Dict[str, List[MessageRecord]] = {}

    # ---------------------------------------------------
    # Users
    # ---------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    def upsert_user(self, fields: Dict[str, Any]) -> UserRecord:
        user_id = fields.get("id") or str(uuid.uuid4())
        changes = {k: fields[k] for k in USER_MUTABLE_FIELDS if k in fields}

        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                now = utcnow()
                user = UserRecord(id=user_id, created_at=now, updated_at=now, **changes)
            else:
                changes = {k: v for k, v in changes.items() if getattr(existing, k) != v}
                if not changes:
                    return existing
                user = replace(existing, updated_at=utcnow(), **changes)
            self._users[user_id] = user
            return user

    # ---------------------------------------------------
    # Chat sessions
    # ---------------------------------------------------

    def create_chat_session(self, title: Optional[str], user_id: str) -> ChatSessionRecord:
        with self._lock:
            if user_id not in self._users:
                raise ValidationError(f"User {user_id} does not exist")
            now = utcnow()
            session = ChatSessionRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=title,
                created_at=now,
                updated_at=now,
            )
            self._sessions[session.id] = session
            self._messages[session.id] = []
            return session

    def get_chat_session(self, session_id: str) -> Optional[ChatSessionRecord]:
        return self._sessions.get(session_id)

    def get_all_chat_sessions(self, user_id: str) -> List[ChatSessionRecord]:
        with self._lock:
            owned = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted(owned, key=lambda s: (s.updated_at, s.created_at), reverse=True)

    def update_chat_session_title(self, session_id: str, title: str) -> Optional[ChatSessionRecord]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session = replace(session, title=title, updated_at=utcnow())
            self._sessions[session_id] = session
            return session

    def delete_chat_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._messages.pop(session_id, None)

    # ---------------------------------------------------
    # Messages
    # ---------------------------------------------------

    def get_messages_by_session_id(self, session_id: str) -> List[MessageRecord]:
        with self._lock:
            return list(self._messages.get(session_id, []))

    def create_message(self, session_id: str, role, content: str) -> MessageRecord:
        role = MessageRole.coerce(role)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise ValidationError(f"Chat session {session_id} does not exist")
            message = MessageRecord(
                id=str(uuid.uuid4()),
                session_id=session_id,
                role=role,
                content=content,
                timestamp=utcnow(),
            )
            self._messages[session_id].append(message)
            self._sessions[session_id] = replace(session, updated_at=message.timestamp)
            return message

    def seed_greeting_if_empty(self, session_id: str, content: str) -> List[MessageRecord]:
        with self._lock:
            if session_id not in self._sessions:
                return []
            if not self._messages[session_id]:
                self.create_message(session_id, MessageRole.ASSISTANT, content)
            return list(self._messages[session_id])
