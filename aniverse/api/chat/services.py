# aniverse/api/chat/services.py

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool

from aniverse.core import errors
from aniverse.core.completion import CompletionClient
from aniverse.storage.base import (
    ChatSessionRecord,
    MessageRecord,
    MessageRole,
    Storage,
    UserRecord,
)

logger = logging.getLogger(__name__)

# No-auth deployment: every session belongs to this user
DEFAULT_USER_ID = "default-user"
DEFAULT_USER = {
    "id": DEFAULT_USER_ID,
    "email": "user@aniverse.ai",
    "first_name": "AniVerse",
    "last_name": "User",
    "profile_image_url": "",
}

DEFAULT_SESSION_TITLE = "New Chat"
DEFAULT_HISTORY_WINDOW = 10

GREETING_MESSAGE = (
    "Hello! I'm AniVerse AI, your anime and manga companion. "
    "What would you like to discuss today?"
)


@dataclass(frozen=True)
class PostMessageResult:
    assistant_text: str
    session_id: str


@contextmanager
def _storage_errors():
    """Storage failures leave the service as InternalError."""
    try:
        yield
    except errors.StorageError as e:
        logger.error("Storage failure: %s", e)
        raise errors.InternalError() from e


class ChatService:
    """Session lifecycle and message flow; all state lives in `storage`."""

    def __init__(
        self,
        storage: Storage,
        completion_client: CompletionClient,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        if history_window < 1:
            raise ValueError("history_window must be at least 1")
        self.storage = storage
        self.completion_client = completion_client
        self.history_window = history_window

    # ---------------------------------------------------
    # Users
    # ---------------------------------------------------

    def ensure_default_user(self) -> UserRecord:
        with _storage_errors():
            user = self.storage.get_user(DEFAULT_USER_ID)
            if user is None:
                user = self.storage.upsert_user(DEFAULT_USER)
        return user

    # ---------------------------------------------------
    # Sessions
    # ---------------------------------------------------

    def create_session(self, title: Optional[str] = None) -> ChatSessionRecord:
        user = self.ensure_default_user()
        title = (title or "").strip() or DEFAULT_SESSION_TITLE
        with _storage_errors():
            session = self.storage.create_chat_session(title, user.id)
        logger.info("Created chat session %s", session.id)
        return session

    def list_sessions(self, user_id: str = DEFAULT_USER_ID) -> List[ChatSessionRecord]:
        with _storage_errors():
            return self.storage.get_all_chat_sessions(user_id)

    def get_session(self, session_id: str) -> ChatSessionRecord:
        with _storage_errors():
            session = self.storage.get_chat_session(session_id)
        if session is None:
            raise errors.NotFound("Session not found")
        return session

    def rename_session(self, session_id: str, title: Optional[str]) -> ChatSessionRecord:
        title = (title or "").strip()
        if not title:
            raise errors.ValidationError("Title is required")
        self.get_session(session_id)
        with _storage_errors():
            session = self.storage.update_chat_session_title(session_id, title)
        if session is None:
            raise errors.NotFound("Session not found")
        return session

    def delete_session(self, session_id: str) -> None:
        self.get_session(session_id)
        with _storage_errors():
            self.storage.delete_chat_session(session_id)
        logger.info("Deleted chat session %s", session_id)

    # ---------------------------------------------------
    # Messages
    # ---------------------------------------------------

    def get_history(self, session_id: str) -> List[MessageRecord]:
        """Messages of a session, oldest first; an empty session gets the greeting."""
        self.get_session(session_id)
        with _storage_errors():
            messages = self.storage.get_messages_by_session_id(session_id)
            if not messages:
                messages = self.storage.seed_greeting_if_empty(session_id, GREETING_MESSAGE)
        if not messages:
            # deleted since the lookup
            raise errors.NotFound("Session not found")
        return messages

    def history_window_of(self, messages: List[MessageRecord]) -> List[MessageRecord]:
        return messages[-self.history_window:]

    def _save_user_message(self, session_id: str, content: str) -> List[MessageRecord]:
        self.get_session(session_id)
        logger.info("Sending message to session %s: %r", session_id, content[:50])
        with _storage_errors():
            user_message = self.storage.create_message(session_id, MessageRole.USER, content)
            logger.debug("User message saved with ID: %s", user_message.id)
            return self.storage.get_messages_by_session_id(session_id)

    def _save_assistant_message(self, session_id: str, text: str) -> MessageRecord:
        with _storage_errors():
            assistant_message = self.storage.create_message(session_id, MessageRole.ASSISTANT, text)
        logger.debug("AI message saved with ID: %s", assistant_message.id)
        return assistant_message

    async def post_message(self, session_id: str, content: Optional[str]) -> PostMessageResult:
        """
        Store the user's message, ask the upstream model and store its reply.

        The user message is written before the upstream call so it survives an
        upstream failure. Whatever text the completion client returns, failure
        messages included, is stored as a normal assistant turn. Storage calls
        block, so they run in the threadpool and only the upstream call is
        awaited on the event loop.
        """
        if content is None or not str(content).strip():
            raise errors.ValidationError("Message content is required")
        content = str(content)

        history = await run_in_threadpool(self._save_user_message, session_id, content)
        assistant_text = await self.completion_client.complete(self.history_window_of(history))
        await run_in_threadpool(self._save_assistant_message, session_id, assistant_text)

        return PostMessageResult(assistant_text=assistant_text, session_id=session_id)
