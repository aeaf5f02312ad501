# aniverse/storage/database.py
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from aniverse.core.errors import StorageError, ValidationError
from aniverse.db.models import ChatSession, Message, User
from aniverse.db.session import Base, build_engine, build_session_factory
from aniverse.storage.base import (
    USER_MUTABLE_FIELDS,
    ChatSessionRecord,
    MessageRecord,
    MessageRole,
    Storage,
    UserRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


def _user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        profile_image_url=user.profile_image_url,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _session_record(session: ChatSession) -> ChatSessionRecord:
    return ChatSessionRecord(
        id=session.id,
        user_id=session.user_id,
        title=session.title,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def _message_record(message: Message) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        session_id=message.session_id,
        role=MessageRole.coerce(message.role),
        content=message.content,
        timestamp=message.timestamp,
    )


class DatabaseStorage(Storage):
    """
    SQLAlchemy-backed store. Each operation runs in its own short-lived
    session; concurrent writes to one chat session are ordered by the
    database's commit order.
    """

    name = "database"

    def __init__(self, database_url: str, create_tables: bool = False):
        self.engine = build_engine(database_url)
        self._session_factory = build_session_factory(self.engine)
        self._seed_lock = threading.Lock()
        if create_tables:
            Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except ValidationError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Database operation failed: %s", e)
            raise StorageError(str(e)) from e
        finally:
            db.close()

    def close(self) -> None:
        self.engine.dispose()

    # ---------------------------------------------------
    # Users
    # ---------------------------------------------------

    def _find_user(self, db: Session, user_id: str) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._session() as db:
            user = self._find_user(db, user_id)
            return _user_record(user) if user else None

    def upsert_user(self, fields: Dict[str, Any]) -> UserRecord:
        user_id = fields.get("id") or str(uuid.uuid4())
        changes = {k: fields[k] for k in USER_MUTABLE_FIELDS if k in fields}

        with self._session() as db:
            user = self._find_user(db, user_id)
            if user is None:
                user = User(id=user_id, **changes)
                db.add(user)
                try:
                    db.commit()
                except IntegrityError:
                    # inserted by a concurrent request since the lookup
                    db.rollback()
                    user = self._find_user(db, user_id)
                    if user is None:
                        raise
                else:
                    db.refresh(user)
                    return _user_record(user)

            changed = False
            for key, value in changes.items():
                if getattr(user, key) != value:
                    setattr(user, key, value)
                    changed = True
            if not changed:
                return _user_record(user)

            user.updated_at = utcnow()
            db.commit()
            db.refresh(user)
            return _user_record(user)

    # ---------------------------------------------------
    # Chat sessions
    # ---------------------------------------------------

    def create_chat_session(self, title: Optional[str], user_id: str) -> ChatSessionRecord:
        with self._session() as db:
            if db.query(User).filter(User.id == user_id).first() is None:
                raise ValidationError(f"User {user_id} does not exist")

            chat_session = ChatSession(user_id=user_id, title=title)
            db.add(chat_session)
            try:
                db.commit()
            except IntegrityError as e:
                # user removed between the check and the insert
                db.rollback()
                raise ValidationError(f"User {user_id} does not exist") from e
            db.refresh(chat_session)
            return _session_record(chat_session)

    def get_chat_session(self, session_id: str) -> Optional[ChatSessionRecord]:
        with self._session() as db:
            chat_session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
            return _session_record(chat_session) if chat_session else None

    def get_all_chat_sessions(self, user_id: str) -> List[ChatSessionRecord]:
        with self._session() as db:
            sessions = db.query(ChatSession)\
                         .filter(ChatSession.user_id == user_id)\
                         .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())\
                         .all()
            return [_session_record(s) for s in sessions]

    def update_chat_session_title(self, session_id: str, title: str) -> Optional[ChatSessionRecord]:
        with self._session() as db:
            chat_session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
            if chat_session is None:
                return None
            chat_session.title = title
            chat_session.updated_at = utcnow()
            db.commit()
            db.refresh(chat_session)
            return _session_record(chat_session)

    def delete_chat_session(self, session_id: str) -> None:
        with self._session() as db:
            chat_session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
            if chat_session is not None:
                db.delete(chat_session)
                db.commit()

    # ---------------------------------------------------
    # Messages
    # ---------------------------------------------------

    @staticmethod
    def _ordered_messages(db: Session, session_id: str) -> List[Message]:
        # seq breaks ties between equal timestamps
        return db.query(Message)\
                 .filter(Message.session_id == session_id)\
                 .order_by(Message.timestamp.asc(), Message.seq.asc())\
                 .all()

    def get_messages_by_session_id(self, session_id: str) -> List[MessageRecord]:
        with self._session() as db:
            return [_message_record(m) for m in self._ordered_messages(db, session_id)]

    def create_message(self, session_id: str, role, content: str) -> MessageRecord:
        role = MessageRole.coerce(role)
        with self._session() as db:
            chat_session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
            if chat_session is None:
                raise ValidationError(f"Chat session {session_id} does not exist")

            message = Message(session_id=session_id, role=role, content=content, timestamp=utcnow())
            db.add(message)
            chat_session.updated_at = message.timestamp

            db.commit()
            db.refresh(message)
            return _message_record(message)

    def seed_greeting_if_empty(self, session_id: str, content: str) -> List[MessageRecord]:
        # SQLite ignores FOR UPDATE, so writers in this process also share a lock
        with self._seed_lock, self._session() as db:
            chat_session = db.query(ChatSession)\
                             .filter(ChatSession.id == session_id)\
                             .with_for_update()\
                             .first()
            if chat_session is None:
                return []

            messages = self._ordered_messages(db, session_id)
            if not messages:
                greeting = Message(
                    session_id=session_id,
                    role=MessageRole.ASSISTANT,
                    content=content,
                    timestamp=utcnow(),
                )
                db.add(greeting)
                chat_session.updated_at = greeting.timestamp
                db.commit()
                db.refresh(greeting)
                logger.debug("Seeded greeting for session %s", session_id)
                messages = [greeting]
            return [_message_record(m) for m in messages]
