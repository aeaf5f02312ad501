# aniverse/db/models/chat/__init__.py
from .chat_session import ChatSession
from .chat_message import Message
