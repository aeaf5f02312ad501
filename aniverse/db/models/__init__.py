# aniverse/db/models/__init__.py
from .user import User
from .chat import ChatSession, Message
