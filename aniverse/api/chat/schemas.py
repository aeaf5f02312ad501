from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

from aniverse.storage.base import MessageRole

# Responses use camelCase keys, matching what the chat frontend reads
CAMEL_CONFIG = {
    "from_attributes": True,
    "alias_generator": to_camel,
    "populate_by_name": True,
}

# -----------------------------
# 🧾 Message Schemas
# -----------------------------

class ChatMessageRequest(BaseModel):
    content: Optional[str] = None

class MessageResponse(BaseModel):
    id: str
    session_id: str
    role: MessageRole
    content: str
    timestamp: Optional[datetime] = None

    model_config = CAMEL_CONFIG

class ChatResponse(BaseModel):
    message: str
    session_id: str

    model_config = CAMEL_CONFIG


# -----------------------------
# 📁 Session Schemas
# -----------------------------

class ChatSessionCreate(BaseModel):
    title: Optional[str] = None

class ChatSessionResponse(BaseModel):
    id: str
    user_id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = CAMEL_CONFIG


# -----------------------------
# ✏️ Rename / Delete
# -----------------------------

class ChatRenameRequest(BaseModel):
    title: Optional[str] = None

class ChatSessionDeleteResponse(BaseModel):
    message: str
