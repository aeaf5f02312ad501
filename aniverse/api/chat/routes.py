from fastapi import APIRouter, Depends
from typing import List, Optional

from aniverse.api.chat import schemas
from aniverse.api.chat.services import ChatService
from aniverse.api.deps import get_chat_service

router = APIRouter()

# ---------------------------------------------------
# 📁 Sessions
# ---------------------------------------------------

@router.post("/sessions", response_model=schemas.ChatSessionResponse)
def create_session(
    payload: Optional[schemas.ChatSessionCreate] = None,
    service: ChatService = Depends(get_chat_service)
):
    return service.create_session(title=payload.title if payload else None)


@router.get("/sessions", response_model=List[schemas.ChatSessionResponse])
def list_sessions(service: ChatService = Depends(get_chat_service)):
    return service.list_sessions()


@router.patch("/sessions/{session_id}", response_model=schemas.ChatSessionResponse)
def rename_session(
    session_id: str,
    payload: schemas.ChatRenameRequest,
    service: ChatService = Depends(get_chat_service)
):
    return service.rename_session(session_id, payload.title)


@router.delete("/sessions/{session_id}", response_model=schemas.ChatSessionDeleteResponse)
def delete_session(session_id: str, service: ChatService = Depends(get_chat_service)):
    service.delete_session(session_id)
    return {"message": "Session deleted successfully"}


# ---------------------------------------------------
# 🤖 Messages
# ---------------------------------------------------

@router.get("/sessions/{session_id}/messages", response_model=List[schemas.MessageResponse])
def get_messages(session_id: str, service: ChatService = Depends(get_chat_service)):
    return service.get_history(session_id)


@router.post("/sessions/{session_id}/messages", response_model=schemas.ChatResponse)
async def post_message(
    session_id: str,
    payload: schemas.ChatMessageRequest,
    service: ChatService = Depends(get_chat_service)
):
    result = await service.post_message(session_id, payload.content)
    return schemas.ChatResponse(message=result.assistant_text, session_id=result.session_id)
