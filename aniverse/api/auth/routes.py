from fastapi import APIRouter, Depends

from aniverse.api.auth.schemas import UserOut
from aniverse.api.chat.services import ChatService
from aniverse.api.deps import get_chat_service

router = APIRouter()


@router.get("/user", response_model=UserOut)
def get_user(service: ChatService = Depends(get_chat_service)):
    """
    No authentication: always the default user, created on first request.
    """
    return service.ensure_default_user()
