from fastapi import Depends, Request

from aniverse.api.chat.services import ChatService
from aniverse.core.completion import CompletionClient
from aniverse.storage.base import Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_completion_client(request: Request) -> CompletionClient:
    return request.app.state.completion_client


def get_chat_service(
    request: Request,
    storage: Storage = Depends(get_storage),
    completion_client: CompletionClient = Depends(get_completion_client),
) -> ChatService:
    return ChatService(
        storage=storage,
        completion_client=completion_client,
        history_window=request.app.state.settings.CHAT_HISTORY_WINDOW,
    )
