from types import SimpleNamespace as NS
from unittest.mock import AsyncMock, MagicMock

import pytest

from aniverse.api.chat.services import ChatService
from aniverse.core.completion import CompletionClient
from aniverse.storage.database import DatabaseStorage
from aniverse.storage.memory import MemoryStorage


def completion_response(text):
    """Shape of an openai ChatCompletion, as far as the client reads it."""
    return NS(choices=[NS(message=NS(role="assistant", content=text))])


def fake_openai(reply="Naruto is a great place to start!"):
    """AsyncOpenAI stand-in whose chat.completions.create is an AsyncMock."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion_response(reply))
    return client


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def database_storage():
    storage = DatabaseStorage("sqlite://", create_tables=True)
    yield storage
    storage.close()


def file_database_url(tmp_path):
    """File-backed SQLite, so concurrent threads get their own connections."""
    return f"sqlite:///{tmp_path / 'aniverse.db'}"


@pytest.fixture(params=["memory", "database"])
def storage(request):
    """Runs a test once per storage backend."""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture
def openai_client():
    return fake_openai()


@pytest.fixture
def completion_client(openai_client):
    return CompletionClient(api_key="pplx-test-key", client=openai_client, timeout_s=5)


@pytest.fixture
def service(storage, completion_client):
    return ChatService(storage=storage, completion_client=completion_client, history_window=10)
