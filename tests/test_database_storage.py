import threading

import pytest

from aniverse.api.chat.services import DEFAULT_USER, DEFAULT_USER_ID, ChatService
from aniverse.core.completion import CompletionClient
from aniverse.core.errors import StorageError
from aniverse.storage.database import DatabaseStorage
from tests.conftest import file_database_url


class LateUserLookup(DatabaseStorage):
    """Misses the user on the next lookup, as a request that lost the insert race would."""

    misses = 0

    def _find_user(self, db, user_id):
        if self.misses:
            self.misses -= 1
            return None
        return super()._find_user(db, user_id)


@pytest.fixture
def late_lookup_storage():
    storage = LateUserLookup("sqlite://", create_tables=True)
    yield storage
    storage.close()


def test_upsert_recovers_when_user_was_inserted_concurrently(late_lookup_storage):
    existing = late_lookup_storage.upsert_user(DEFAULT_USER)
    late_lookup_storage.misses = 1

    user = late_lookup_storage.upsert_user(DEFAULT_USER)

    assert user == existing


def test_upsert_after_lost_race_still_applies_changes(late_lookup_storage):
    late_lookup_storage.upsert_user(DEFAULT_USER)
    late_lookup_storage.misses = 1

    user = late_lookup_storage.upsert_user({**DEFAULT_USER, "last_name": "Otaku"})

    assert user.last_name == "Otaku"
    assert late_lookup_storage.get_user(DEFAULT_USER_ID).last_name == "Otaku"


def test_upsert_with_conflicting_email_is_storage_error(late_lookup_storage):
    late_lookup_storage.upsert_user(DEFAULT_USER)

    with pytest.raises(StorageError):
        late_lookup_storage.upsert_user({**DEFAULT_USER, "id": "someone-else"})


def test_concurrent_session_creation_shares_default_user(tmp_path):
    storage = DatabaseStorage(file_database_url(tmp_path), create_tables=True)
    service = ChatService(storage=storage, completion_client=CompletionClient(api_key=None))
    barrier = threading.Barrier(4)
    created, failures = [], []

    def create():
        barrier.wait()
        try:
            created.append(service.create_session())
        except Exception as e:
            failures.append(e)

    threads = [threading.Thread(target=create) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    storage.close()

    assert failures == []
    assert len({s.id for s in created}) == 4
    assert {s.user_id for s in created} == {DEFAULT_USER_ID}
